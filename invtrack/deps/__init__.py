"""FastAPI dependencies for authentication and role checks."""
