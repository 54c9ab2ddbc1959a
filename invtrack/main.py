from prometheus_fastapi_instrumentator import Instrumentator

from invtrack.core.config import settings
from invtrack.core.logging import setup_logging

from . import app as inventory_app

setup_logging()
app = inventory_app
app.title = settings.APP_NAME
instrumentator = Instrumentator()
instrumentator.instrument(app).expose(app, include_in_schema=False)


@app.get("/health")
async def health() -> dict[str, bool]:
    return {"ok": True}
