import uvicorn

from invtrack.core.config import settings


def main() -> None:
    uvicorn.run("invtrack.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    main()
