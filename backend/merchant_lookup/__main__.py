import uvicorn

from merchant_lookup.config import get_settings


def main():
    settings = get_settings()
    uvicorn.run(
        "merchant_lookup.main:app",
        host=settings.host,
        port=settings.port,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
