import uvicorn

from columndesk.log import configure_logging
from columndesk.settings import get_settings


def run_uvicorn():
    """
    Run the FastAPI app via uvicorn in this process.
    """
    settings = get_settings()
    config = uvicorn.Config(
        "columndesk.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False,
    )
    server = uvicorn.Server(config)
    server.run()


def main():
    settings = get_settings()
    logger = configure_logging(settings.log_format, settings.log_level)
    logger.info(f"Serving on http://{settings.host}:{settings.port}/ (CMS: {settings.strapi_url})")
    try:
        run_uvicorn()
    except KeyboardInterrupt:
        logger.info("Shutting down.")


if __name__ == "__main__":
    main()
