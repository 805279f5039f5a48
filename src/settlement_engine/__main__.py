"""Entry point for running the application with uvicorn."""

import uvicorn

from settlement_engine.config import configure_logging, get_settings


def main() -> None:
    """Run the application."""
    settings = get_settings()
    configure_logging(settings)
    uvicorn.run(
        "settlement_engine.api.app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    main()
