"""Universal logfire setup for the application."""

import logfire

from config import Settings


def configure_logging(settings: Settings) -> None:
    """Configure logfire. Logs are only shipped when a write token is configured."""
    logfire.configure(
        token=settings.logfire_token,
        service_name="videotube-api",
        send_to_logfire="if-token-present",
    )


def instrument_libraries():
    """Instrument common libraries for better observability."""
    logfire.instrument_httpx()
    logfire.instrument_pymongo()
