"""Logfire cloud observability initialization and instrumentation."""

import logging

import logfire

from prophet import __version__
from prophet.config import Settings

logger = logging.getLogger(__name__)


def initialize_logfire(settings: Settings, app=None) -> bool:
    """
    Initialize Logfire with instrumentation for the arbitration and settlement stack.

    Call once at startup, before any arbitration runs. Instruments:
    - PydanticAI model requests (arbitrator turns, token usage)
    - HTTPX clients (Google Custom Search, OpenAI)
    - SQLAlchemy (ledger store)
    - FastAPI, when an app is passed
    - Python logging (bridged to Logfire)

    Returns:
        True if Logfire was configured. Failures are logged, never raised.
    """
    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return False

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name="prophet",
            service_version=__version__,
            environment=settings.environment,
        )

        logfire.instrument_pydantic_ai()
        logfire.instrument_httpx()
        logfire.instrument_sqlalchemy()
        if app is not None:
            logfire.instrument_fastapi(app)

        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        logger.info("✓ Logfire cloud tracking initialized")
        return True

    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")
        return False
