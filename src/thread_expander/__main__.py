"""Process entry point: validate configuration, then serve until signalled."""

import logging
import sys

import uvicorn
from pydantic import ValidationError

from thread_expander.app import app
from thread_expander.config import get_settings
from thread_expander.logging_config import configure_logging

logger = logging.getLogger("thread_expander")


def _describe(exc: ValidationError) -> str:
    """Summarise settings errors without echoing the offending values (tokens)."""
    parts = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error.get("loc", ())) or "settings"
        parts.append(f"{field.upper()}: {error.get('msg', 'invalid')}")
    return "; ".join(parts)


def main() -> int:
    configure_logging()
    try:
        settings = get_settings()
    except ValidationError as exc:
        logger.critical("Invalid configuration: %s", _describe(exc))
        return 1

    configure_logging(settings.log_level)

    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
