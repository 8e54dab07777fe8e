"""
Structured logging configuration.

Every module logs through logging.getLogger(__name__), which places
it under the "atm_ledger" logger configured here. Records are
emitted as one JSON object per line so monitoring can consume the
error kind and operation without parsing free text.
"""

import json
import logging
from datetime import datetime, timezone

ROOT_LOGGER_NAME = "atm_ledger"

# Extra attributes passed via logging's `extra=` that we copy into the output
EXTRA_FIELDS = ("operation", "account_id", "kind", "attempt", "amount")


class JSONFormatter(logging.Formatter):
    """Format a log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure the application logger.

    Safe to call more than once: existing handlers are replaced,
    so repeated app construction (e.g. in tests) does not
    duplicate output.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    return logger
