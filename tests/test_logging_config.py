"""
Tests for the JSON log formatter.
"""

import json
import logging

from atm_ledger.logging_config import JSONFormatter, ROOT_LOGGER_NAME, setup_logging


def make_record(**extra):
    record = logging.LogRecord(
        name="atm_ledger.services.ledger_service",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Deposit committed: %s",
        args=("10.00",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formats_message_and_extras():
    output = json.loads(JSONFormatter().format(
        make_record(operation="deposit", account_id="acct-a")
    ))

    assert output["message"] == "Deposit committed: 10.00"
    assert output["level"] == "INFO"
    assert output["operation"] == "deposit"
    assert output["account_id"] == "acct-a"
    assert "kind" not in output


def test_setup_logging_does_not_stack_handlers():
    setup_logging("DEBUG")
    setup_logging("WARNING")

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    assert len(logger.handlers) == 1
    assert logger.level == logging.WARNING
