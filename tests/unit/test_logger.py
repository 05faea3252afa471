"""Unit tests for structured logging."""

import json
import logging

from src.monitoring.logger import StructuredLogger


def _events(caplog):
    return [(record.levelno, json.loads(record.getMessage())) for record in caplog.records]


def test_log_emits_json_line(caplog):
    logger = StructuredLogger(name="france_stats.test_json")

    with caplog.at_level(logging.INFO, logger="france_stats.test_json"):
        logger.log("setup_start", database=".data/france.db", tables=4)

    assert _events(caplog) == [
        (logging.INFO, {"event": "setup_start", "database": ".data/france.db", "tables": 4})
    ]


def test_retry_attempt_is_warning(caplog):
    logger = StructuredLogger(name="france_stats.test_retry")

    with caplog.at_level(logging.INFO, logger="france_stats.test_retry"):
        logger.retry_attempt(attempt=1, error="database is locked", delay=0.5, operation="insert")

    level, payload = _events(caplog)[0]
    assert level == logging.WARNING
    assert payload["event"] == "retry_attempt"
    assert payload["operation"] == "insert"


def test_circuit_breaker_level_depends_on_state(caplog):
    logger = StructuredLogger(name="france_stats.test_cb")

    with caplog.at_level(logging.INFO, logger="france_stats.test_cb"):
        logger.circuit_breaker_state("geo", "OPEN", 5)
        logger.circuit_breaker_state("geo", "HALF_OPEN", 5)

    levels = [level for level, _ in _events(caplog)]
    assert levels == [logging.WARNING, logging.INFO]


def test_non_serializable_values_use_str(caplog):
    logger = StructuredLogger(name="france_stats.test_str")

    with caplog.at_level(logging.INFO, logger="france_stats.test_str"):
        logger.import_operation("qpv_data", "failed", error=ValueError("bad row"))

    _, payload = _events(caplog)[0]
    assert payload == {
        "event": "import_operation",
        "table": "qpv_data",
        "operation": "failed",
        "error": "bad row",
    }


def test_level_filters_debug(caplog):
    logger = StructuredLogger(name="france_stats.test_level", level="WARNING")

    with caplog.at_level(logging.DEBUG):
        logger.debug("database_open", path=":memory:")
        logger.row_skipped("qpv_data", ["COG"])

    events = [payload["event"] for _, payload in _events(caplog)]
    assert events == ["row_skipped"]
