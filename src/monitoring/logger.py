"""Structured logging for retry, circuit breaker and import monitoring."""

import json
import logging
from typing import Any, List, Optional


class StructuredLogger:
    """Structured logger with uniform schema."""

    def __init__(self, name: str = "france_stats", level: str = "INFO"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(handler)

    def _emit(self, level: int, event: str, **kwargs: Any) -> None:
        log_data = {"event": event, **kwargs}
        self.logger.log(level, json.dumps(log_data, default=str))

    def log(self, event: str, **kwargs) -> None:
        """
        Log structured event.

        Standard keys: event, table, operation, attempt, delay, error,
                      cb_state, failures, rows, batch_size, elapsed_ms
        """
        self._emit(logging.INFO, event, **kwargs)

    def debug(self, event: str, **kwargs) -> None:
        self._emit(logging.DEBUG, event, **kwargs)

    def warn(self, event: str, **kwargs) -> None:
        self._emit(logging.WARNING, event, **kwargs)

    def error(self, event: str, **kwargs) -> None:
        self._emit(logging.ERROR, event, **kwargs)

    def retry_attempt(self, attempt: int, error: str, delay: float, operation: str) -> None:
        self.warn("retry_attempt", attempt=attempt, error=error, delay=delay, operation=operation)

    def circuit_breaker_state(self, name: str, state: str, failures: int) -> None:
        level = logging.WARNING if state == "OPEN" else logging.INFO
        self._emit(level, "circuit_breaker", source=name, cb_state=state, failures=failures)

    def import_operation(self, table: str, operation: str, **kwargs) -> None:
        self.log("import_operation", table=table, operation=operation, **kwargs)

    def row_skipped(self, table: str, missing_fields: List[str], row: Optional[dict] = None) -> None:
        self.warn("row_skipped", table=table, missing_fields=missing_fields, row=row)
