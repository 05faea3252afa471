"""Core data models for the resilience layer and the CSV import pipeline."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class InsertMode(Enum):
    """Conflict policy used by batch inserts."""
    INSERT = "INSERT"
    INSERT_OR_IGNORE = "INSERT OR IGNORE"


@dataclass(frozen=True)
class CircuitSnapshot:
    """Read-only view of a circuit breaker's bookkeeping."""
    state: CircuitState
    failures: int
    last_failure_time: Optional[float]


@dataclass(frozen=True)
class ColumnSpec:
    """Column of a destination table.

    Defines both the DDL fragment and the position of the value in every
    inserted tuple.
    """
    name: str
    type: str
    required: bool = False
    default: Optional[Any] = None
    source: Optional[str] = None
    parser: Optional[str] = None

    @property
    def header(self) -> str:
        """CSV header the column reads from."""
        return self.source or self.name

    @property
    def is_numeric(self) -> bool:
        upper = self.type.upper()
        return "INTEGER" in upper or "REAL" in upper

    def ddl(self) -> str:
        definition = f"{self.name} {self.type}"
        if self.required:
            definition += " NOT NULL"
        if self.default is not None:
            definition += f" DEFAULT {self.default}"
        return definition


@dataclass
class CsvReadResult:
    """Rows produced by a row reader."""
    rows: List[tuple]
    rows_read: int = 0
    rows_skipped: int = 0
    missing_file: bool = False


@dataclass
class ImportResult:
    """Outcome of a single table import."""
    table_name: str
    rows_read: int
    rows_skipped: int
    rows_inserted: int
    batches: int
    duration_seconds: float
    csv_missing: bool = False


@dataclass
class SetupResult:
    """Outcome of a full database setup run."""
    database_path: str
    imports: List[ImportResult] = field(default_factory=list)
    search_indexes: int = 0
    duration_seconds: float = 0.0

    @property
    def total_rows(self) -> int:
        return sum(result.rows_inserted for result in self.imports)

    def by_table(self) -> Dict[str, ImportResult]:
        return {result.table_name: result for result in self.imports}
