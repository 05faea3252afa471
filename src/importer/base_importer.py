"""Declarative CSV to SQLite batch importer.

An importer is driven by an ImporterSpec: the destination table, its
ordered columns, which CSV headers are required, and optional row
validation/processing callables. The import runs in three strict stages:

1. create_table(): CREATE TABLE IF NOT EXISTS plus indexes
2. read_csv(): stream the CSV, validate then transform each row
3. insert_batch(): one transaction, one multi-row INSERT per batch_size rows,
   ROLLBACK of everything on the first failing statement

Table creation and row reading are strategies (TableCreator, RowReader) so
tables needing composite keys or non-CSV sources can swap them out.
"""

import asyncio
import csv
import itertools
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.importer.database import DatabaseHandle
from src.importer.parsers import (
    get_field_parser,
    parse_numeric_field,
    trim_field,
    validate_required_fields,
)
from src.models.data_models import ColumnSpec, CsvReadResult, ImportResult, InsertMode
from src.monitoring.logger import StructuredLogger

if TYPE_CHECKING:
    from src.models.config import TableDefinition


RawRow = Dict[str, Optional[str]]
RowProcessor = Callable[[RawRow], Optional[Sequence[Any]]]
RowValidator = Callable[[RawRow], bool]


class ImporterError(Exception):
    """Base error raised by the import pipeline itself."""


class MissingCsvError(ImporterError, FileNotFoundError):
    """The source CSV does not exist and missing files are not allowed."""


class ImporterSpec(BaseModel):
    """Configuration for one CSV source and its destination table."""

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    csv_path: Path = Field(description="Source CSV file")
    table_name: str = Field(description="Destination table")
    columns: List[ColumnSpec] = Field(description="Ordered columns: DDL and tuple order")
    required_fields: List[str] = Field(default_factory=list, description="CSV headers that must be non-empty")
    process_row: Optional[RowProcessor] = Field(default=None, description="Raw row to value tuple")
    validate_row: Optional[RowValidator] = Field(default=None, description="Gate applied before process_row")
    batch_size: int = Field(default=1000, description="Rows per INSERT statement")
    indexes: List[str] = Field(default_factory=list, description="Index statements run after CREATE TABLE")
    insert_mode: InsertMode = Field(default=InsertMode.INSERT, description="Conflict policy")
    allow_missing_csv: bool = Field(default=False, description="Missing CSV yields zero rows")
    table_constraints: List[str] = Field(default_factory=list, description="Extra DDL clauses")
    surrogate_key: bool = Field(default=False, description="Prepend id INTEGER PRIMARY KEY AUTOINCREMENT")

    @field_validator('table_name')
    @classmethod
    def validate_table_name(cls, v: str) -> str:
        if not v or not v.replace("_", "").isalnum():
            raise ValueError(f"table_name must be an identifier, got: {v!r}")
        return v

    @field_validator('columns')
    @classmethod
    def validate_columns(cls, v: List[ColumnSpec]) -> List[ColumnSpec]:
        if not v:
            raise ValueError("columns must not be empty")
        names = [column.name for column in v]
        if len(set(names)) != len(names):
            raise ValueError(f"column names must be unique, got: {names}")
        for column in v:
            if column.parser is not None:
                get_field_parser(column.parser)
        return v

    @field_validator('batch_size')
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"batch_size must be positive, got: {v}")
        return v

    @classmethod
    def from_definition(
        cls,
        definition: "TableDefinition",
        csv_path: Path,
        default_batch_size: int = 1000,
        **callables: Any
    ) -> "ImporterSpec":
        """Build a spec from a YAML table definition."""
        return cls(
            csv_path=csv_path,
            table_name=definition.table_name,
            columns=definition.column_specs(),
            required_fields=definition.required_fields,
            batch_size=definition.batch_size or default_batch_size,
            indexes=definition.indexes,
            insert_mode=definition.insert_mode,
            allow_missing_csv=definition.allow_missing_csv,
            table_constraints=definition.table_constraints,
            surrogate_key=definition.surrogate_key,
            **callables,
        )


class TableCreator(Protocol):
    """Creates the destination table and its indexes."""

    async def create_table(self, importer: "BaseImporter") -> None:
        ...


class RowReader(Protocol):
    """Produces accepted value tuples for the importer."""

    async def read_rows(self, importer: "BaseImporter") -> CsvReadResult:
        ...


class DefaultTableCreator:
    """CREATE TABLE IF NOT EXISTS from the column list, then every index in order."""

    async def create_table(self, importer: "BaseImporter") -> None:
        await importer.db.run(importer.create_table_sql())
        for index_sql in importer.spec.indexes:
            await importer.db.run(index_sql)


class CsvRowReader:
    """
    Streams a CSV file in chunks.

    File reads happen in the default executor; each chunk of raw rows is
    validated and processed on the event loop in file order.
    """

    def __init__(self, chunk_size: int = 500, encoding: str = "utf-8-sig", delimiter: str = ","):
        self.chunk_size = chunk_size
        self.encoding = encoding
        self.delimiter = delimiter

    async def read_rows(self, importer: "BaseImporter") -> CsvReadResult:
        path = importer.spec.csv_path

        if not path.exists():
            if importer.spec.allow_missing_csv:
                importer.logger.warn(
                    "csv_missing", table=importer.table_name, path=str(path), action="empty_import"
                )
                return CsvReadResult(rows=[], missing_file=True)
            raise MissingCsvError(f"{path} does not exist")

        result = CsvReadResult(rows=[])
        loop = asyncio.get_running_loop()

        with open(path, 'r', encoding=self.encoding, newline='') as f:
            reader = csv.DictReader(f, delimiter=self.delimiter)
            while True:
                chunk = await loop.run_in_executor(
                    None, lambda: list(itertools.islice(reader, self.chunk_size))
                )
                if not chunk:
                    break
                for raw_row in chunk:
                    result.rows_read += 1
                    values = importer.accept_row(raw_row)
                    if values is None:
                        result.rows_skipped += 1
                    else:
                        result.rows.append(values)

        return result


class BaseImporter:
    """
    Generic CSV to SQL table loader.

    The importer holds no state across rows beyond what the reader collects;
    duplicate detection is left to table constraints combined with
    INSERT OR IGNORE.
    """

    def __init__(
        self,
        spec: ImporterSpec,
        db: DatabaseHandle,
        table_creator: Optional[TableCreator] = None,
        row_reader: Optional[RowReader] = None,
        logger: Optional[StructuredLogger] = None
    ):
        """
        Args:
            spec: Table, columns and row callables
            db: Database handle exposing run(sql, params)
            table_creator: Replaces the default DDL generation
            row_reader: Replaces the default CSV reader
            logger: Optional structured logger
        """
        self.spec = spec
        self.db = db
        self.table_creator = table_creator or DefaultTableCreator()
        self.row_reader = row_reader or CsvRowReader()
        self.logger = logger or StructuredLogger()
        self.process_row: RowProcessor = spec.process_row or self.default_process_row
        self.validate_row: RowValidator = spec.validate_row or self.default_validate_row

    @property
    def table_name(self) -> str:
        return self.spec.table_name

    @property
    def columns(self) -> List[ColumnSpec]:
        return self.spec.columns

    def create_table_sql(self) -> str:
        definitions = [column.ddl() for column in self.columns]
        if self.spec.surrogate_key:
            definitions.insert(0, "id INTEGER PRIMARY KEY AUTOINCREMENT")
        definitions.extend(self.spec.table_constraints)
        return f"CREATE TABLE IF NOT EXISTS {self.table_name} ({', '.join(definitions)})"

    def insert_sql(self, row_count: int) -> str:
        """Multi-row insert statement for row_count rows."""
        column_names = ", ".join(column.name for column in self.columns)
        placeholder = "(" + ", ".join("?" for _ in self.columns) + ")"
        placeholders = ", ".join(placeholder for _ in range(row_count))
        return (
            f"{self.spec.insert_mode.value} INTO {self.table_name} "
            f"({column_names}) VALUES {placeholders}"
        )

    def default_validate_row(self, row: RawRow) -> bool:
        """Reject rows where any required CSV field is missing or blank."""
        missing = validate_required_fields(row, self.spec.required_fields)
        if missing:
            self.logger.row_skipped(self.table_name, missing, row=row)
            return False
        return True

    def default_process_row(self, row: RawRow) -> tuple:
        """
        Map a raw row to values in column order.

        A column naming a parser uses it. Otherwise numeric columns
        (INTEGER/REAL) parse as floats, with empty or non-numeric text
        mapped to None, and text columns are trimmed, with empty results
        mapped to None.
        """
        values = []
        for column in self.columns:
            raw = row.get(column.header)
            if column.parser is not None:
                values.append(get_field_parser(column.parser)(raw))
            elif column.is_numeric:
                values.append(parse_numeric_field(raw))
            else:
                values.append(trim_field(raw))
        return tuple(values)

    def accept_row(self, row: RawRow) -> Optional[tuple]:
        """Validate then process one raw row; None means the row is excluded."""
        if not self.validate_row(row):
            return None
        processed = self.process_row(row)
        if not processed:
            return None
        values = tuple(processed)
        if len(values) != len(self.columns):
            raise ImporterError(
                f"process_row for {self.table_name} returned {len(values)} values, "
                f"expected {len(self.columns)}"
            )
        return values

    async def create_table(self) -> None:
        await self.table_creator.create_table(self)
        self.logger.import_operation(
            self.table_name, "table_created", indexes=len(self.spec.indexes)
        )

    async def read_csv(self) -> CsvReadResult:
        result = await self.row_reader.read_rows(self)
        self.logger.import_operation(
            self.table_name,
            "csv_read",
            path=str(self.spec.csv_path),
            rows=len(result.rows),
            skipped=result.rows_skipped,
        )
        return result

    async def insert_batch(self, rows: Sequence[Sequence[Any]]) -> int:
        """
        Insert rows inside a single transaction.

        Rows are chunked into batch_size multi-row statements issued in
        order. Any failure rolls back the whole call.

        Returns:
            Number of INSERT statements issued

        Raises:
            Exception: The first database error, after ROLLBACK
        """
        if not rows:
            return 0

        batch_size = self.spec.batch_size
        batches = 0

        await self.db.run("BEGIN TRANSACTION")
        try:
            for start in range(0, len(rows), batch_size):
                batch = rows[start:start + batch_size]
                params = [value for row in batch for value in row]
                await self.db.run(self.insert_sql(len(batch)), params)
                batches += 1
            await self.db.run("COMMIT")
        except Exception as e:
            self.logger.error(
                "import_operation",
                table=self.table_name,
                operation="rollback",
                batch=batches + 1,
                error=str(e),
            )
            try:
                await self.db.run("ROLLBACK")
            except Exception as rollback_error:
                self.logger.error(
                    "import_operation",
                    table=self.table_name,
                    operation="rollback_failed",
                    error=str(rollback_error),
                )
            raise

        self.logger.import_operation(
            self.table_name, "committed", rows=len(rows), batches=batches
        )
        return batches

    async def run_import(self) -> ImportResult:
        """
        Create the table, read the CSV and insert every accepted row.

        Each stage runs only after the previous one succeeded.
        """
        start_time = time.perf_counter()
        try:
            await self.create_table()
            read_result = await self.read_csv()
            batches = await self.insert_batch(read_result.rows)
        except Exception as e:
            self.logger.error(
                "import_operation", table=self.table_name, operation="failed", error=str(e)
            )
            raise

        result = ImportResult(
            table_name=self.table_name,
            rows_read=read_result.rows_read,
            rows_skipped=read_result.rows_skipped,
            rows_inserted=len(read_result.rows),
            batches=batches,
            duration_seconds=time.perf_counter() - start_time,
            csv_missing=read_result.missing_file,
        )
        self.logger.import_operation(
            self.table_name,
            "completed",
            rows=result.rows_inserted,
            csv_missing=result.csv_missing,
            elapsed_ms=round(result.duration_seconds * 1000, 2),
        )
        return result
