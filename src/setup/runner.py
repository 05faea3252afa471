"""Setup runner importing every configured table into a fresh database."""

import time
from pathlib import Path
from typing import Callable, List, Optional

from src.importer.base_importer import BaseImporter, ImporterSpec
from src.importer.database import SQLiteDatabase
from src.models.config import SetupConfig, TableDefinition, load_table_definitions
from src.models.data_models import ImportResult, SetupResult
from src.monitoring.logger import StructuredLogger


class SetupRunner:
    """Runs table imports one after another against a single database."""

    def __init__(
        self,
        config: SetupConfig,
        definitions: Optional[List[TableDefinition]] = None,
        logger: Optional[StructuredLogger] = None
    ):
        """
        Initialize runner with setup configuration.

        Args:
            config: Setup configuration object
            definitions: Table definitions (defaults to config.imports_file)
            logger: Optional structured logger
        """
        self.config = config
        self.definitions = definitions
        self.logger = logger or StructuredLogger(level=config.log_level)

    def prepare_database_file(self) -> Path:
        """Create the database directory and remove a previous database file."""
        db_path = Path(self.config.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)

        if self.config.reset_database and db_path.exists():
            db_path.unlink()
            self.logger.log("database_reset", path=str(db_path))

        return db_path

    def load_definitions(self) -> List[TableDefinition]:
        if self.definitions is None:
            self.definitions = load_table_definitions(self.config.imports_path)
        return self.definitions

    async def run(
        self,
        on_table_done: Optional[Callable[[ImportResult], None]] = None
    ) -> SetupResult:
        """
        Import every table in order, then create the search indexes.

        The first failing import aborts the run; tables imported before it
        stay in the database.

        Args:
            on_table_done: Optional callback invoked after each table

        Returns:
            SetupResult with one ImportResult per table
        """
        definitions = self.load_definitions()
        db_path = self.prepare_database_file()
        result = SetupResult(database_path=str(db_path))
        start_time = time.perf_counter()

        self.logger.log("setup_start", database=str(db_path), tables=len(definitions))

        retry_options = {
            "max_attempts": self.config.retry_max_attempts,
            "base_delay": self.config.retry_base_delay,
            "max_delay": self.config.retry_max_delay,
        }

        async with SQLiteDatabase(
            db_path,
            busy_timeout=self.config.busy_timeout,
            retry_options=retry_options,
            logger=self.logger
        ) as db:
            for definition in definitions:
                spec = ImporterSpec.from_definition(
                    definition,
                    self.config.csv_path(definition),
                    default_batch_size=self.config.batch_size,
                )
                importer = BaseImporter(spec, db, logger=self.logger)
                table_result = await importer.run_import()
                result.imports.append(table_result)
                if on_table_done:
                    on_table_done(table_result)

            result.search_indexes = await self._create_search_indexes(db)

        result.duration_seconds = time.perf_counter() - start_time
        self.logger.log(
            "setup_complete",
            tables=len(result.imports),
            rows=result.total_rows,
            elapsed_ms=round(result.duration_seconds * 1000, 2),
        )
        return result

    async def _create_search_indexes(self, db: SQLiteDatabase) -> int:
        """Create search indexes on tables that exist; returns how many ran."""
        created = 0
        for index_sql in self.config.search_indexes:
            table_name = _indexed_table(index_sql)
            if table_name and not await db.table_exists(table_name):
                self.logger.warn("search_index_skipped", table=table_name, reason="missing_table")
                continue
            await db.execute(index_sql)
            created += 1
        return created


def _indexed_table(index_sql: str) -> Optional[str]:
    """Extract the table name from a CREATE INDEX ... ON table(...) statement."""
    upper = index_sql.upper()
    position = upper.find(" ON ")
    if position == -1:
        return None
    target = index_sql[position + 4:].strip()
    return target.split("(", 1)[0].strip() or None
