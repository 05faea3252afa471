"""Integration tests for the setup runner against real SQLite files."""

import sqlite3
from pathlib import Path
from unittest.mock import Mock

import pytest
import yaml

from src.importer.base_importer import MissingCsvError
from src.setup.runner import SetupRunner, _indexed_table
from tests.fixtures.sample_data import QPV_HEADER, QPV_ROWS, write_csv


pytestmark = pytest.mark.integration


LOCATIONS = {
    "table_name": "locations",
    "csv_file": "communes.csv",
    "insert_mode": "INSERT OR IGNORE",
    "table_constraints": ["UNIQUE(COG, commune)"],
    "required_fields": ["COG", "commune"],
    "columns": [
        {"name": "COG", "required": True},
        {"name": "commune", "required": True},
        {"name": "departement"},
    ],
}

QPV = {
    "table_name": "qpv_data",
    "csv_file": "analyse_qpv.csv",
    "required_fields": ["COG", "lib_com", "codeQPV"],
    "columns": [
        {"name": "COG", "required": True},
        {"name": "lib_com", "required": True},
        {"name": "codeQPV", "required": True},
        {"name": "popMuniQPV", "type": "INTEGER"},
        {"name": "partPopImmi", "type": "REAL"},
        {"name": "taux_pauvrete_60", "type": "REAL", "source": "taux_pauvrete_60%"},
    ],
}

MOSQUES = {
    "table_name": "mosques",
    "csv_file": "mosques.csv",
    "allow_missing_csv": True,
    "surrogate_key": True,
    "columns": [{"name": "name"}, {"name": "COG"}],
}


def _write_imports(config, tables):
    Path(config.imports_file).write_text(yaml.safe_dump({"tables": tables}))


def _write_inputs(config):
    input_dir = Path(config.input_directory)
    write_csv(input_dir / "communes.csv", ["COG", "commune", "departement"], [
        {"COG": "75056", "commune": "Paris", "departement": "75"},
        {"COG": "75056", "commune": "Paris", "departement": "75"},
        {"COG": "13055", "commune": "Marseille", "departement": "13"},
        {"COG": "69123", "commune": "Lyon", "departement": "69"},
    ])
    write_csv(input_dir / "analyse_qpv.csv", QPV_HEADER, QPV_ROWS)


def _rows(db_file, sql):
    with sqlite3.connect(db_file) as conn:
        return conn.execute(sql).fetchall()


@pytest.mark.asyncio
async def test_imports_tables_in_order(sample_config):
    _write_imports(sample_config, [LOCATIONS, QPV, MOSQUES])
    _write_inputs(sample_config)
    finished = []

    result = await SetupRunner(sample_config, logger=Mock()).run(
        on_table_done=lambda r: finished.append(r.table_name)
    )

    assert finished == ["locations", "qpv_data", "mosques"]
    assert [r.table_name for r in result.imports] == finished
    by_table = result.by_table()
    assert by_table["locations"].rows_read == 4
    assert by_table["qpv_data"].rows_skipped == 1
    assert by_table["mosques"].rows_inserted == 0

    db_file = sample_config.database_path
    assert _rows(db_file, "SELECT COUNT(*) FROM locations") == [(3,)]
    assert _rows(db_file, "SELECT COUNT(*) FROM qpv_data") == [(3,)]
    assert _rows(db_file, "SELECT COUNT(*) FROM mosques") == [(0,)]


@pytest.mark.asyncio
async def test_creates_database_directory(sample_config):
    _write_imports(sample_config, [LOCATIONS])
    _write_inputs(sample_config)
    assert not Path(sample_config.database_path).parent.exists()

    await SetupRunner(sample_config, logger=Mock()).run()

    assert Path(sample_config.database_path).exists()


@pytest.mark.asyncio
async def test_previous_database_is_replaced(sample_config):
    db_file = Path(sample_config.database_path)
    db_file.parent.mkdir(parents=True)
    with sqlite3.connect(db_file) as conn:
        conn.execute("CREATE TABLE stale (x TEXT)")

    _write_imports(sample_config, [LOCATIONS])
    _write_inputs(sample_config)

    await SetupRunner(sample_config, logger=Mock()).run()

    assert _rows(db_file, "SELECT name FROM sqlite_master WHERE name = 'stale'") == []


@pytest.mark.asyncio
async def test_keep_existing_database(sample_config):
    config = sample_config.model_copy(update={"reset_database": False})
    db_file = Path(config.database_path)
    db_file.parent.mkdir(parents=True)
    with sqlite3.connect(db_file) as conn:
        conn.execute("CREATE TABLE stale (x TEXT)")

    _write_imports(config, [LOCATIONS])
    _write_inputs(config)

    await SetupRunner(config, logger=Mock()).run()

    assert _rows(db_file, "SELECT name FROM sqlite_master WHERE name = 'stale'") == [("stale",)]


@pytest.mark.asyncio
async def test_first_failure_aborts_remaining_tables(sample_config):
    missing = dict(QPV, csv_file="absent.csv")
    _write_imports(sample_config, [LOCATIONS, missing, MOSQUES])
    _write_inputs(sample_config)
    finished = []

    with pytest.raises(MissingCsvError):
        await SetupRunner(sample_config, logger=Mock()).run(
            on_table_done=lambda r: finished.append(r.table_name)
        )

    assert finished == ["locations"]
    names = _rows(sample_config.database_path, "SELECT name FROM sqlite_master WHERE type = 'table'")
    assert ("locations",) in names
    assert ("mosques",) not in names


@pytest.mark.asyncio
async def test_search_indexes_skip_missing_tables(sample_config):
    config = sample_config.model_copy(update={"search_indexes": [
        "CREATE INDEX IF NOT EXISTS idx_locations_commune ON locations(commune)",
        "CREATE INDEX IF NOT EXISTS idx_missing ON not_imported(x)",
    ]})
    _write_imports(config, [LOCATIONS])
    _write_inputs(config)
    logger = Mock()

    result = await SetupRunner(config, logger=logger).run()

    assert result.search_indexes == 1
    assert _rows(
        config.database_path,
        "SELECT name FROM sqlite_master WHERE type = 'index' AND name LIKE 'idx_%'",
    ) == [("idx_locations_commune",)]
    logger.warn.assert_any_call("search_index_skipped", table="not_imported", reason="missing_table")


@pytest.mark.asyncio
async def test_explicit_definitions_skip_imports_file(sample_config):
    from src.models.config import TableDefinition

    _write_inputs(sample_config)
    runner = SetupRunner(
        sample_config, definitions=[TableDefinition(**LOCATIONS)], logger=Mock()
    )

    result = await runner.run()

    assert not Path(sample_config.imports_file).exists()
    assert result.total_rows == 4


@pytest.mark.parametrize("sql,expected", [
    ("CREATE INDEX IF NOT EXISTS idx_a ON locations(commune)", "locations"),
    ("create index idx_b on qpv_data (COG, codeQPV)", "qpv_data"),
    ("VACUUM", None),
])
def test_indexed_table(sql, expected):
    assert _indexed_table(sql) == expected
