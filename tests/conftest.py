"""Pytest configuration and shared fixtures."""

import random
from pathlib import Path
from typing import Dict, List

import pytest

from tests.fixtures.sample_data import FakeClock, RecordingSleeper, write_csv


@pytest.fixture(scope="session")
def deterministic_seed():
    """Set a fixed random seed for deterministic test results."""
    random.seed(42)
    return 42


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def sleeper():
    return RecordingSleeper()


@pytest.fixture
def csv_writer(tmp_path):
    """Write CSV files into the test's temporary directory."""
    def _write(name: str, header: List[str], rows: List[Dict[str, str]]) -> Path:
        return write_csv(tmp_path / name, header, rows)
    return _write


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "test.db"


@pytest.fixture
def sample_config(tmp_path):
    """Provide a sample configuration for testing."""
    from src.models.config import SetupConfig

    return SetupConfig(
        database_path=str(tmp_path / ".data" / "france.db"),
        busy_timeout=1.0,
        input_directory=str(tmp_path / "inputFiles"),
        imports_file=str(tmp_path / "imports.yaml"),
        batch_size=2,
        search_indexes=[],
        retry_max_attempts=3,
        retry_base_delay=0.01,
        log_level="DEBUG",
    )
