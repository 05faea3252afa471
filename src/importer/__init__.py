"""CSV to SQLite import pipeline."""

from .base_importer import (
    BaseImporter,
    CsvRowReader,
    DefaultTableCreator,
    ImporterError,
    ImporterSpec,
    MissingCsvError,
)
from .database import SQLiteDatabase

__all__ = [
    "BaseImporter",
    "CsvRowReader",
    "DefaultTableCreator",
    "ImporterError",
    "ImporterSpec",
    "MissingCsvError",
    "SQLiteDatabase",
]
