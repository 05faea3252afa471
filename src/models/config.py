"""Configuration management for the database setup pipeline."""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.importer.parsers import get_field_parser
from src.models.data_models import ColumnSpec, InsertMode


class ColumnConfig(BaseModel):
    """Column definition as written in imports.yaml."""
    model_config = ConfigDict(extra="forbid")

    name: str = Field(description="Column name, also the CSV header by default")
    type: str = Field(default="TEXT", description="SQLite column type")
    required: bool = Field(default=False, description="Adds NOT NULL to the DDL")
    default: Optional[Union[str, int, float]] = Field(default=None, description="DDL default value")
    source: Optional[str] = Field(default=None, description="CSV header when it differs from name")
    parser: Optional[str] = Field(default=None, description="Named field parser, e.g. department_code")

    @field_validator('parser')
    @classmethod
    def validate_parser(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            get_field_parser(v)
        return v

    def to_spec(self) -> ColumnSpec:
        return ColumnSpec(
            name=self.name,
            type=self.type,
            required=self.required,
            default=self.default,
            source=self.source,
            parser=self.parser,
        )


class TableDefinition(BaseModel):
    """Declarative description of one CSV source and its destination table."""
    model_config = ConfigDict(extra="forbid")

    table_name: str = Field(description="Destination table")
    csv_file: str = Field(description="CSV path, relative to the input directory")
    columns: List[ColumnConfig] = Field(description="Ordered column definitions")
    required_fields: List[str] = Field(default_factory=list, description="CSV headers that must be non-empty")
    indexes: List[str] = Field(default_factory=list, description="Index creation statements")
    insert_mode: InsertMode = Field(default=InsertMode.INSERT, description="INSERT or INSERT OR IGNORE")
    allow_missing_csv: bool = Field(default=False, description="Treat a missing CSV as empty")
    batch_size: Optional[int] = Field(default=None, description="Overrides the global batch size")
    table_constraints: List[str] = Field(
        default_factory=list,
        description="Extra DDL clauses, e.g. PRIMARY KEY (COG, codeQPV)"
    )
    surrogate_key: bool = Field(default=False, description="Prepend an autoincrement id column")

    @field_validator('table_name')
    @classmethod
    def validate_table_name(cls, v: str) -> str:
        """Table names are interpolated into SQL, keep them to identifiers."""
        if not v.replace("_", "").isalnum():
            raise ValueError(f"table_name must be an identifier, got: {v}")
        return v

    @field_validator('columns')
    @classmethod
    def validate_columns(cls, v: List[ColumnConfig]) -> List[ColumnConfig]:
        if not v:
            raise ValueError("columns must not be empty")
        return v

    @field_validator('batch_size')
    @classmethod
    def validate_batch_size(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError(f"batch_size must be positive, got: {v}")
        return v

    def column_specs(self) -> List[ColumnSpec]:
        return [column.to_spec() for column in self.columns]


class SetupConfig(BaseModel):
    """Main setup configuration."""

    # Database configuration
    database_path: str = Field(default=".data/france.db", description="SQLite database file")
    busy_timeout: float = Field(default=5.0, description="Seconds a write waits on a locked database")
    reset_database: bool = Field(default=True, description="Delete the database file before importing")

    # Import configuration
    input_directory: str = Field(default="setup/inputFiles", description="Directory holding the CSV files")
    imports_file: str = Field(default="config/imports.yaml", description="Table definitions file")
    batch_size: int = Field(default=1000, description="Rows per multi-row INSERT statement")
    search_indexes: List[str] = Field(
        default=[
            "CREATE INDEX IF NOT EXISTS idx_locations_commune ON locations(commune)",
            "CREATE INDEX IF NOT EXISTS idx_locations_dept_commune ON locations(departement, commune)",
            "CREATE INDEX IF NOT EXISTS idx_locations_search ON locations(commune COLLATE NOCASE)",
        ],
        description="Statements run once every table is imported"
    )

    # Retry configuration for database reads
    retry_max_attempts: int = Field(default=3, description="Attempts per database operation")
    retry_base_delay: float = Field(default=0.5, description="Base delay for exponential backoff")
    retry_max_delay: float = Field(default=30.0, description="Maximum retry delay")

    # Logging configuration
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator('batch_size')
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        """Validate batch size is positive."""
        if v <= 0:
            raise ValueError(f"batch_size must be positive, got: {v}")
        return v

    @field_validator('busy_timeout')
    @classmethod
    def validate_busy_timeout(cls, v: float) -> float:
        """Validate busy timeout is not negative."""
        if v < 0:
            raise ValueError(f"busy_timeout must not be negative, got: {v}")
        return v

    @field_validator('retry_max_attempts')
    @classmethod
    def validate_retry_attempts(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"retry_max_attempts must be positive, got: {v}")
        return v

    @property
    def imports_path(self) -> Path:
        return Path(self.imports_file)

    def csv_path(self, definition: TableDefinition) -> Path:
        """Resolve a table's CSV file against the input directory."""
        return Path(self.input_directory) / definition.csv_file

    # Environment variable overrides
    @classmethod
    def env_overrides(cls) -> Dict[str, Any]:
        """Collect the SETUP_* variables present in the environment."""
        overrides: Dict[str, Any] = {}

        env_mappings = {
            "SETUP_DATABASE_PATH": "database_path",
            "SETUP_BUSY_TIMEOUT": "busy_timeout",
            "SETUP_INPUT_DIR": "input_directory",
            "SETUP_BATCH_SIZE": "batch_size",
            "SETUP_LOG_LEVEL": "log_level",
        }

        for env_var, field_name in env_mappings.items():
            if env_var in os.environ:
                value = os.environ[env_var]
                field_info = cls.model_fields[field_name]
                if field_info.annotation == int:
                    overrides[field_name] = int(value)
                elif field_info.annotation == float:
                    overrides[field_name] = float(value)
                else:
                    overrides[field_name] = value

        return overrides

    @classmethod
    def from_env(cls) -> "SetupConfig":
        """Create configuration with environment variable overrides."""
        return cls(**cls.env_overrides())


def load_table_definitions(path: Path) -> List[TableDefinition]:
    """
    Load table definitions from a YAML file.

    The file holds either a list of definitions or a mapping with a
    top-level "tables" key.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If a definition fails validation
    """
    with open(path, 'r', encoding='utf-8') as f:
        raw = yaml.safe_load(f) or []

    if isinstance(raw, dict):
        raw = raw.get("tables", [])

    return [TableDefinition(**entry) for entry in raw]


class ConfigManager:
    """Manages configuration loading with override precedence."""

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = config_file or Path("config/config.yaml")
        self._config: Optional[SetupConfig] = None

    def load_config(self, cli_overrides: Optional[Dict[str, Any]] = None) -> SetupConfig:
        """
        Load configuration with override precedence: CLI > ENV > YAML.

        Args:
            cli_overrides: Optional dictionary of CLI flag overrides

        Returns:
            Fully merged SetupConfig instance

        Raises:
            ValueError: If configuration validation fails
        """
        config_dict: Dict[str, Any] = {}

        if self.config_file.exists():
            with open(self.config_file, 'r', encoding='utf-8') as f:
                yaml_config = yaml.safe_load(f)
                if yaml_config:
                    config_dict.update(yaml_config)

        merged_dict = SetupConfig(**config_dict).model_dump()
        merged_dict.update(SetupConfig.env_overrides())

        if cli_overrides:
            cli_overrides = {k: v for k, v in cli_overrides.items() if v is not None}
            merged_dict.update(cli_overrides)

        self._config = SetupConfig(**merged_dict)
        return self._config

    @property
    def config(self) -> SetupConfig:
        """Get the loaded configuration."""
        if self._config is None:
            self._config = self.load_config()
        return self._config
