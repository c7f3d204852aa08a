"""
Configuration system for cratesync using Pydantic.
"""

import os
from pathlib import Path
from typing import Any, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .database.connection import ConnectionConfig
from .exceptions import ConfigurationError
from .mapping.context import MappingContext


class SchemaManagementConfig(BaseModel):
    """Schema reconciliation configuration."""

    option: Literal["create", "create_drop", "update"] = Field(
        "update", description="Reconciliation policy"
    )
    ignore_failures: bool = Field(
        False, description="Log database failures and continue with the next entity"
    )
    concurrency: int = Field(
        1, ge=1, description="Number of entities reconciled at the same time"
    )
    timeout_seconds: float = Field(
        60.0, gt=0, description="Timeout for a single schema action in seconds"
    )

    @field_validator("option", mode="before")
    @classmethod
    def normalize_option(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO", description="Log level"
    )
    format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    file: Optional[str] = Field(None, description="Log file path")
    max_size: int = Field(10485760, description="Max log file size in bytes")  # 10MB
    backup_count: int = Field(5, description="Number of backup log files")


class CrateSyncConfig(BaseSettings):
    """Main cratesync configuration."""

    # Service configuration
    service_name: str = Field("cratesync", description="Service name")
    debug: bool = Field(False, description="Enable debug mode")

    # Core components
    crate: ConnectionConfig = Field(
        default_factory=ConnectionConfig, description="CrateDB connection"
    )
    entity_modules: List[str] = Field(
        default_factory=list, description="Modules holding @entity classes"
    )
    schema_management: SchemaManagementConfig = Field(
        default_factory=SchemaManagementConfig,
        description="Schema management configuration",
    )

    # System configuration
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CRATESYNC_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "CrateSyncConfig":
        """Load configuration from a YAML file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

            # Expand environment variables in the data
            data = cls._expand_env_vars(data)

            return cls(**data)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @classmethod
    def _expand_env_vars(cls, data: Any) -> Any:
        """Recursively expand environment variables in configuration data."""
        if isinstance(data, dict):
            return {k: cls._expand_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [cls._expand_env_vars(item) for item in data]
        elif isinstance(data, str):
            return os.path.expandvars(data)
        else:
            return data

    def build_mapping_context(self) -> MappingContext:
        """Import the entity modules and build their mapping context."""
        return MappingContext.from_modules(self.entity_modules)

    def validate_config(self) -> MappingContext:
        """
        Validate the configuration for consistency.

        Imports every entity module, so mapping problems are reported here
        rather than on the first database call.
        """
        if not self.entity_modules:
            raise ConfigurationError("No entity modules configured")

        context = self.build_mapping_context()
        if not len(context):
            raise ConfigurationError(
                f"No @entity classes found in {', '.join(self.entity_modules)}"
            )
        return context

    def to_yaml(self, path: Union[str, Path]) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.model_dump(mode="json", exclude_none=True),
                f,
                default_flow_style=False,
                indent=2,
                sort_keys=False,
            )
