"""
Exception classes for cratesync.
"""

from typing import Any, Dict, Optional


class CrateSyncError(Exception):
    """Base exception for all cratesync errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        result = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            result += f" [{details_str}]"
        if self.cause:
            result += f" (caused by: {self.cause})"
        return result


class ConfigurationError(CrateSyncError):
    """Raised when there's an error in configuration."""

    pass


class UnknownPolicyError(ConfigurationError):
    """Raised when a schema option is not one of the supported values."""

    def __init__(self, option: Any, valid_options: Any) -> None:
        super().__init__(
            f"unknown SchemaOption {option!r}. valid values are {list(valid_options)}"
        )
        self.option = option


class MappingError(CrateSyncError):
    """Raised when an entity type cannot be mapped to a table."""

    def __init__(
        self,
        message: str,
        entity: Optional[type] = None,
        field_name: Optional[str] = None,
    ) -> None:
        details = {}
        if entity is not None:
            details["entity"] = entity.__qualname__
        if field_name:
            details["field"] = field_name

        super().__init__(message, details)
        self.entity = entity
        self.field_name = field_name


class DataAccessError(CrateSyncError):
    """Raised when there's an error with database operations."""

    pass


class DatabaseConnectionError(DataAccessError):
    """Raised when there's an error establishing or maintaining database connections."""

    pass


class DataAccessTimeoutError(DataAccessError):
    """Raised when a database call exceeds its deadline."""

    def __init__(
        self,
        message: str = "Database call timed out",
        timeout_duration: Optional[float] = None,
    ) -> None:
        if timeout_duration:
            message += f" (timeout: {timeout_duration}s)"

        super().__init__(message)
        self.timeout_duration = timeout_duration


class ResourceUsageError(DataAccessError):
    """Raised when a statement references a resource in an invalid way."""

    pass


class NoSuchTableError(ResourceUsageError):
    """Raised when the referenced table does not exist."""

    def __init__(
        self,
        table_name: str,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(f"table '{table_name}' does not exist", cause=cause)
        self.table_name = table_name
