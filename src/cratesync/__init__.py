"""
cratesync: keeps entity types and CrateDB table schemas in sync.

Entities are declared as annotated dataclasses; on start-up cratesync
creates missing tables and adds missing columns, or recreates every table,
depending on the configured schema option.
"""

__version__ = "0.1.0"

from .config import CrateSyncConfig
from .exceptions import (
    ConfigurationError,
    CrateSyncError,
    DataAccessError,
    MappingError,
    NoSuchTableError,
)
from .mapping import MappingContext, column, entity
from .operations import CrateOperations
from .schema import SchemaManager, SchemaOption

__all__ = [
    "__version__",
    "CrateSyncConfig",
    "CrateSyncError",
    "ConfigurationError",
    "DataAccessError",
    "MappingError",
    "NoSuchTableError",
    "MappingContext",
    "column",
    "entity",
    "CrateOperations",
    "SchemaManager",
    "SchemaOption",
]
