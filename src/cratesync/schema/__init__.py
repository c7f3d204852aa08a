"""
Schema management package for cratesync.

This package provides:
- Table definitions and their CrateDB DDL
- Schema action value objects
- Additive table diffing (the table manager)
- The lifecycle-bound schema manager
"""

from .actions import (
    AlterTableAction,
    ColumnMetadataAction,
    CreateTableAction,
    DropTableAction,
)
from .definitions import Column, TableDefinition
from .manager import (
    EntitySyncResult,
    SchemaManager,
    SchemaOption,
    SchemaSyncReport,
    SyncStatus,
)
from .table_manager import TableManager

__all__ = [
    "AlterTableAction",
    "ColumnMetadataAction",
    "CreateTableAction",
    "DropTableAction",
    "Column",
    "TableDefinition",
    "EntitySyncResult",
    "SchemaManager",
    "SchemaOption",
    "SchemaSyncReport",
    "SyncStatus",
    "TableManager",
]
