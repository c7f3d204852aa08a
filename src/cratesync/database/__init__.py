"""
Database integration package for cratesync.

This package provides:
- Async CrateDB connection pooling
- Table and column introspection
"""

from .connection import ConnectionConfig, ConnectionPool
from .introspection import ColumnMetadata, SchemaIntrospector, TableMetadata

__all__ = [
    "ConnectionConfig",
    "ConnectionPool",
    "ColumnMetadata",
    "SchemaIntrospector",
    "TableMetadata",
]
