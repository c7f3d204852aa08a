"""
Entity mapping package for cratesync.

This package provides:
- Declarative ``@entity`` / ``column()`` markers for dataclasses
- Python to CrateDB type mapping
- Immutable entity descriptors built from marked classes
- The mapping context registry
"""

from .annotations import column, entity, is_entity
from .context import MappingContext
from .descriptor import ColumnDescriptor, PersistentEntityDescriptor, build_descriptor
from .types import DataType

__all__ = [
    "entity",
    "column",
    "is_entity",
    "MappingContext",
    "ColumnDescriptor",
    "PersistentEntityDescriptor",
    "build_descriptor",
    "DataType",
]
