"""
Declarative markers for persistent entity classes.

Entities are plain dataclasses decorated with ``@entity``. Per-field
overrides (column name, CrateDB type, primary key, transient) are declared
with ``column()``, a thin wrapper around ``dataclasses.field()``.

Example::

    @entity(table="people", shards=4)
    @dataclass
    class Person:
        id: str = column(primary_key=True)
        name: str = ""
        age: int = column(type="integer", default=0)
        address: Optional[Address] = None
        cache: dict = column(transient=True, default_factory=dict)
"""

import dataclasses
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union


ENTITY_ATTRIBUTE = "__crate_entity__"
COLUMN_METADATA_KEY = "cratesync"


@dataclass(frozen=True)
class EntityOptions:
    """Table level settings declared through ``@entity``."""

    table: Optional[str] = None
    schema: Optional[str] = None
    primary_key: Optional[Union[str, Sequence[str]]] = None
    shards: Optional[int] = None
    replicas: Optional[str] = None


@dataclass(frozen=True)
class ColumnOptions:
    """Field level settings declared through ``column()``."""

    name: Optional[str] = None
    type: Optional[str] = None
    primary_key: bool = False
    transient: bool = False


def entity(
    cls: Optional[type] = None,
    *,
    table: Optional[str] = None,
    schema: Optional[str] = None,
    primary_key: Optional[Union[str, Sequence[str]]] = None,
    shards: Optional[int] = None,
    replicas: Optional[Union[int, str]] = None,
) -> Any:
    """
    Mark a dataclass as a persistent entity.

    Usable bare (``@entity``) or with arguments (``@entity(table="x")``).

    Args:
        table: Table name, defaults to the lower-cased class name
        schema: CrateDB schema, defaults to the connection's schema
        primary_key: Field or column name(s) forming the primary key
        shards: Number of shards for CLUSTERED INTO
        replicas: number_of_replicas table setting, e.g. ``1`` or ``"0-1"``
    """
    options = EntityOptions(
        table=table,
        schema=schema,
        primary_key=primary_key,
        shards=shards,
        replicas=str(replicas) if replicas is not None else None,
    )

    def decorate(target: type) -> type:
        setattr(target, ENTITY_ATTRIBUTE, options)
        return target

    if cls is not None:
        return decorate(cls)
    return decorate


def column(
    name: Optional[str] = None,
    type: Optional[str] = None,
    primary_key: bool = False,
    transient: bool = False,
    **kwargs: Any,
) -> Any:
    """Declare a dataclass field with column mapping overrides."""
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[COLUMN_METADATA_KEY] = ColumnOptions(
        name=name,
        type=type,
        primary_key=primary_key,
        transient=transient,
    )
    return dataclasses.field(metadata=metadata, **kwargs)


def is_entity(obj: Any) -> bool:
    """Check if an object is a class marked with ``@entity``."""
    return isinstance(obj, type) and ENTITY_ATTRIBUTE in vars(obj)


def get_entity_options(cls: type) -> EntityOptions:
    """Get the ``@entity`` options of a class, or defaults when unmarked."""
    return vars(cls).get(ENTITY_ATTRIBUTE, EntityOptions())


def get_column_options(field: dataclasses.Field) -> ColumnOptions:
    """Get the ``column()`` options of a dataclass field."""
    return field.metadata.get(COLUMN_METADATA_KEY) or ColumnOptions()


