"""
Persistent entity descriptors for cratesync.

A descriptor is the structural model of an entity type as a CrateDB table:
table name, primary key and the ordered column tree. Descriptors are built
once per type from ``@entity`` dataclasses and never mutated afterwards.
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, get_type_hints

from ..exceptions import MappingError
from .annotations import get_column_options, get_entity_options
from .types import is_array_type, is_object_type, map_annotation


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColumnDescriptor:
    """Mapping of one persisted field to a column."""

    name: str
    data_type: str
    field_name: Optional[str] = None
    columns: Tuple["ColumnDescriptor", ...] = ()
    primary_key: bool = False

    @property
    def is_object(self) -> bool:
        """Check if this column holds an object or an array of objects."""
        return is_object_type(self.data_type)

    @property
    def is_array(self) -> bool:
        return is_array_type(self.data_type)

    def get_column(self, name: str) -> Optional["ColumnDescriptor"]:
        """Get a sub-column by name (case-insensitive)."""
        return _find_column(self.columns, name)


@dataclass(frozen=True)
class PersistentEntityDescriptor:
    """Mapping of an entity type to a table."""

    type: type
    table_name: str
    columns: Tuple[ColumnDescriptor, ...]
    primary_keys: Tuple[str, ...]
    schema: Optional[str] = None
    number_of_shards: Optional[int] = None
    number_of_replicas: Optional[str] = None

    @property
    def name(self) -> str:
        """Get the entity's class name."""
        return self.type.__qualname__

    @property
    def full_table_name(self) -> str:
        """Get the table name qualified with its schema, if any."""
        if self.schema:
            return f"{self.schema}.{self.table_name}"
        return self.table_name

    @property
    def primary_key_columns(self) -> List[ColumnDescriptor]:
        return [col for col in self.columns if col.primary_key]

    def get_column(self, name: str) -> Optional[ColumnDescriptor]:
        """Get a top-level column by name (case-insensitive)."""
        return _find_column(self.columns, name)


def _find_column(
    columns: Tuple[ColumnDescriptor, ...], name: str
) -> Optional[ColumnDescriptor]:
    wanted = name.lower()
    for col in columns:
        if col.name == wanted:
            return col
    return None


def build_descriptor(cls: type) -> PersistentEntityDescriptor:
    """
    Build the descriptor of an entity class.

    Args:
        cls: Dataclass, usually marked with ``@entity``

    Returns:
        Immutable descriptor of the entity's table

    Raises:
        MappingError: If the class is not a dataclass, has no usable primary
            key, has a field type that cannot be mapped, has duplicate column
            names, or contains itself as a persisted field
    """
    if not (isinstance(cls, type) and dataclasses.is_dataclass(cls)):
        raise MappingError(f"{cls!r} is not a dataclass and cannot be mapped")

    options = get_entity_options(cls)
    columns = _build_columns(cls, cls, (cls,))
    primary_keys = _resolve_primary_keys(cls, options.primary_key, columns)

    columns = tuple(
        dataclasses.replace(col, primary_key=col.name in primary_keys)
        for col in columns
    )

    descriptor = PersistentEntityDescriptor(
        type=cls,
        table_name=(options.table or cls.__name__).lower(),
        columns=columns,
        primary_keys=primary_keys,
        schema=options.schema.lower() if options.schema else None,
        number_of_shards=options.shards,
        number_of_replicas=options.replicas,
    )

    logger.debug(
        f"Built descriptor for {descriptor.name}: table={descriptor.full_table_name}, "
        f"columns={[col.name for col in columns]}, primary_keys={list(primary_keys)}"
    )
    return descriptor


def _build_columns(
    owner: type,
    entity: type,
    path: Tuple[type, ...],
) -> Tuple[ColumnDescriptor, ...]:
    """Build the columns of a dataclass, recursing into nested dataclasses."""
    hints = _resolve_type_hints(owner, entity)
    columns: List[ColumnDescriptor] = []
    seen: Dict[str, str] = {}

    for field in dataclasses.fields(owner):
        options = get_column_options(field)
        if options.transient or field.name.startswith("_"):
            continue

        name = (options.name or field.name).lower()
        if name in seen:
            raise MappingError(
                f"column '{name}' is mapped by both '{seen[name]}' and '{field.name}'",
                entity=entity,
                field_name=field.name,
            )
        seen[name] = field.name

        data_type, nested = _map_field(hints[field.name], options.type, entity, field.name)

        sub_columns: Tuple[ColumnDescriptor, ...] = ()
        if nested is not None:
            if nested in path:
                chain = " -> ".join(t.__qualname__ for t in path + (nested,))
                raise MappingError(
                    f"cyclic nested type graph: {chain}",
                    entity=entity,
                    field_name=field.name,
                )
            sub_columns = _build_columns(nested, entity, path + (nested,))

        columns.append(
            ColumnDescriptor(
                name=name,
                data_type=data_type,
                field_name=field.name,
                columns=sub_columns,
                primary_key=options.primary_key,
            )
        )

    return tuple(columns)


def _map_field(
    annotation: Any,
    type_override: Optional[str],
    entity: type,
    field_name: str,
) -> Tuple[str, Optional[type]]:
    if not type_override:
        return map_annotation(annotation, entity, field_name)

    data_type = type_override.lower()
    if not is_object_type(data_type):
        return data_type, None

    try:
        _, nested = map_annotation(annotation, entity, field_name)
    except MappingError:
        nested = None
    return data_type, nested


def _resolve_type_hints(owner: type, entity: type) -> Dict[str, Any]:
    try:
        return get_type_hints(owner)
    except (NameError, TypeError) as e:
        raise MappingError(
            f"cannot resolve type hints of {owner.__qualname__}: {e}",
            entity=entity,
        ) from e


def _resolve_primary_keys(
    cls: type,
    declared: Any,
    columns: Tuple[ColumnDescriptor, ...],
) -> Tuple[str, ...]:
    """Find the primary key columns: declared on the entity, on fields, or ``id``."""
    if declared:
        names = [declared] if isinstance(declared, str) else list(declared)
        keys = []
        for name in names:
            col = next(
                (c for c in columns if c.name == name.lower() or c.field_name == name),
                None,
            )
            if col is None:
                raise MappingError(
                    f"primary key '{name}' is not a persisted field",
                    entity=cls,
                )
            keys.append(col)
    else:
        keys = [col for col in columns if col.primary_key]
        if not keys:
            fallback = _find_column(columns, "id")
            keys = [fallback] if fallback is not None else []

    if not keys:
        raise MappingError(
            f"no primary key found for {cls.__qualname__}; mark a field with "
            f"column(primary_key=True) or name it 'id'",
            entity=cls,
        )

    for col in keys:
        if col.is_object or col.is_array:
            raise MappingError(
                f"primary key column '{col.name}' must be a primitive type, "
                f"not {col.data_type}",
                entity=cls,
                field_name=col.field_name,
            )

    return tuple(col.name for col in keys)
