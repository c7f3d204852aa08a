"""
Mapping of Python annotations onto the CrateDB type vocabulary.
"""

import collections.abc
import dataclasses
import datetime
import ipaddress
from enum import Enum
from typing import Any, Optional, Tuple, Union, get_args, get_origin

from ..exceptions import MappingError


class DataType(str, Enum):
    """CrateDB column types used in generated DDL."""

    BOOLEAN = "boolean"
    CHAR = "char"
    SMALLINT = "smallint"
    INTEGER = "integer"
    BIGINT = "bigint"
    REAL = "real"
    DOUBLE = "double precision"
    TEXT = "text"
    TIMESTAMP = "timestamp with time zone"
    IP = "ip"
    GEO_POINT = "geo_point"
    OBJECT = "object"


# bool before int: bool is an int subclass
_SCALAR_TYPES = (
    (bool, DataType.BOOLEAN),
    (int, DataType.BIGINT),
    (float, DataType.DOUBLE),
    (str, DataType.TEXT),
    (datetime.datetime, DataType.TIMESTAMP),
    (datetime.date, DataType.TIMESTAMP),
    (ipaddress.IPv4Address, DataType.IP),
    (ipaddress.IPv6Address, DataType.IP),
)

_SEQUENCE_ORIGINS = (
    list,
    set,
    frozenset,
    tuple,
    collections.abc.Sequence,
    collections.abc.MutableSequence,
    collections.abc.Set,
    collections.abc.MutableSet,
)

_MAPPING_ORIGINS = (
    dict,
    collections.abc.Mapping,
    collections.abc.MutableMapping,
)


def array_of(element_type: str) -> str:
    """Render the CrateDB array type for an element type."""
    return f"array({element_type})"


def is_array_type(data_type: str) -> bool:
    return data_type.startswith("array(") and data_type.endswith(")")


def element_type(data_type: str) -> str:
    """Get the element type of an array type."""
    return data_type[len("array("):-1]


def is_object_type(data_type: str) -> bool:
    """Check if a type is an object, or an array of objects."""
    if is_array_type(data_type):
        return element_type(data_type) == DataType.OBJECT.value
    return data_type == DataType.OBJECT.value


def unwrap_optional(annotation: Any) -> Any:
    """Strip ``None`` from ``Optional[T]``; other unions are left as they are."""
    if get_origin(annotation) is Union:
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def map_annotation(
    annotation: Any,
    entity: Optional[type] = None,
    field_name: Optional[str] = None,
) -> Tuple[str, Optional[type]]:
    """
    Map a field annotation to a CrateDB type.

    Args:
        annotation: Resolved type hint of the field
        entity: Owning entity, used for error context
        field_name: Field name, used for error context

    Returns:
        Tuple of the CrateDB type and the nested dataclass whose fields
        become sub-columns (``None`` for non-object types)

    Raises:
        MappingError: If the annotation has no CrateDB counterpart
    """
    annotation = unwrap_optional(annotation)

    if isinstance(annotation, type) and dataclasses.is_dataclass(annotation):
        return DataType.OBJECT.value, annotation

    origin = get_origin(annotation)

    if origin in _SEQUENCE_ORIGINS:
        args = [arg for arg in get_args(annotation) if arg is not Ellipsis]
        if origin is tuple and len(set(args)) > 1:
            raise MappingError(
                f"cannot map heterogeneous tuple {annotation!r}",
                entity=entity,
                field_name=field_name,
            )
        if not args:
            raise MappingError(
                f"collection {annotation!r} needs an element type",
                entity=entity,
                field_name=field_name,
            )

        inner_type, nested = map_annotation(args[0], entity, field_name)
        if is_array_type(inner_type):
            raise MappingError(
                f"nested arrays are not supported: {annotation!r}",
                entity=entity,
                field_name=field_name,
            )
        return array_of(inner_type), nested

    if origin in _MAPPING_ORIGINS or annotation in (dict, collections.abc.Mapping):
        return DataType.OBJECT.value, None

    if isinstance(annotation, type):
        if issubclass(annotation, Enum):
            return DataType.TEXT.value, None

        for python_type, data_type in _SCALAR_TYPES:
            if issubclass(annotation, python_type):
                return data_type.value, None

    raise MappingError(
        f"cannot map type {annotation!r} to a CrateDB type",
        entity=entity,
        field_name=field_name,
    )
