"""
Database schema introspection for cratesync.

Reads what a CrateDB table currently looks like from
``information_schema``. CrateDB reports object sub-columns as paths such as
``address['city']``; these are folded into a nested column tree.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .connection import ConnectionPool
from ..exceptions import NoSuchTableError


logger = logging.getLogger(__name__)


_PATH_ROOT = re.compile(r"^([^\[]+)")
_PATH_SEGMENT = re.compile(r"\['((?:[^']|'')*)'\]")


@dataclass
class ColumnMetadata:
    """A column as reported by the database."""

    name: str
    data_type: str
    columns: List["ColumnMetadata"] = field(default_factory=list)

    def get_column(self, name: str) -> Optional["ColumnMetadata"]:
        """Get a sub-column by name (case-insensitive)."""
        return _find_column(self.columns, name)

    def has_column(self, name: str) -> bool:
        return self.get_column(name) is not None


@dataclass
class TableMetadata:
    """A table's columns as reported by the database at a point in time."""

    name: str
    columns: List[ColumnMetadata]
    schema: Optional[str] = None

    @property
    def full_name(self) -> str:
        """Get the table name qualified with its schema, if any."""
        if self.schema:
            return f"{self.schema}.{self.name}"
        return self.name

    @property
    def column_names(self) -> List[str]:
        return [col.name for col in self.columns]

    def get_column(self, name: str) -> Optional[ColumnMetadata]:
        """Get a top-level column by name (case-insensitive)."""
        return _find_column(self.columns, name)

    def has_column(self, name: str) -> bool:
        """Check if table has a specific top-level column."""
        return self.get_column(name) is not None


def _find_column(columns: List[ColumnMetadata], name: str) -> Optional[ColumnMetadata]:
    wanted = name.lower()
    for col in columns:
        if col.name.lower() == wanted:
            return col
    return None


def parse_column_path(column_name: str) -> Tuple[str, ...]:
    """
    Split a reported column name into its path.

    ``"address['geo']['lat']"`` becomes ``("address", "geo", "lat")``.
    """
    match = _PATH_ROOT.match(column_name)
    if not match:
        return (column_name,)

    root = match.group(1)
    segments = [s.replace("''", "'") for s in _PATH_SEGMENT.findall(column_name[match.end():])]
    return (root, *segments)


def build_column_tree(rows: List[Tuple[str, str]]) -> List[ColumnMetadata]:
    """Fold ``(column_name, data_type)`` rows into a nested column list."""
    paths = [(parse_column_path(name), data_type) for name, data_type in rows]

    top_level: List[ColumnMetadata] = []
    index: Dict[Tuple[str, ...], ColumnMetadata] = {}

    # parents first, keeping the reported order among siblings
    for path, data_type in sorted(paths, key=lambda item: len(item[0])):
        col = ColumnMetadata(name=path[-1], data_type=data_type)
        index[path] = col

        parent_path = path[:-1]
        if not parent_path:
            top_level.append(col)
            continue

        parent = index.get(parent_path)
        if parent is None:
            logger.warning(f"Sub-column {'.'.join(path)} reported without its parent column")
            continue
        parent.columns.append(col)

    return top_level


class SchemaIntrospector:
    """Database schema introspection utilities."""

    def __init__(self, pool: ConnectionPool, default_schema: str = "doc"):
        self.pool = pool
        self.default_schema = default_schema

    async def table_exists(self, table: str, schema: Optional[str] = None) -> bool:
        """Check if a table exists."""
        query = """
            SELECT count(*)
            FROM information_schema.tables
            WHERE table_schema = $1 AND table_name = $2
        """
        result = await self.pool.fetchval(query, schema or self.default_schema, table)
        return bool(result)

    async def get_columns(self, table: str, schema: Optional[str] = None) -> List[ColumnMetadata]:
        """
        Get all columns of a table, nested columns folded into their parents.

        Raises:
            NoSuchTableError: If the table does not exist
        """
        query = """
            SELECT column_name, data_type
            FROM information_schema.columns
            WHERE table_schema = $1 AND table_name = $2
            ORDER BY ordinal_position
        """

        rows = await self.pool.fetch(query, schema or self.default_schema, table)
        if not rows and not await self.table_exists(table, schema):
            raise NoSuchTableError(f"{schema}.{table}" if schema else table)

        return build_column_tree([(row["column_name"], row["data_type"]) for row in rows])
