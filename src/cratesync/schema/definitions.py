"""
Table definitions and their CrateDB DDL rendering.
"""

from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

from ..mapping.types import element_type, is_array_type


def quote_ident(name: str) -> str:
    """Quote an identifier for CrateDB."""
    return '"' + name.replace('"', '""') + '"'


def quote_path(path: Tuple[str, ...]) -> str:
    """Render a column path as ``"root"['child']['leaf']``."""
    root, *segments = path
    subscripts = "".join("['" + seg.replace("'", "''") + "']" for seg in segments)
    return quote_ident(root) + subscripts


@dataclass(frozen=True)
class Column:
    """
    A column to create or add.

    ``extends_existing`` marks an object column that already exists in the
    live table: only its listed sub-columns are new.
    """

    name: str
    data_type: str
    columns: Tuple["Column", ...] = ()
    extends_existing: bool = False

    @property
    def type_sql(self) -> str:
        """Render the column type, expanding declared object sub-columns."""
        if not self.columns:
            return self.data_type

        inner = ", ".join(col.to_sql() for col in self.columns)
        if is_array_type(self.data_type):
            return f"array({element_type(self.data_type)} AS ({inner}))"
        return f"{self.data_type} AS ({inner})"

    def to_sql(self) -> str:
        return f"{quote_ident(self.name)} {self.type_sql}"

    def additions(self, parent: Tuple[str, ...] = ()) -> Iterator[Tuple[Tuple[str, ...], "Column"]]:
        """
        Yield ``(path, column)`` for every column this entry adds.

        A plain column adds itself; an ``extends_existing`` object adds its
        missing sub-columns, each at its full path.
        """
        path = parent + (self.name,)
        if not self.extends_existing:
            yield path, self
            return

        for col in self.columns:
            yield from col.additions(path)


@dataclass(frozen=True)
class TableDefinition:
    """A full table to create, or the columns to add to an existing one."""

    name: str
    columns: Tuple[Column, ...]
    primary_keys: Tuple[str, ...] = ()
    schema: Optional[str] = None
    number_of_shards: Optional[int] = None
    number_of_replicas: Optional[str] = None

    @property
    def full_name(self) -> str:
        if self.schema:
            return f"{self.schema}.{self.name}"
        return self.name

    @property
    def table_reference(self) -> str:
        """Get the quoted, schema-qualified table reference."""
        if self.schema:
            return f"{quote_ident(self.schema)}.{quote_ident(self.name)}"
        return quote_ident(self.name)

    def get_column(self, name: str) -> Optional[Column]:
        wanted = name.lower()
        return next((col for col in self.columns if col.name == wanted), None)

    def create_sql(self) -> str:
        """Render the CREATE TABLE statement."""
        elements = [col.to_sql() for col in self.columns]
        if self.primary_keys:
            keys = ", ".join(quote_ident(key) for key in self.primary_keys)
            elements.append(f"PRIMARY KEY ({keys})")

        sql = f"CREATE TABLE {self.table_reference} ({', '.join(elements)})"

        if self.number_of_shards:
            sql += f" CLUSTERED INTO {self.number_of_shards} SHARDS"
        if self.number_of_replicas is not None:
            replicas = self.number_of_replicas.replace("'", "''")
            sql += f" WITH (number_of_replicas = '{replicas}')"

        return sql
