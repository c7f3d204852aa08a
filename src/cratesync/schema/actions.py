"""
Schema actions for cratesync.

Each action describes one database operation. The set is closed: the
execution client has one handler per action type.
"""

from dataclasses import dataclass
from typing import List, Optional, Union

from .definitions import Column, TableDefinition, quote_ident, quote_path


def _table_reference(table_name: str, schema: Optional[str]) -> str:
    if schema:
        return f"{quote_ident(schema)}.{quote_ident(table_name)}"
    return quote_ident(table_name)


@dataclass(frozen=True)
class CreateTableAction:
    """Create a table from a full definition."""

    definition: TableDefinition

    @property
    def table_name(self) -> str:
        return self.definition.full_name

    def statements(self) -> List[str]:
        return [self.definition.create_sql()]

    def describe(self) -> str:
        return f"Create table {self.table_name}"


@dataclass(frozen=True)
class DropTableAction:
    """Drop a table."""

    name: str
    schema: Optional[str] = None

    @property
    def table_name(self) -> str:
        return f"{self.schema}.{self.name}" if self.schema else self.name

    def statements(self) -> List[str]:
        return [f"DROP TABLE {_table_reference(self.name, self.schema)}"]

    def describe(self) -> str:
        return f"Drop table {self.table_name}"


@dataclass(frozen=True)
class AlterTableAction:
    """
    Add one top-level column to a table.

    A column extending an existing object renders one statement per missing
    sub-column path.
    """

    name: str
    column: Column
    schema: Optional[str] = None

    @property
    def table_name(self) -> str:
        return f"{self.schema}.{self.name}" if self.schema else self.name

    def statements(self) -> List[str]:
        table = _table_reference(self.name, self.schema)
        return [
            f"ALTER TABLE {table} ADD COLUMN {quote_path(path)} {col.type_sql}"
            for path, col in self.column.additions()
        ]

    def describe(self) -> str:
        paths = [".".join(path) for path, _ in self.column.additions()]
        return f"Alter table {self.table_name}: add {', '.join(paths)}"


@dataclass(frozen=True)
class ColumnMetadataAction:
    """Read the live columns of a table."""

    name: str
    schema: Optional[str] = None

    @property
    def table_name(self) -> str:
        return f"{self.schema}.{self.name}" if self.schema else self.name

    def describe(self) -> str:
        return f"Read columns of {self.table_name}"


SchemaAction = Union[CreateTableAction, DropTableAction, AlterTableAction, ColumnMetadataAction]
MutatingAction = Union[CreateTableAction, DropTableAction, AlterTableAction]
