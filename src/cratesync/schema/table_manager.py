"""
Table definition builder for cratesync.

Derives full table definitions from entity descriptors and computes the
additive difference between a descriptor and a live table.
"""

import logging
from typing import List, Optional, Sequence

from ..database.introspection import ColumnMetadata, TableMetadata
from ..mapping.descriptor import ColumnDescriptor, PersistentEntityDescriptor
from ..mapping.types import is_array_type
from .definitions import Column, TableDefinition


logger = logging.getLogger(__name__)


class TableManager:
    """
    Builds table definitions from entity descriptors.

    The diff is strictly additive: columns are never renamed, retyped or
    dropped. Columns present on both sides are assumed to have compatible
    types.
    """

    def create_definition(self, descriptor: PersistentEntityDescriptor) -> TableDefinition:
        """
        Build the full definition of an entity's table.

        Columns keep the descriptor's declared order, nested object columns
        included.
        """
        return TableDefinition(
            name=descriptor.table_name,
            columns=tuple(self._to_column(col) for col in descriptor.columns),
            primary_keys=descriptor.primary_keys,
            schema=descriptor.schema,
            number_of_shards=descriptor.number_of_shards,
            number_of_replicas=descriptor.number_of_replicas,
        )

    def update_definition(
        self,
        descriptor: PersistentEntityDescriptor,
        table_metadata: TableMetadata,
    ) -> Optional[TableDefinition]:
        """
        Build a definition holding only the columns missing from the live table.

        Args:
            descriptor: What the table should look like
            table_metadata: What the table currently looks like

        Returns:
            Definition of the columns to add, in declared order, or ``None``
            when the table is already in sync
        """
        missing = self._missing_columns(descriptor.columns, table_metadata.columns)

        if not missing:
            logger.debug(f"Table {descriptor.full_table_name} has every column of {descriptor.name}")
            return None

        logger.debug(
            f"Table {descriptor.full_table_name} is missing columns "
            f"{[col.name for col in missing]}"
        )
        return TableDefinition(
            name=descriptor.table_name,
            columns=tuple(missing),
            schema=descriptor.schema,
        )

    def _to_column(self, descriptor: ColumnDescriptor) -> Column:
        return Column(
            name=descriptor.name,
            data_type=descriptor.data_type,
            columns=tuple(self._to_column(col) for col in descriptor.columns),
        )

    def _missing_columns(
        self,
        declared: Sequence[ColumnDescriptor],
        live: Sequence[ColumnMetadata],
    ) -> List[Column]:
        live_by_name = {col.name.lower(): col for col in live}
        missing: List[Column] = []

        for col in declared:
            live_col = live_by_name.get(col.name)

            if live_col is None:
                missing.append(self._to_column(col))
                continue

            if not self._diffs_sub_columns(col):
                continue

            missing_sub_columns = self._missing_columns(col.columns, live_col.columns)
            if missing_sub_columns:
                missing.append(
                    Column(
                        name=col.name,
                        data_type=col.data_type,
                        columns=tuple(missing_sub_columns),
                        extends_existing=True,
                    )
                )

        return missing

    @staticmethod
    def _diffs_sub_columns(col: ColumnDescriptor) -> bool:
        """Only plain objects with declared sub-columns are compared below the top level."""
        return bool(col.columns) and col.is_object and not is_array_type(col.data_type)

