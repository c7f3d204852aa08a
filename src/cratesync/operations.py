"""
Execution client for cratesync schema actions.

Runs one action per call against CrateDB, bounded by a timeout, and
translates driver errors into the cratesync error hierarchy.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import asyncpg

from .database.connection import ConnectionPool
from .database.introspection import ColumnMetadata, SchemaIntrospector
from .exceptions import (
    DataAccessError,
    DataAccessTimeoutError,
    NoSuchTableError,
    ResourceUsageError,
)
from .mapping.context import MappingContext
from .schema.actions import (
    AlterTableAction,
    ColumnMetadataAction,
    CreateTableAction,
    DropTableAction,
    SchemaAction,
)
from .schema.table_manager import TableManager


logger = logging.getLogger(__name__)


def translate_error(error: Exception, table_name: str) -> DataAccessError:
    """Map an asyncpg error onto the cratesync error hierarchy."""
    if isinstance(error, asyncpg.exceptions.UndefinedTableError):
        return NoSuchTableError(table_name, cause=error)

    sqlstate = getattr(error, "sqlstate", None) or ""
    details = {"table": table_name}
    if sqlstate:
        details["sqlstate"] = sqlstate

    # class 42: syntax error or access rule violation; missing privileges are
    # access failures, not resource usage errors
    if sqlstate.startswith("42") and not isinstance(
        error, asyncpg.exceptions.InsufficientPrivilegeError
    ):
        return ResourceUsageError(str(error), details, cause=error)

    return DataAccessError(str(error), details, cause=error)


class CrateOperations:
    """Executes schema actions against CrateDB."""

    def __init__(
        self,
        pool: ConnectionPool,
        mapping_context: MappingContext,
        default_schema: str = "doc",
        timeout_seconds: float = 60.0,
    ):
        self.pool = pool
        self.mapping_context = mapping_context
        self.timeout_seconds = timeout_seconds
        self.table_manager = TableManager()
        self.introspector = SchemaIntrospector(pool, default_schema)

        self._handlers: Dict[type, Callable[[Any], Awaitable[Any]]] = {
            CreateTableAction: self._execute_statements,
            DropTableAction: self._execute_statements,
            AlterTableAction: self._execute_statements,
            ColumnMetadataAction: self._read_columns,
        }

    async def execute(self, action: SchemaAction) -> Optional[List[ColumnMetadata]]:
        """
        Execute one schema action.

        Returns:
            The live columns for a ColumnMetadataAction, ``None`` otherwise

        Raises:
            NoSuchTableError: If the action's table does not exist
            ResourceUsageError: If the statement is invalid for the table
            DataAccessTimeoutError: If the action exceeds the timeout
            DataAccessError: On any other database failure
        """
        handler = self._handlers.get(type(action))
        if handler is None:
            raise TypeError(f"Unsupported schema action: {action!r}")

        try:
            return await asyncio.wait_for(handler(action), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise DataAccessTimeoutError(
                f"{action.describe()} timed out", self.timeout_seconds
            ) from e
        except asyncpg.PostgresError as e:
            raise translate_error(e, action.table_name) from e
        except (asyncpg.InterfaceError, OSError) as e:
            raise DataAccessError(
                f"{action.describe()} failed: {e}", {"table": action.table_name}, cause=e
            ) from e

    async def _execute_statements(
        self, action: Union[CreateTableAction, DropTableAction, AlterTableAction]
    ) -> None:
        for statement in action.statements():
            logger.debug(f"Executing: {statement}")
            await self.pool.execute(statement)

    async def _read_columns(self, action: ColumnMetadataAction) -> List[ColumnMetadata]:
        return await self.introspector.get_columns(action.name, action.schema)

    async def create_table(self, entity_type: type) -> bool:
        """Create the table of an entity type from its full definition."""
        descriptor = self.mapping_context.get_persistent_entity(entity_type)
        definition = self.table_manager.create_definition(descriptor)
        await self.execute(CreateTableAction(definition))
        logger.info(f"created table '{descriptor.full_table_name}' for '{descriptor.name}'")
        return True

    async def drop_table(self, target: Union[type, str], schema: Optional[str] = None) -> bool:
        """
        Drop the table of an entity type, or a table by name.

        Returns:
            ``False`` if the table did not exist
        """
        if isinstance(target, str):
            action = DropTableAction(target, schema)
        else:
            descriptor = self.mapping_context.get_persistent_entity(target)
            action = DropTableAction(descriptor.table_name, descriptor.schema)

        try:
            await self.execute(action)
        except NoSuchTableError as e:
            logger.info(str(e))
            return False

        logger.info(f"dropped table '{action.table_name}'")
        return True
