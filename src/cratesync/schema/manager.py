"""
Schema manager for cratesync.

Reconciles every registered entity with its CrateDB table when the
surrounding process starts, and optionally drops the tables again when it
stops.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from ..database.introspection import TableMetadata
from ..exceptions import (
    ConfigurationError,
    DataAccessError,
    NoSuchTableError,
    ResourceUsageError,
    UnknownPolicyError,
)
from ..mapping.context import MappingContext
from ..mapping.descriptor import PersistentEntityDescriptor
from .actions import (
    AlterTableAction,
    ColumnMetadataAction,
    CreateTableAction,
    DropTableAction,
    MutatingAction,
)
from .table_manager import TableManager

if TYPE_CHECKING:
    from ..operations import CrateOperations


logger = logging.getLogger(__name__)


class SchemaOption(str, Enum):
    """Reconciliation policy."""

    CREATE = "create"              # drop and create on start
    CREATE_DROP = "create_drop"    # drop and create on start, drop on stop
    UPDATE = "update"              # add missing columns, create missing tables


class SyncStatus(str, Enum):
    """Outcome of reconciling one entity."""

    CREATED = "created"
    ALTERED = "altered"
    IN_SYNC = "in_sync"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class EntitySyncResult:
    """Result of reconciling one entity with its table."""

    entity: type
    table: str
    status: SyncStatus
    actions: List[MutatingAction] = field(default_factory=list)
    error: Optional[str] = None
    execution_time_ms: float = 0.0

    @property
    def statements(self) -> List[str]:
        """Get the SQL of every action, in execution order."""
        return [sql for action in self.actions for sql in action.statements()]


@dataclass
class SchemaSyncReport:
    """Result of a reconciliation run."""

    option: SchemaOption
    results: List[EntitySyncResult] = field(default_factory=list)
    dry_run: bool = False

    @property
    def failed(self) -> List[EntitySyncResult]:
        return [r for r in self.results if r.status == SyncStatus.FAILED]

    @property
    def succeeded(self) -> bool:
        """Check that no entity failed."""
        return not self.failed

    def summary(self) -> Dict[str, Any]:
        """Get counts per status."""
        counts = {status.value: 0 for status in SyncStatus}
        for result in self.results:
            counts[result.status.value] += 1

        return {
            "option": self.option.value,
            "dry_run": self.dry_run,
            "total": len(self.results),
            **counts,
            "failed_tables": [r.table for r in self.failed],
        }


def coerce_schema_option(value: Any) -> SchemaOption:
    """
    Convert a configured value to a SchemaOption.

    Raises:
        UnknownPolicyError: If the value is not a known option
    """
    if isinstance(value, SchemaOption):
        return value
    try:
        return SchemaOption(str(value).lower())
    except ValueError:
        raise UnknownPolicyError(value, [o.value for o in SchemaOption]) from None


class SchemaManager:
    """
    Lifecycle-bound coordinator of table reconciliation.

    ``start()`` reconciles every entity of the mapping context according to
    the schema option; ``stop()`` drops the processed tables under
    ``CREATE_DROP``. Both are meant to be called once, in that order.

    Entities are reconciled as tasks bounded by ``concurrency``; the actions
    of one entity always run in sequence.
    """

    def __init__(
        self,
        operations: "CrateOperations",
        mapping_context: Optional[MappingContext] = None,
        schema_option: Any = SchemaOption.UPDATE,
        ignore_failures: bool = False,
        concurrency: int = 1,
    ):
        if concurrency < 1:
            raise ConfigurationError(f"concurrency must be at least 1, got {concurrency}")

        if mapping_context is None:
            mapping_context = operations.mapping_context

        self.operations = operations
        self.mapping_context = mapping_context
        self.schema_option = coerce_schema_option(schema_option)
        self.ignore_failures = ignore_failures
        self.concurrency = concurrency
        self.table_manager = TableManager()

        # entity type -> processed marker, consulted by stop()
        self.inspected_entities: Dict[type, bool] = {}

    async def start(self) -> SchemaSyncReport:
        """
        Reconcile every registered entity.

        Returns:
            Report with one result per entity

        Raises:
            DataAccessError: The first database failure, unless
                ``ignore_failures`` is set. No further entity is started
                once a failure has occurred.
        """
        descriptors = self.mapping_context.get_persistent_entities()
        logger.info(
            f"Reconciling {len(descriptors)} entities "
            f"(option={self.schema_option.value}, concurrency={self.concurrency})"
        )

        semaphore = asyncio.Semaphore(self.concurrency)
        aborted = asyncio.Event()
        errors: List[DataAccessError] = []

        async def run(descriptor: PersistentEntityDescriptor) -> EntitySyncResult:
            async with semaphore:
                if aborted.is_set():
                    return EntitySyncResult(
                        entity=descriptor.type,
                        table=descriptor.full_table_name,
                        status=SyncStatus.SKIPPED,
                    )

                try:
                    return await self._reconcile(descriptor)
                except DataAccessError as e:
                    if self.ignore_failures:
                        logger.warning(f"Ignoring failure for '{descriptor.full_table_name}': {e}")
                    else:
                        logger.error(f"Reconciliation failed for '{descriptor.full_table_name}': {e}")
                        aborted.set()
                        errors.append(e)

                    return EntitySyncResult(
                        entity=descriptor.type,
                        table=descriptor.full_table_name,
                        status=SyncStatus.FAILED,
                        error=str(e),
                    )

        results = await asyncio.gather(*(run(d) for d in descriptors))

        if errors:
            raise errors[0]

        report = SchemaSyncReport(option=self.schema_option, results=list(results))
        logger.info(f"Reconciliation completed: {report.summary()}")
        return report

    async def stop(self) -> None:
        """Drop the tables of every processed entity under CREATE_DROP. Never raises."""
        if self.schema_option != SchemaOption.CREATE_DROP:
            return

        for entity_type in list(self.inspected_entities):
            try:
                descriptor = self.mapping_context.get_persistent_entity(entity_type)
                await self._drop_table(DropTableAction(descriptor.table_name, descriptor.schema), descriptor)
            except Exception as e:
                logger.error(f"Failed to drop table for '{entity_type.__qualname__}': {e}")

        self.inspected_entities.clear()

    async def plan(self) -> SchemaSyncReport:
        """
        Compute the actions ``start()`` would execute, without executing them.

        Live table metadata is still read for the UPDATE option.
        """
        results = []
        for descriptor in self.mapping_context.get_persistent_entities():
            actions, status = await self._plan_entity(descriptor)
            results.append(
                EntitySyncResult(
                    entity=descriptor.type,
                    table=descriptor.full_table_name,
                    status=status,
                    actions=actions,
                )
            )

        return SchemaSyncReport(option=self.schema_option, results=results, dry_run=True)

    async def _plan_entity(
        self, descriptor: PersistentEntityDescriptor
    ) -> Tuple[List[MutatingAction], SyncStatus]:
        if self.schema_option in (SchemaOption.CREATE, SchemaOption.CREATE_DROP):
            return [
                DropTableAction(descriptor.table_name, descriptor.schema),
                CreateTableAction(self.table_manager.create_definition(descriptor)),
            ], SyncStatus.CREATED

        if self.schema_option == SchemaOption.UPDATE:
            try:
                table_metadata = await self._get_table_metadata(descriptor)
            except NoSuchTableError as e:
                logger.info(str(e))
                return [
                    CreateTableAction(self.table_manager.create_definition(descriptor)),
                ], SyncStatus.CREATED

            definition = self.table_manager.update_definition(descriptor, table_metadata)
            if definition is None:
                logger.info(
                    f"entity '{descriptor.name}' and crate db table "
                    f"'{table_metadata.full_name}' are in sync"
                )
                return [], SyncStatus.IN_SYNC

            return [
                AlterTableAction(definition.name, column, definition.schema)
                for column in definition.columns
            ], SyncStatus.ALTERED

        raise UnknownPolicyError(self.schema_option, [o.value for o in SchemaOption])

    async def _reconcile(self, descriptor: PersistentEntityDescriptor) -> EntitySyncResult:
        start_time = time.monotonic()
        actions, status = await self._plan_entity(descriptor)

        for action in actions:
            if isinstance(action, DropTableAction):
                await self._drop_table(action, descriptor)
            else:
                await self.operations.execute(action)
                verb = "created" if isinstance(action, CreateTableAction) else "altered"
                logger.info(f"{verb} table '{action.table_name}' for '{descriptor.name}'")

        self._add_inspected_entity(descriptor)

        return EntitySyncResult(
            entity=descriptor.type,
            table=descriptor.full_table_name,
            status=status,
            actions=actions,
            execution_time_ms=(time.monotonic() - start_time) * 1000,
        )

    async def _drop_table(self, action: DropTableAction, descriptor: PersistentEntityDescriptor) -> None:
        try:
            await self.operations.execute(action)
            logger.info(f"dropped table '{action.table_name}' for '{descriptor.name}'")
        except ResourceUsageError as e:
            logger.warning(str(e))

    async def _get_table_metadata(self, descriptor: PersistentEntityDescriptor) -> TableMetadata:
        action = ColumnMetadataAction(descriptor.table_name, descriptor.schema)
        columns = await self.operations.execute(action)
        return TableMetadata(name=descriptor.table_name, columns=columns, schema=descriptor.schema)

    def _add_inspected_entity(self, descriptor: PersistentEntityDescriptor) -> None:
        self.inspected_entities.setdefault(descriptor.type, True)

    async def __aenter__(self) -> "SchemaManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
