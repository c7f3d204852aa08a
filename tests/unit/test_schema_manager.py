"""
Tests for cratesync.schema.manager module.
"""

import logging
from typing import Dict, List

import asyncpg
import pytest

from cratesync.database.introspection import build_column_tree
from cratesync.exceptions import (
    ConfigurationError,
    DataAccessError,
    NoSuchTableError,
    UnknownPolicyError,
)
from cratesync.mapping import MappingContext
from cratesync.operations import CrateOperations
from cratesync.schema.actions import (
    AlterTableAction,
    ColumnMetadataAction,
    CreateTableAction,
    DropTableAction,
)
from cratesync.schema.manager import (
    EntitySyncResult,
    SchemaManager,
    SchemaOption,
    SchemaSyncReport,
    SyncStatus,
    coerce_schema_option,
)

from tests.sample_entities import Book, Person


class FakeCluster:
    """
    Records executed actions and answers column reads from a table map.

    ``tables`` maps table names to information_schema rows; a missing entry
    means the table does not exist.
    """

    def __init__(self, tables=None, failing=()):
        self.tables: Dict[str, list] = dict(tables or {})
        self.failing = set(failing)
        self.actions: List = []

    async def __call__(self, action):
        self.actions.append(action)

        if isinstance(action, ColumnMetadataAction):
            if action.name not in self.tables:
                raise NoSuchTableError(action.table_name)
            return build_column_tree(self.tables[action.name])

        name = action.definition.name if isinstance(action, CreateTableAction) else action.name
        if (type(action), name) in self.failing:
            raise DataAccessError(f"{action.describe()} failed")

        if isinstance(action, DropTableAction) and action.name not in self.tables:
            raise NoSuchTableError(action.table_name)
        if isinstance(action, DropTableAction):
            del self.tables[action.name]
        if isinstance(action, CreateTableAction):
            self.tables[name] = []
        return None

    def of_type(self, action_type) -> List:
        return [a for a in self.actions if isinstance(a, action_type)]

    def tables_of(self, action_type) -> List[str]:
        return [a.table_name for a in self.of_type(action_type)]


@pytest.fixture
def cluster(mock_operations):
    fake = FakeCluster()
    mock_operations.execute.side_effect = fake.__call__
    return fake


class TestSchemaOption:
    def test_coerce(self):
        assert coerce_schema_option("CREATE") == SchemaOption.CREATE
        assert coerce_schema_option("create_drop") == SchemaOption.CREATE_DROP
        assert coerce_schema_option(SchemaOption.UPDATE) == SchemaOption.UPDATE

    @pytest.mark.parametrize("value", ["validate", "", None, 3])
    def test_unknown_option(self, value):
        with pytest.raises(UnknownPolicyError) as exc_info:
            coerce_schema_option(value)

        assert "unknown SchemaOption" in str(exc_info.value)
        assert isinstance(exc_info.value, ConfigurationError)


class TestSchemaManagerInit:
    def test_defaults(self, mock_operations, mapping_context):
        manager = SchemaManager(mock_operations)

        assert manager.schema_option == SchemaOption.UPDATE
        assert manager.ignore_failures is False
        assert manager.concurrency == 1
        assert manager.mapping_context is mapping_context
        assert manager.inspected_entities == {}

    def test_empty_mapping_context_is_kept(self, mock_operations):
        empty = MappingContext()
        assert SchemaManager(mock_operations, empty).mapping_context is empty

    def test_unknown_option(self, mock_operations):
        with pytest.raises(UnknownPolicyError):
            SchemaManager(mock_operations, schema_option="none")

    def test_invalid_concurrency(self, mock_operations):
        with pytest.raises(ConfigurationError, match="concurrency"):
            SchemaManager(mock_operations, concurrency=0)


class TestUpdateOption:
    """Reconciliation under SchemaOption.UPDATE."""

    @pytest.mark.asyncio
    async def test_missing_table_is_created(self, mock_operations, cluster, caplog):
        caplog.set_level(logging.INFO, logger="cratesync")
        manager = SchemaManager(mock_operations, MappingContext([Person]))

        report = await manager.start()

        assert cluster.tables_of(CreateTableAction) == ["people"]
        assert cluster.of_type(AlterTableAction) == []
        assert cluster.of_type(DropTableAction) == []
        assert report.results[0].status == SyncStatus.CREATED
        assert Person in manager.inspected_entities
        assert "table 'people' does not exist" in caplog.text

    @pytest.mark.asyncio
    async def test_table_in_sync(self, mock_operations, cluster, person_rows, caplog):
        caplog.set_level(logging.INFO, logger="cratesync")
        cluster.tables["people"] = person_rows
        manager = SchemaManager(mock_operations, MappingContext([Person]))

        report = await manager.start()

        assert cluster.actions == [ColumnMetadataAction("people", None)]
        assert report.results[0].status == SyncStatus.IN_SYNC
        assert report.results[0].statements == []
        assert Person in manager.inspected_entities
        assert "entity 'Person' and crate db table 'people' are in sync" in caplog.text

    @pytest.mark.asyncio
    async def test_one_alter_per_missing_column(self, mock_operations, cluster, person_rows):
        cluster.tables["people"] = [
            row for row in person_rows if row[0] not in ("name", "tags", "address['zip']")
        ]
        manager = SchemaManager(mock_operations, MappingContext([Person]))

        report = await manager.start()

        alters = cluster.of_type(AlterTableAction)
        assert [a.column.name for a in alters] == ["name", "address", "tags"]
        assert cluster.of_type(CreateTableAction) == []
        assert report.results[0].status == SyncStatus.ALTERED
        assert report.results[0].statements == [
            'ALTER TABLE "people" ADD COLUMN "name" text',
            "ALTER TABLE \"people\" ADD COLUMN \"address\"['zip'] text",
            'ALTER TABLE "people" ADD COLUMN "tags" array(text)',
        ]

    @pytest.mark.asyncio
    async def test_metadata_is_read_on_every_start(self, mock_operations, cluster, person_rows):
        cluster.tables["people"] = person_rows
        manager = SchemaManager(mock_operations, MappingContext([Person]))

        await manager.start()
        await manager.start()

        assert len(cluster.of_type(ColumnMetadataAction)) == 2

    @pytest.mark.asyncio
    async def test_stop_is_a_no_op(self, mock_operations, cluster):
        manager = SchemaManager(mock_operations)
        await manager.start()
        cluster.actions.clear()

        await manager.stop()

        assert cluster.actions == []


class TestCreateOptions:
    """Reconciliation under SchemaOption.CREATE and CREATE_DROP."""

    @pytest.mark.asyncio
    async def test_create_drop_start(self, mock_operations, cluster):
        manager = SchemaManager(mock_operations, schema_option=SchemaOption.CREATE_DROP)

        report = await manager.start()

        assert cluster.tables_of(DropTableAction) == ["people", "book"]
        assert cluster.tables_of(CreateTableAction) == ["people", "book"]
        assert [type(a) for a in cluster.actions] == [
            DropTableAction, CreateTableAction, DropTableAction, CreateTableAction,
        ]
        assert cluster.of_type(ColumnMetadataAction) == []
        assert report.succeeded
        assert set(manager.inspected_entities) == {Person, Book}

    @pytest.mark.asyncio
    async def test_create_drop_stop(self, mock_operations, cluster):
        manager = SchemaManager(mock_operations, schema_option="create_drop")
        await manager.start()
        cluster.actions.clear()

        await manager.stop()

        assert cluster.tables_of(DropTableAction) == ["people", "book"]
        assert len(cluster.actions) == 2
        assert manager.inspected_entities == {}

    @pytest.mark.asyncio
    async def test_existing_table_is_recreated(self, mock_operations, cluster, person_rows):
        cluster.tables["people"] = person_rows
        manager = SchemaManager(
            mock_operations, MappingContext([Person]), schema_option=SchemaOption.CREATE
        )

        await manager.start()

        assert [type(a) for a in cluster.actions] == [DropTableAction, CreateTableAction]
        assert cluster.tables["people"] == []

    @pytest.mark.asyncio
    async def test_create_stop_is_a_no_op(self, mock_operations, cluster):
        manager = SchemaManager(mock_operations, schema_option=SchemaOption.CREATE)
        await manager.start()
        cluster.actions.clear()

        await manager.stop()

        assert cluster.actions == []

    @pytest.mark.asyncio
    async def test_stop_drops_only_processed_types(self, mock_operations, cluster):
        cluster.failing.add((CreateTableAction, "book"))
        manager = SchemaManager(
            mock_operations,
            schema_option=SchemaOption.CREATE_DROP,
            ignore_failures=True,
        )
        await manager.start()
        cluster.actions.clear()

        await manager.stop()

        assert cluster.tables_of(DropTableAction) == ["people"]

    @pytest.mark.asyncio
    async def test_stop_never_raises(self, mock_operations, cluster, caplog):
        manager = SchemaManager(mock_operations, schema_option=SchemaOption.CREATE_DROP)
        await manager.start()
        cluster.failing.add((DropTableAction, "people"))
        cluster.actions.clear()

        await manager.stop()

        assert cluster.tables_of(DropTableAction) == ["people", "book"]
        assert "Failed to drop table for 'Person'" in caplog.text

    @pytest.mark.asyncio
    async def test_async_context_manager(self, mock_operations, cluster):
        async with SchemaManager(mock_operations, schema_option="create_drop") as manager:
            assert len(cluster.of_type(CreateTableAction)) == 2
            assert len(manager.inspected_entities) == 2

        assert len(cluster.of_type(DropTableAction)) == 4
        assert cluster.tables == {}


class TestFailurePolicy:
    """Failure handling during start()."""

    @pytest.mark.asyncio
    async def test_failure_aborts_the_run(self, mock_operations, cluster, caplog):
        cluster.failing.add((CreateTableAction, "people"))
        manager = SchemaManager(mock_operations)

        with pytest.raises(DataAccessError, match="Create table people failed"):
            await manager.start()

        assert "book" not in [a.table_name for a in cluster.actions]
        assert manager.inspected_entities == {}
        assert "Reconciliation failed for 'people'" in caplog.text

    @pytest.mark.asyncio
    async def test_ignored_failure_continues(self, mock_operations, cluster, caplog):
        cluster.failing.add((CreateTableAction, "people"))
        manager = SchemaManager(mock_operations, ignore_failures=True)

        report = await manager.start()

        assert cluster.tables_of(CreateTableAction) == ["people", "book"]
        assert [r.status for r in report.results] == [SyncStatus.FAILED, SyncStatus.CREATED]
        assert report.failed[0].error == "Create table people failed"
        assert not report.succeeded
        assert set(manager.inspected_entities) == {Book}
        assert any(
            r.levelno == logging.WARNING and "Ignoring failure for 'people'" in r.getMessage()
            for r in caplog.records
        )

    @pytest.mark.asyncio
    async def test_pending_entities_are_not_started(self, mock_operations, cluster):
        cluster.failing.add((CreateTableAction, "people"))
        manager = SchemaManager(mock_operations, concurrency=1)

        with pytest.raises(DataAccessError):
            await manager.start()

        assert cluster.tables_of(ColumnMetadataAction) == ["people"]

    @pytest.mark.asyncio
    async def test_permission_denied_drop_is_not_swallowed(self, mock_pool):
        mock_pool.execute.side_effect = asyncpg.exceptions.InsufficientPrivilegeError(
            "permission denied for DROP"
        )
        operations = CrateOperations(mock_pool, MappingContext([Person]))
        manager = SchemaManager(operations, schema_option=SchemaOption.CREATE)

        with pytest.raises(DataAccessError, match="permission denied") as exc_info:
            await manager.start()

        assert exc_info.value.details["sqlstate"] == "42501"
        mock_pool.execute.assert_awaited_once_with('DROP TABLE "people"')
        assert manager.inspected_entities == {}

    @pytest.mark.asyncio
    async def test_concurrency_runs_every_entity(self, mock_operations, cluster):
        manager = SchemaManager(mock_operations, concurrency=2)

        report = await manager.start()

        assert sorted(cluster.tables_of(CreateTableAction)) == ["book", "people"]
        assert [r.table for r in report.results] == ["people", "book"]


class TestPlan:
    """Dry-run planning."""

    @pytest.mark.asyncio
    async def test_plan_create_executes_nothing(self, mock_operations, cluster):
        manager = SchemaManager(mock_operations, schema_option=SchemaOption.CREATE)

        report = await manager.plan()

        assert cluster.actions == []
        assert report.dry_run
        assert report.results[0].statements[0] == 'DROP TABLE "people"'
        assert report.results[0].statements[1].startswith('CREATE TABLE "people"')
        assert manager.inspected_entities == {}

    @pytest.mark.asyncio
    async def test_plan_update_only_reads(self, mock_operations, cluster, person_rows):
        cluster.tables["people"] = [row for row in person_rows if row[0] != "last_login"]
        manager = SchemaManager(mock_operations)

        report = await manager.plan()

        assert all(isinstance(a, ColumnMetadataAction) for a in cluster.actions)
        people, book = report.results
        assert people.status == SyncStatus.ALTERED
        assert people.statements == ['ALTER TABLE "people" ADD COLUMN "last_login" ip']
        assert book.status == SyncStatus.CREATED


class TestSchemaSyncReport:
    def test_summary(self):
        report = SchemaSyncReport(
            option=SchemaOption.UPDATE,
            results=[
                EntitySyncResult(entity=Person, table="people", status=SyncStatus.ALTERED),
                EntitySyncResult(entity=Book, table="book", status=SyncStatus.FAILED, error="x"),
            ],
        )

        summary = report.summary()

        assert summary["option"] == "update"
        assert summary["total"] == 2
        assert summary["altered"] == 1
        assert summary["failed"] == 1
        assert summary["created"] == 0
        assert summary["failed_tables"] == ["book"]
