"""
Command-line interface for cratesync.
"""

import asyncio
import sys
from contextlib import asynccontextmanager
from functools import wraps
from pathlib import Path
from typing import AsyncIterator, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import CrateSyncConfig
from .database.connection import ConnectionConfig, ConnectionPool
from .exceptions import ConfigurationError, CrateSyncError
from .logging_config import configure_logging
from .mapping.context import MappingContext
from .operations import CrateOperations
from .schema.manager import SchemaManager, SchemaOption, SchemaSyncReport, SyncStatus


console = Console()


def handle_errors(func):
    """Decorator to handle errors gracefully in CLI commands."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except CrateSyncError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            sys.exit(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted by user[/yellow]")
            sys.exit(0)
        except Exception as e:
            console.print(f"[red]Unexpected error:[/red] {escape(str(e))}")
            if "--debug" in sys.argv:
                import traceback
                traceback.print_exc()
            sys.exit(1)
    return wrapper


@click.group()
@click.version_option(__version__)
@click.option(
    "--debug", is_flag=True, help="Enable debug mode"
)
@click.pass_context
def main(ctx, debug):
    """cratesync: keep entity types and CrateDB tables in sync."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


def _load_config(ctx: click.Context, path: str) -> CrateSyncConfig:
    config = CrateSyncConfig.from_yaml(path)
    if ctx.obj and ctx.obj.get("debug"):
        config.debug = True
    configure_logging(config.logging, debug=config.debug)
    return config


@asynccontextmanager
async def _open_operations(
    config: CrateSyncConfig, mapping_context: MappingContext
) -> AsyncIterator[CrateOperations]:
    pool = ConnectionPool(config.crate)
    await pool.initialize()
    try:
        yield CrateOperations(
            pool,
            mapping_context,
            default_schema=config.crate.database,
            timeout_seconds=config.schema_management.timeout_seconds,
        )
    finally:
        await pool.close()


@main.command()
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    default="cratesync.yaml",
    help="Output configuration file path",
)
@handle_errors
def init(output: str):
    """Initialize a new cratesync configuration file."""
    if Path(output).exists():
        if not click.confirm(f"Configuration file {output} already exists. Overwrite?"):
            return

    config = _create_default_config()

    config.to_yaml(output)
    console.print(f"[green]✓[/green] Configuration file created: {output}")
    console.print("\n[yellow]Next steps:[/yellow]")
    console.print("1. Point 'crate' at your CrateDB cluster")
    console.print("2. List the modules holding your @entity classes under 'entity_modules'")
    console.print("3. Run: cratesync validate-config -c your-config.yaml")
    console.print("4. Run: cratesync plan -c your-config.yaml")


@main.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Configuration file path",
)
@click.pass_context
@handle_errors
def validate_config(ctx, config: str):
    """Validate configuration file and entity mappings."""
    console.print(f"Validating configuration: {config}")

    try:
        sync_config = _load_config(ctx, config)
        mapping_context = sync_config.validate_config()
    except ConfigurationError as e:
        console.print(f"[red]✗[/red] Configuration error: {escape(str(e))}")
        sys.exit(1)

    console.print("[green]✓[/green] Configuration is valid")

    _display_config_summary(sync_config, mapping_context)


@main.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Configuration file path",
)
@click.pass_context
@handle_errors
def plan(ctx, config: str):
    """Show the DDL a sync would execute, without executing it."""
    sync_config = _load_config(ctx, config)
    mapping_context = sync_config.validate_config()
    console.print(
        f"[blue]Planning schema sync[/blue] "
        f"(option: {sync_config.schema_management.option})"
    )

    async def run_plan() -> SchemaSyncReport:
        async with _open_operations(sync_config, mapping_context) as operations:
            manager = SchemaManager(
                operations,
                schema_option=sync_config.schema_management.option,
            )
            return await manager.plan()

    report = asyncio.run(run_plan())

    for result in report.results:
        if not result.actions:
            console.print(f"\n[green]{result.table}[/green]: in sync")
            continue

        console.print(f"\n[yellow]{result.table}[/yellow]: {result.status.value}")
        for statement in result.statements:
            console.print(f"  {statement};", markup=False, highlight=False)

    changes = sum(1 for r in report.results if r.actions)
    console.print(f"\n{changes} of {len(report.results)} tables would change")


@main.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Configuration file path",
)
@click.option(
    "--option",
    type=click.Choice([o.value for o in SchemaOption], case_sensitive=False),
    help="Schema option (overrides config)",
)
@click.option(
    "--ignore-failures",
    is_flag=True,
    help="Continue with the next entity after a database failure",
)
@click.pass_context
@handle_errors
def sync(ctx, config: str, option: Optional[str], ignore_failures: bool):
    """Reconcile every entity table with its entity type."""
    sync_config = _load_config(ctx, config)
    mapping_context = sync_config.validate_config()
    settings = sync_config.schema_management

    if option:
        settings.option = option.lower()
    if ignore_failures:
        settings.ignore_failures = True

    console.print(f"[blue]Schema sync[/blue] (option: {settings.option})")
    if settings.option == SchemaOption.CREATE_DROP.value:
        console.print(
            "[yellow]Tables are recreated; they outlive this command and are not dropped on exit[/yellow]"
        )

    async def run_sync() -> SchemaSyncReport:
        async with _open_operations(sync_config, mapping_context) as operations:
            manager = SchemaManager(
                operations,
                schema_option=settings.option,
                ignore_failures=settings.ignore_failures,
                concurrency=settings.concurrency,
            )
            return await manager.start()

    report = asyncio.run(run_sync())
    _display_report(report)

    if report.failed:
        console.print(
            f"\n[yellow]{len(report.failed)} tables failed and were ignored[/yellow]"
        )
    else:
        console.print("\n[green]✓[/green] Schema sync complete")


@main.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Configuration file path",
)
@click.option(
    "--yes",
    "-y",
    is_flag=True,
    help="Do not ask for confirmation",
)
@click.pass_context
@handle_errors
def drop(ctx, config: str, yes: bool):
    """Drop the table of every entity."""
    sync_config = _load_config(ctx, config)
    mapping_context = sync_config.validate_config()
    tables = [d.full_table_name for d in mapping_context]

    if not yes:
        if not click.confirm(f"Drop {len(tables)} tables ({', '.join(tables)})?"):
            console.print("Aborted")
            return

    async def run_drop() -> int:
        dropped = 0
        async with _open_operations(sync_config, mapping_context) as operations:
            for descriptor in mapping_context:
                if await operations.drop_table(descriptor.type):
                    console.print(f"  [green]✓[/green] dropped {descriptor.full_table_name}")
                    dropped += 1
                else:
                    console.print(f"  [yellow]-[/yellow] {descriptor.full_table_name} does not exist")
        return dropped

    dropped = asyncio.run(run_drop())
    console.print(f"\nDropped {dropped} of {len(tables)} tables")


@main.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Configuration file path",
)
@click.pass_context
@handle_errors
def test_connection(ctx, config: str):
    """Test the CrateDB connection."""
    console.print("[blue]Testing connection...[/blue]")

    sync_config = _load_config(ctx, config)
    crate = sync_config.crate

    async def run_connection_test():
        async with ConnectionPool(crate) as pool:
            return await pool.test_connection()

    info = asyncio.run(run_connection_test())

    console.print(
        f"  [green]✓ Connected[/green] to {crate.host}:{crate.port} "
        f"(schema '{crate.database}')"
    )
    console.print(f"     Cluster: {info['cluster']}")
    console.print(f"     CrateDB version: {info['version']}")


def _create_default_config() -> CrateSyncConfig:
    """Create a default configuration with examples."""
    return CrateSyncConfig(
        crate=ConnectionConfig(
            host="localhost",
            port=5432,
            database="doc",
            user="crate",
            password="${CRATE_PASSWORD}",
        ),
        entity_modules=["myapp.entities"],
    )


def _display_config_summary(config: CrateSyncConfig, mapping_context: MappingContext):
    """Display a summary of the configuration."""
    console.print("\n[blue]Configuration Summary[/blue]")

    crate = config.crate
    settings = config.schema_management
    console.print(f"  CrateDB: {crate.user}@{crate.host}:{crate.port}/{crate.database}")
    console.print(
        f"  Schema option: {settings.option} "
        f"(ignore failures: {settings.ignore_failures}, concurrency: {settings.concurrency})"
    )

    entity_table = Table(title="Entities")
    entity_table.add_column("Entity", style="cyan")
    entity_table.add_column("Table", style="magenta")
    entity_table.add_column("Primary Key", style="green")
    entity_table.add_column("Columns", style="yellow")

    for descriptor in mapping_context:
        entity_table.add_row(
            descriptor.name,
            descriptor.full_table_name,
            ", ".join(descriptor.primary_keys),
            ", ".join(col.name for col in descriptor.columns),
        )

    console.print(entity_table)


_STATUS_STYLES = {
    SyncStatus.CREATED: "green",
    SyncStatus.ALTERED: "yellow",
    SyncStatus.IN_SYNC: "cyan",
    SyncStatus.FAILED: "red",
    SyncStatus.SKIPPED: "dim",
}


def _display_report(report: SchemaSyncReport):
    """Display the per-entity outcome of a sync."""
    result_table = Table(title="Schema Sync")
    result_table.add_column("Entity", style="cyan")
    result_table.add_column("Table", style="magenta")
    result_table.add_column("Status")
    result_table.add_column("Statements", justify="right")
    result_table.add_column("Time (ms)", justify="right")

    for result in report.results:
        style = _STATUS_STYLES[result.status]
        result_table.add_row(
            result.entity.__qualname__,
            result.table,
            f"[{style}]{result.status.value}[/{style}]",
            str(len(result.statements)),
            f"{result.execution_time_ms:.1f}",
        )

    console.print(result_table)

    for result in report.failed:
        console.print(f"  [red]✗[/red] {result.table}: {escape(result.error or '')}")


if __name__ == "__main__":
    main()
