"""
Database connection management for cratesync.

Provides an async connection pool to CrateDB over its PostgreSQL wire
protocol, with connection lifecycle management.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

import asyncpg
from pydantic import BaseModel, Field, field_validator

from ..exceptions import ConfigurationError, DatabaseConnectionError


logger = logging.getLogger(__name__)


class ConnectionConfig(BaseModel):
    """CrateDB connection configuration."""

    host: str = Field("localhost", description="CrateDB host")
    port: int = Field(5432, description="CrateDB PostgreSQL protocol port")
    database: str = Field("doc", description="Default schema")
    user: str = Field("crate", description="Database user")
    password: str = Field("", description="Database password")

    # Connection pool settings
    min_size: int = Field(1, description="Minimum connections in pool")
    max_size: int = Field(5, description="Maximum connections in pool")

    # Connection settings
    command_timeout: float = Field(60.0, description="Command timeout in seconds")

    ssl_mode: Optional[str] = Field(None, description="SSL mode")

    @field_validator("database")
    @classmethod
    def validate_database(cls, v):
        if not v or not v.strip():
            raise ValueError("Database name is required")
        return v

    @classmethod
    def from_url(cls, url: str) -> "ConnectionConfig":
        """Create configuration from a ``crate://`` or ``postgresql://`` URL."""
        parsed = urlparse(url)

        if parsed.scheme not in ("crate", "postgresql", "postgres"):
            raise ConfigurationError(f"Invalid database URL scheme: {parsed.scheme}")

        query_params = parse_qs(parsed.query) if parsed.query else {}

        config_data: Dict[str, Any] = {
            "host": parsed.hostname or "localhost",
            "port": parsed.port or 5432,
            "database": parsed.path.lstrip("/") or "doc",
            "user": parsed.username or "crate",
            "password": parsed.password or "",
        }

        if "sslmode" in query_params:
            config_data["ssl_mode"] = query_params["sslmode"][0]

        return cls(**config_data)

    def to_connection_kwargs(self) -> Dict[str, Any]:
        """Convert to asyncpg connection kwargs."""
        kwargs = {
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "user": self.user,
            "password": self.password or None,
            "command_timeout": self.command_timeout,
        }

        if self.ssl_mode:
            kwargs["ssl"] = self.ssl_mode

        return kwargs


class ConnectionPool:
    """Async CrateDB connection pool wrapper."""

    def __init__(self, config: ConnectionConfig):
        self.config = config
        self._pool: Optional[asyncpg.Pool] = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Initialize the connection pool."""
        async with self._lock:
            if self._pool is not None:
                return

            try:
                logger.info(
                    f"Initializing connection pool to {self.config.host}:{self.config.port}"
                    f"/{self.config.database} (min={self.config.min_size}, max={self.config.max_size})"
                )

                self._pool = await asyncpg.create_pool(
                    **self.config.to_connection_kwargs(),
                    min_size=self.config.min_size,
                    max_size=self.config.max_size,
                )

                logger.info("Connection pool initialized successfully")

            except Exception as e:
                logger.error(f"Failed to initialize connection pool: {e}")
                raise DatabaseConnectionError(f"Failed to initialize connection pool: {e}") from e

    async def close(self) -> None:
        """Close the connection pool."""
        async with self._lock:
            if self._pool is not None:
                logger.info("Closing connection pool")
                await self._pool.close()
                self._pool = None

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection]:
        """Acquire a connection from the pool."""
        if self._pool is None:
            raise DatabaseConnectionError("Pool is not connected")

        async with self._pool.acquire() as connection:
            yield connection

    async def execute(self, query: str, *args) -> str:
        """Execute a statement and return its status."""
        async with self.acquire() as conn:
            return await conn.execute(query, *args)

    async def fetch(self, query: str, *args) -> List[asyncpg.Record]:
        """Fetch all results from a query."""
        async with self.acquire() as conn:
            return await conn.fetch(query, *args)

    async def fetchrow(self, query: str, *args) -> Optional[asyncpg.Record]:
        """Fetch a single row from a query."""
        async with self.acquire() as conn:
            return await conn.fetchrow(query, *args)

    async def fetchval(self, query: str, *args, column: int = 0) -> Any:
        """Fetch a single value from a query."""
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args, column=column)

    async def test_connection(self) -> Dict[str, Any]:
        """Run a round-trip query and return cluster information."""
        row = await self.fetchrow(
            "SELECT name, version['number'] AS version FROM sys.cluster"
        )
        return {
            "status": "connected",
            "cluster": row["name"] if row else None,
            "version": row["version"] if row else None,
        }

    @property
    def is_initialized(self) -> bool:
        """Check if pool is initialized."""
        return self._pool is not None

    async def __aenter__(self) -> "ConnectionPool":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
