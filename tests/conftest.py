"""
Pytest configuration and shared fixtures for cratesync tests.
"""

import logging
from typing import Any, Dict, List, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest
import yaml

from cratesync.database.connection import ConnectionPool
from cratesync.mapping import MappingContext
from cratesync.operations import CrateOperations

from tests.sample_entities import Book, Person


# ============================================================================
# Mapping Fixtures
# ============================================================================

@pytest.fixture
def mapping_context() -> MappingContext:
    """Mapping context with the Person and Book entities."""
    return MappingContext([Person, Book])


@pytest.fixture
def person_descriptor(mapping_context):
    return mapping_context.get_persistent_entity(Person)


@pytest.fixture
def book_descriptor(mapping_context):
    return mapping_context.get_persistent_entity(Book)


@pytest.fixture
def person_rows() -> List[Tuple[str, str]]:
    """information_schema rows of a fully synced people table."""
    return [
        ("id", "text"),
        ("name", "text"),
        ("age", "integer"),
        ("address", "object"),
        ("address['city']", "text"),
        ("address['zip']", "text"),
        ("tags", "text_array"),
        ("last_login", "ip"),
    ]


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def mock_pool() -> MagicMock:
    """Connection pool whose query methods are async mocks."""
    pool = MagicMock(spec=ConnectionPool)
    pool.execute = AsyncMock(return_value="OK")
    pool.fetch = AsyncMock(return_value=[])
    pool.fetchrow = AsyncMock(return_value=None)
    pool.fetchval = AsyncMock(return_value=0)
    return pool


@pytest.fixture
def mock_operations(mapping_context) -> MagicMock:
    """Execution client recording every action it is given."""
    operations = MagicMock(spec=CrateOperations)
    operations.mapping_context = mapping_context
    operations.execute = AsyncMock(return_value=None)
    return operations


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config_data() -> Dict[str, Any]:
    """Minimal valid configuration."""
    return {
        "service_name": "cratesync-test",
        "crate": {
            "host": "localhost",
            "port": 5432,
            "database": "doc",
            "user": "crate",
        },
        "entity_modules": ["tests.sample_entities"],
        "schema_management": {
            "option": "update",
            "ignore_failures": False,
            "concurrency": 2,
        },
    }


@pytest.fixture
def config_file(tmp_path, sample_config_data) -> str:
    """Configuration written to a YAML file."""
    path = tmp_path / "cratesync.yaml"
    path.write_text(yaml.safe_dump(sample_config_data))
    return str(path)


# ============================================================================
# Logging
# ============================================================================

@pytest.fixture(autouse=True)
def restore_logging():
    """Undo configure_logging so every test's records reach caplog."""
    logger = logging.getLogger("cratesync")
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
