"""
Registry of persistent entity descriptors.
"""

import importlib
import logging
from typing import Dict, Iterable, Iterator, List

from ..exceptions import ConfigurationError, MappingError
from .annotations import is_entity
from .descriptor import PersistentEntityDescriptor, build_descriptor


logger = logging.getLogger(__name__)


class MappingContext:
    """
    Read-only registry of entity descriptors.

    All descriptors are built when the context is created, so mapping
    problems surface before any database call is attempted.
    """

    def __init__(self, entities: Iterable[type] = ()):
        self._descriptors: Dict[type, PersistentEntityDescriptor] = {}
        tables: Dict[str, type] = {}

        for cls in entities:
            if cls in self._descriptors:
                continue

            descriptor = build_descriptor(cls)
            table_key = descriptor.full_table_name
            if table_key in tables:
                raise MappingError(
                    f"table '{table_key}' is mapped by both "
                    f"{tables[table_key].__qualname__} and {cls.__qualname__}",
                    entity=cls,
                )

            tables[table_key] = cls
            self._descriptors[cls] = descriptor

        logger.info(f"Mapping context initialized with {len(self._descriptors)} entities")

    @classmethod
    def from_modules(cls, module_names: Iterable[str]) -> "MappingContext":
        """
        Create a context from every ``@entity`` class defined in the given modules.

        Raises:
            ConfigurationError: If a module cannot be imported
        """
        entities: List[type] = []

        for module_name in module_names:
            try:
                module = importlib.import_module(module_name)
            except ImportError as e:
                raise ConfigurationError(
                    f"Cannot import entity module '{module_name}'", cause=e
                ) from e

            for obj in vars(module).values():
                if is_entity(obj) and obj.__module__ == module.__name__:
                    entities.append(obj)

        return cls(entities)

    def get_persistent_entities(self) -> List[PersistentEntityDescriptor]:
        """Get all descriptors in registration order."""
        return list(self._descriptors.values())

    def get_persistent_entity(self, entity_type: type) -> PersistentEntityDescriptor:
        """
        Get the descriptor of an entity type.

        Raises:
            MappingError: If the type is not registered
        """
        try:
            return self._descriptors[entity_type]
        except KeyError:
            raise MappingError(
                f"{entity_type!r} is not a registered persistent entity"
            ) from None

    def has_persistent_entity(self, entity_type: type) -> bool:
        return entity_type in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)

    def __iter__(self) -> Iterator[PersistentEntityDescriptor]:
        return iter(self.get_persistent_entities())
