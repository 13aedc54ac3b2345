"""Primary-key resolution for Goldfinch entities.

An entity's identity key is found in one of two ways: an extractor registered
for the entity type at startup, or the primary-key columns declared in the
type's SQLAlchemy mapping. A single-column key resolves to a scalar, a
composite key to a tuple in mapper column order.
"""

from collections.abc import Callable
from typing import Any

from sqlalchemy import inspect
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.orm import Mapper, Session

from goldfinch.exceptions import MissingPrimaryKeyError

KeyExtractor = Callable[[Any], Any]


class KeyResolver:
    """Resolves the identity key of an entity instance."""

    def __init__(self):
        self._extractors: dict[type, KeyExtractor] = {}

    def register(self, model_cls: type, extractor: KeyExtractor) -> None:
        """Register an explicit key extractor for a type and its subclasses.

        Args:
            model_cls: The entity type.
            extractor: Callable returning the identity key of an instance.
        """
        self._extractors[model_cls] = extractor

    def unregister(self, model_cls: type) -> None:
        self._extractors.pop(model_cls, None)

    def is_registered(self, model_cls: type) -> bool:
        return self._find_extractor(model_cls) is not None

    def resolve(self, entity: Any, session: Session | None = None) -> Any:
        """Return the identity key of an entity.

        Args:
            entity: The entity instance.
            session: When given and the entity is persistent in it, the key the
                row was loaded with is returned, even if the primary-key
                attributes changed since.

        Returns:
            A scalar for single-column keys, a tuple for composite keys.

        Raises:
            MissingPrimaryKeyError: If the type is not mapped and has no registered extractor.
        """
        extractor = self._find_extractor(type(entity))
        if extractor is not None:
            return extractor(entity)

        mapper = _mapper_for(type(entity))
        state = inspect(entity)
        if session is not None and state.persistent and state.session is session and state.identity is not None:
            return _collapse(state.identity)

        values = []
        for index, column in enumerate(mapper.primary_key):
            attr = mapper.get_property_by_column(column).key
            if attr not in state.dict and state.identity is not None:
                # Expired on a detached instance; reading it would need a session.
                values.append(state.identity[index])
            else:
                values.append(getattr(entity, attr))
        return _collapse(tuple(values))

    def _find_extractor(self, model_cls: type) -> KeyExtractor | None:
        for klass in model_cls.__mro__:
            extractor = self._extractors.get(klass)
            if extractor is not None:
                return extractor
        return None


def _mapper_for(model_cls: type) -> Mapper:
    try:
        mapper = inspect(model_cls)
    except NoInspectionAvailable as e:
        raise MissingPrimaryKeyError(model_cls.__name__) from e
    if not isinstance(mapper, Mapper) or not mapper.primary_key:
        raise MissingPrimaryKeyError(model_cls.__name__)
    return mapper


def _collapse(values: tuple[Any, ...]) -> Any:
    return values[0] if len(values) == 1 else tuple(values)


default_key_resolver = KeyResolver()


def resolve_primary_key(entity: Any, session: Session | None = None) -> Any:
    """Resolve an entity's identity key with the default resolver."""
    return default_key_resolver.resolve(entity, session)
