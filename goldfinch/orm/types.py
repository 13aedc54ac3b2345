"""Custom SQLAlchemy types for Goldfinch.

Provides a column type that stores arbitrary Python objects, such as web
session payloads, as opaque binary blobs.
"""

from typing import Any

from sqlalchemy import Dialect, LargeBinary, TypeDecorator

from goldfinch.exceptions import UnserializableStateError
from goldfinch.state.serializer import deserialize, serialize


class SerializedState(TypeDecorator):
    """Column type persisting any serializable object through the state serializer.

    Usage:
        payload: Mapped[dict | None] = mapped_column(SerializedState())

    Database representation:
        The dialect's binary type (BLOB, BYTEA, ...).

    ``None`` is stored as NULL. Binding a value the serializer refuses raises
    ``UnserializableStateError`` instead of silently storing NULL.
    """

    impl = LargeBinary
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Dialect) -> bytes | None:
        """Serialize a Python value for storage.

        Args:
            value: The Python value being bound.
            dialect: The SQLAlchemy dialect.

        Returns:
            The serialized payload, or None for a None value.
        """
        if value is None:
            return None
        payload = serialize(value)
        if payload is None:
            raise UnserializableStateError(type(value).__name__)
        return payload

    def process_result_value(self, value: bytes | None, dialect: Dialect) -> Any:
        """Deserialize a stored payload.

        Args:
            value: The raw column value.
            dialect: The SQLAlchemy dialect.

        Returns:
            The reconstructed Python value, or None for NULL or empty payloads.
        """
        return deserialize(value)
