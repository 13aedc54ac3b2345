"""Binary serialization of arbitrary state objects.

Values are stored as opaque pickle payloads. The format is tied to the Python
version and the classes available at load time, so payloads are meant to be
read back by the same deployment that wrote them. Never deserialize bytes
from an untrusted source.
"""

import logging
import pickle
from typing import Any

from goldfinch.exceptions import StateDeserializationError

logger = logging.getLogger("Goldfinch")

NOT_SERIALIZABLE_ATTR = "__serializable__"


def is_serializable_type(value: Any) -> bool:
    """Whether the value's type allows serialization.

    Types opt out by setting ``__serializable__ = False`` on the class.
    """
    return getattr(type(value), NOT_SERIALIZABLE_ATTR, True) is not False


def serialize(value: Any) -> bytes | None:
    """Serialize a value and everything it references.

    Args:
        value: The object graph to serialize.

    Returns:
        The serialized bytes, or None if the value is None, its type opted out
        of serialization, or some object in the graph cannot be pickled.
    """
    if value is None:
        return None
    if not is_serializable_type(value):
        logger.debug(f"Refusing to serialize value of non-serializable type '{type(value).__name__}'")
        return None
    try:
        return pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)
    except (pickle.PicklingError, TypeError, AttributeError) as e:
        logger.debug(f"Could not serialize value of type '{type(value).__name__}': {e}")
        return None


def deserialize(data: bytes | None) -> Any | None:
    """Rebuild an object graph written by ``serialize``.

    Args:
        data: The serialized bytes.

    Returns:
        The reconstructed value, or None for None or empty input.

    Raises:
        StateDeserializationError: If the payload is corrupt or refers to
            classes that cannot be imported.
    """
    if not data:
        return None
    try:
        return pickle.loads(data)  # noqa: S301
    except Exception as e:
        raise StateDeserializationError(len(data)) from e
