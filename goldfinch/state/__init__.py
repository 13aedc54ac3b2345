"""Binary state serialization for opaque payloads such as web session data."""

from goldfinch.state.serializer import deserialize, is_serializable_type, serialize

__all__ = [
    "deserialize",
    "is_serializable_type",
    "serialize",
]
