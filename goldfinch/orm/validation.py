"""Pre-commit validation of pending and modified entities.

Validation runs from a ``before_flush`` session listener and is switched per
session through ``session.info``, so several repositories sharing a session
share one listener.
"""

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy import Column, Integer, event, inspect
from sqlalchemy.orm import Session

from goldfinch.exceptions import EntityValidationError

logger = logging.getLogger("Goldfinch")

VALIDATE_ON_SAVE_KEY = "goldfinch.validate_on_save"


def _generated_by_store(column: Any) -> bool:
    if column.default is not None or column.server_default is not None or column.computed is not None:
        return True
    if column.foreign_keys:
        # Populated from the related object during flush.
        return True
    return bool(column.primary_key and column.autoincrement in (True, "auto") and isinstance(column.type, Integer))


def validate_entity(entity: Any) -> list[str]:
    """Collect validation errors for one entity.

    A non-nullable column holding ``None`` is an error unless the store or the
    relationship machinery fills it in. Entities may add their own checks with
    a ``validate()`` method returning an iterable of error messages.

    Args:
        entity: A mapped entity instance.

    Returns:
        The list of error messages, empty when the entity is valid.
    """
    state = inspect(entity)
    errors: list[str] = []
    type_name = type(entity).__name__

    for prop in state.mapper.column_attrs:
        column = prop.columns[0]
        if not isinstance(column, Column) or column.nullable or _generated_by_store(column):
            continue
        if state.pending or state.transient:
            value = state.dict.get(prop.key)
        elif prop.key in state.dict:
            value = state.dict[prop.key]
        else:
            # Expired or deferred attributes hold their stored value.
            continue
        if value is None:
            errors.append(f"{type_name}.{prop.key} must not be None")

    custom_validate = getattr(entity, "validate", None)
    if callable(custom_validate):
        result: Iterable[str] | None = custom_validate()
        errors.extend(f"{type_name}: {message}" for message in result or ())

    return errors


def _validate_before_flush(session: Session, flush_context: Any, instances: Any) -> None:
    if not session.info.get(VALIDATE_ON_SAVE_KEY, False):
        return

    candidates = list(session.new) + [obj for obj in session.dirty if session.is_modified(obj)]
    errors: list[str] = []
    for entity in candidates:
        errors.extend(validate_entity(entity))
    if errors:
        logger.debug(f"Validation rejected flush with {len(errors)} error(s)")
        raise EntityValidationError(errors)


def install_validation(session: Session, enabled: bool) -> None:
    """Enable or disable pre-flush validation for a session."""
    session.info[VALIDATE_ON_SAVE_KEY] = enabled
    if not event.contains(session, "before_flush", _validate_before_flush):
        event.listen(session, "before_flush", _validate_before_flush)
