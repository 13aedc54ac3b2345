"""Unit of Work (UoW) pattern implementation for Goldfinch.

Provides transaction management and repository coordination:
- UnitOfWork: One session per unit, with cached repositories per model class
- repository_context: Shortcut yielding a single repository and its unit
"""

from goldfinch.orm.uow.base import UnitOfWork, repository_context

__all__ = [
    "UnitOfWork",
    "repository_context",
]
