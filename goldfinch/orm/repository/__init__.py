"""Repository module for Goldfinch ORM.

This module provides the generic repository used for data access layer operations.
"""

from goldfinch.orm.repository.base import EntityState, GenericRepository, create_repository

__all__ = [
    "EntityState",
    "GenericRepository",
    "create_repository",
]
