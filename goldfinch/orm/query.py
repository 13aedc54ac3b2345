"""Deferred, composable queries over a repository's entity type."""

from collections.abc import Iterator
from typing import Any, Generic, TypeVar

from sqlalchemy import ColumnElement, Select, func, select
from sqlalchemy.orm import Session

T = TypeVar("T")


def equals_criterion(column: Any, value: Any, use_database_null_semantics: bool) -> ColumnElement[bool]:
    """Build an equality criterion honoring the configured null semantics.

    With store semantics the comparison is a plain ``=``, so a ``None`` value
    never matches (``col = NULL`` is unknown). Otherwise ``None`` matches NULL
    columns through ``IS NOT DISTINCT FROM``.
    """
    if use_database_null_semantics:
        return column.op("=", is_comparison=True)(value)
    return column.is_not_distinct_from(value)


class QuerySequence(Generic[T]):
    """A lazily executed query over one entity type.

    Every composition method returns a new sequence; nothing runs against the
    store until the sequence is iterated or one of ``all``, ``first``,
    ``one_or_none`` or ``count`` is called.

    Example:
        >>> recent = repo.as_queryable().where(User.age > 30).order_by(User.name).limit(5)
        >>> names = [user.name for user in recent]
    """

    def __init__(
        self,
        session: Session,
        model_cls: type[T],
        stmt: Select | None = None,
        use_database_null_semantics: bool = False,
    ):
        self.session = session
        self.model_cls = model_cls
        self.stmt = stmt if stmt is not None else select(model_cls)
        self.use_database_null_semantics = use_database_null_semantics

    def _clone(self, stmt: Select) -> "QuerySequence[T]":
        return QuerySequence(self.session, self.model_cls, stmt, self.use_database_null_semantics)

    def where(self, *criteria: Any) -> "QuerySequence[T]":
        return self._clone(self.stmt.where(*criteria))

    def filter_by(self, **criteria: Any) -> "QuerySequence[T]":
        """Filter on attribute equality, comparing ``None`` per the configured null semantics."""
        clauses = [
            equals_criterion(getattr(self.model_cls, name), value, self.use_database_null_semantics)
            for name, value in criteria.items()
        ]
        return self._clone(self.stmt.where(*clauses))

    def order_by(self, *clauses: Any) -> "QuerySequence[T]":
        return self._clone(self.stmt.order_by(*clauses))

    def limit(self, limit: int | None) -> "QuerySequence[T]":
        return self._clone(self.stmt.limit(limit))

    def offset(self, offset: int | None) -> "QuerySequence[T]":
        return self._clone(self.stmt.offset(offset))

    def options(self, *options: Any) -> "QuerySequence[T]":
        return self._clone(self.stmt.options(*options))

    def __iter__(self) -> Iterator[T]:
        return iter(self.all())

    def all(self) -> list[T]:
        return list(self.session.execute(self.stmt).scalars().unique().all())

    def first(self) -> T | None:
        return self.session.execute(self.stmt.limit(1)).scalars().first()

    def one_or_none(self) -> T | None:
        return self.session.execute(self.stmt).scalars().unique().one_or_none()

    def count(self) -> int:
        count_stmt = select(func.count()).select_from(self.stmt.order_by(None).subquery())
        return self.session.execute(count_stmt).scalar_one()

    def __repr__(self) -> str:
        return f"QuerySequence({self.model_cls.__name__})"
