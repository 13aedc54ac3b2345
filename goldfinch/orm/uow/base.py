"""Unit of Work for Goldfinch.

Opens one session per unit of work and hands out repositories that share it,
so mutations across entity types commit as one transaction.
"""

from contextlib import contextmanager
from typing import Any, TypeVar

from sqlalchemy.orm import Session, sessionmaker
from typing_extensions import Self

from goldfinch.config import RepositoryConfiguration
from goldfinch.exceptions import NoSessionError, SessionNotSetError
from goldfinch.orm.events import RepositoryObserver
from goldfinch.orm.repository.base import GenericRepository

T = TypeVar("T")


class UnitOfWork:
    """Unit of Work pattern for managing database transactions.

    Ensures data consistency by grouping repository operations on several
    entity types into a single atomic transaction.

    Example:
        >>> with UnitOfWork(SessionFactory) as uow:
        ...     uow.repository(User).insert(User(name="Ada"))
        ...     uow.repository(Order).insert(Order(total=10))
        ...     uow.commit()
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        configuration: RepositoryConfiguration | None = None,
        observers: tuple[RepositoryObserver, ...] = (),
    ):
        """Initialize Unit of Work with a session factory.

        Args:
            session_factory: SQLAlchemy sessionmaker instance.
            configuration: Configuration applied to every repository of this unit.
            observers: Observers subscribed to every repository of this unit.
        """
        self.session_factory = session_factory
        self.configuration = configuration or RepositoryConfiguration()
        self.observers = observers
        self.session: Session | None = None
        self._repositories: dict[type, GenericRepository[Any]] = {}

    def __enter__(self) -> Self:
        """Enter the context manager and create a new session.

        Returns:
            Self for method chaining.
        """
        self.session = self.session_factory()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit the context manager and clean up session.

        Closes the repositories first, which waits for their asynchronous
        commits, then rolls back if an exception occurred.
        """
        self._reset_repositories()
        try:
            if exc_type is not None:
                self.rollback()
        finally:
            if self.session:
                self.session.close()
                self.session = None

    def _reset_repositories(self) -> None:
        for repository in self._repositories.values():
            repository.close()
        self._repositories.clear()

    def repository(self, model_cls: type[T]) -> GenericRepository[T]:
        """Return the repository for a model class, creating it on first access.

        Args:
            model_cls: The SQLAlchemy model class.

        Returns:
            Repository bound to this unit's session.

        Raises:
            SessionNotSetError: If session is not initialized.
        """
        if self.session is None:
            raise SessionNotSetError

        cached_repo = self._repositories.get(model_cls)
        if cached_repo is not None:
            return cached_repo

        repo = GenericRepository(
            self.session,
            model_cls,
            configuration=self.configuration,
            observers=self.observers,
            owns_session=False,
        )
        self._repositories[model_cls] = repo
        return repo

    def available_repositories(self) -> list[str]:
        """Names of the model classes with a repository created in this unit, sorted."""
        return sorted(model_cls.__name__ for model_cls in self._repositories)

    def commit(self) -> None:
        """Commit the current transaction."""
        if self.session:
            self.session.commit()

    def rollback(self) -> None:
        """Rollback the current transaction."""
        if self.session:
            self.session.rollback()

    def flush(self) -> None:
        """Flush pending changes without committing."""
        if self.session:
            self.session.flush()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(repositories={self.available_repositories()})"


@contextmanager
def repository_context(session_factory: sessionmaker[Session], model_cls: type[T], **kwargs: Any):
    """Context manager for quick repository operations.

    Combines UnitOfWork and Repository creation for simple use cases
    where you need to perform operations on a single model type.

    Args:
        session_factory: SQLAlchemy sessionmaker.
        model_cls: The model class for the repository.
        **kwargs: Passed to ``UnitOfWork``.

    Yields:
        A tuple of (repository, unit_of_work) for operations.

    Example:
        >>> with repository_context(SessionFactory, User) as (repo, uow):
        ...     user = repo.get_by_id(1)
        ...     repo.update(user)
        ...     uow.commit()
    """
    with UnitOfWork(session_factory, **kwargs) as uow:
        if uow.session is None:
            raise NoSessionError
        yield uow.repository(model_cls), uow
