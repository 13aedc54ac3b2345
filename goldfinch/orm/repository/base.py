"""Repository layer for Goldfinch.

Implements a Generic Repository over a SQLAlchemy session: identity-aware CRUD
for any mapped entity type, bulk variants, deferred queries, and change
notifications fired after each mutation.
"""

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from typing import Any, Generic, TypeVar

from sqlalchemy import inspect, select
from sqlalchemy.orm import Session, make_transient_to_detached, selectinload
from sqlalchemy.orm.attributes import flag_modified

from goldfinch.config import LoadingStrategy, RepositoryConfiguration
from goldfinch.exceptions import EntityNotFoundError, ForeignSessionError, RepositoryClosedError
from goldfinch.orm.events import RepositoryEvents, RepositoryObserver
from goldfinch.orm.key import KeyResolver, default_key_resolver
from goldfinch.orm.query import QuerySequence
from goldfinch.orm.validation import install_validation

logger = logging.getLogger("Goldfinch")

T = TypeVar("T")

Notification = Callable[[], None]


class EntityState(Enum):
    """Tracking state of an entity relative to a repository's session."""

    DETACHED = "detached"
    UNCHANGED = "unchanged"
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


def _is_complete_key(key: Any) -> bool:
    if key is None:
        return False
    if isinstance(key, tuple):
        return all(part is not None for part in key)
    return True


class GenericRepository(Generic[T]):
    """Generic repository implementing identity-aware CRUD operations.

    Every mutation accepts ``save_after`` to commit right away and ``async_``
    to run that commit on the repository's worker thread. An asynchronous
    commit returns a ``Future``; the mutation's notifications then fire once
    the commit has succeeded, on the committing thread, and an observer error
    becomes the future's exception.

    A repository is not thread-safe. After an asynchronous commit the caller
    must wait on the returned future before touching the repository again.

    Example:
        >>> with GenericRepository(SessionFactory(), User) as repo:
        ...     repo.events.on_data_added.connect(lambda key, user: print(key))
        ...     repo.insert(User(name="Ada"), save_after=True)
    """

    DEFAULT_MAX_ENTITY_COUNT = 1000
    DEFAULT_ENTITY_COUNT = 10

    def __init__(
        self,
        session: Session,
        model_cls: type[T],
        *,
        disable_change_tracking: bool = False,
        disable_lazy_loading: bool = False,
        disable_proxy_creation: bool = False,
        use_database_null_semantics: bool = False,
        disable_validate_on_save: bool = False,
        configuration: RepositoryConfiguration | None = None,
        observers: Iterable[RepositoryObserver] = (),
        key_resolver: KeyResolver | None = None,
        owns_session: bool = True,
    ):
        """Initialize repository with a session and model class.

        Args:
            session: SQLAlchemy session for database operations.
            model_cls: The SQLAlchemy model class this repository manages.
            disable_change_tracking: Turn off autoflush before queries.
            disable_lazy_loading: Load relationships eagerly with every lookup.
            disable_proxy_creation: Keep instance state after commit instead of expiring it.
            use_database_null_semantics: Compare ``None`` criteria with the store's ``=`` operator.
            disable_validate_on_save: Skip pre-flush validation.
            configuration: A prepared configuration. Overrides the individual flags.
            observers: Observers subscribed to the change notifications.
            key_resolver: Resolver for identity keys. Defaults to the module-level resolver.
            owns_session: Close the session when the repository is closed.
        """
        self.session = session
        self.model_cls = model_cls
        self.owns_session = owns_session
        self.key_resolver = key_resolver or default_key_resolver
        self.events = RepositoryEvents(observers)
        self._configuration = configuration or RepositoryConfiguration.from_flags(
            disable_change_tracking=disable_change_tracking,
            disable_lazy_loading=disable_lazy_loading,
            disable_proxy_creation=disable_proxy_creation,
            use_database_null_semantics=use_database_null_semantics,
            disable_validate_on_save=disable_validate_on_save,
        )
        self._executor: ThreadPoolExecutor | None = None
        self._closed = False
        self._apply_configuration()

    def _apply_configuration(self) -> None:
        config = self._configuration
        self.session.autoflush = config.auto_detect_changes_enabled
        self.session.expire_on_commit = config.proxy_creation_enabled
        install_validation(self.session, config.validate_on_save_enabled)

    @property
    def configuration(self) -> RepositoryConfiguration:
        return self._configuration

    @property
    def closed(self) -> bool:
        return self._closed

    def get_session(self) -> Session:
        """Return the session this repository works on."""
        self._ensure_open()
        return self.session

    # Lifecycle

    def close(self) -> None:
        """Release the repository.

        Waits for queued asynchronous commits, then closes the session if the
        repository owns it. Calling ``close`` again does nothing.
        """
        if self._closed:
            return
        self._closed = True
        self._drain()
        if self.owns_session:
            self.session.close()
        logger.debug(f"Closed {self.model_cls.__name__} repository")

    def _drain(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> "GenericRepository[T]":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._closed:
            return
        # The session must be idle before it can be rolled back.
        self._drain()
        try:
            if exc_type is not None and self.owns_session:
                self.session.rollback()
        finally:
            self.close()

    def _ensure_open(self) -> None:
        if self._closed:
            raise RepositoryClosedError(self.model_cls.__name__)

    # Tracking state

    def _key(self, entity: Any) -> Any:
        return self.key_resolver.resolve(entity, self.session)

    @property
    def local(self) -> list[T]:
        """Instances of this repository's type tracked by the session, excluding pending deletes."""
        self._ensure_open()
        deleted = self.session.deleted
        tracked = [*self.session.identity_map.values(), *self.session.new]
        return [obj for obj in tracked if isinstance(obj, self.model_cls) and obj not in deleted]

    def entry_state(self, entity: T) -> EntityState:
        """Return the tracking state of an entity in this repository's session."""
        self._ensure_open()
        state = inspect(entity)
        if state.session is not self.session or state.transient or state.detached:
            return EntityState.DETACHED
        if state.pending:
            return EntityState.ADDED
        if state.deleted or entity in self.session.deleted:
            return EntityState.DELETED
        if self.session.is_modified(entity):
            return EntityState.MODIFIED
        return EntityState.UNCHANGED

    def _find_local_duplicate(self, entity: T) -> T | None:
        key = self._key(entity)
        if not _is_complete_key(key):
            return None
        for candidate in self.local:
            if candidate is not entity and self._key(candidate) == key:
                return candidate
        return None

    def _check_session(self, entity: T) -> None:
        owner = inspect(entity).session
        if owner is not None and owner is not self.session:
            raise ForeignSessionError(self.model_cls.__name__)

    def _attach(self, entity: T) -> None:
        """Attach a detached or keyed transient instance, evicting any stale duplicate."""
        state = inspect(entity)
        if not (state.transient or state.detached):
            return

        stale = self._find_local_duplicate(entity)
        if stale is not None:
            logger.debug(
                f"Detaching stale {self.model_cls.__name__} instance with key {self._key(stale)!r} before attach"
            )
            self.session.expunge(stale)

        if state.transient:
            if not _is_complete_key(self._key(entity)):
                raise ValueError(  # noqa: TRY003
                    f"Cannot attach {self.model_cls.__name__} without a primary key value."
                )
            make_transient_to_detached(entity)
        self.session.add(entity)

    def _mark_modified(self, entity: T, load_expired: bool = False) -> None:
        state = inspect(entity)
        mapper = state.mapper
        primary_keys = {mapper.get_property_by_column(column).key for column in mapper.primary_key}
        for prop in mapper.column_attrs:
            if prop.key in primary_keys:
                continue
            if load_expired and prop.key in state.unloaded:
                getattr(entity, prop.key)
            if prop.key in state.dict:
                flag_modified(entity, prop.key)

    def _load_options(self) -> list[Any]:
        if self._configuration.loading_strategy is LoadingStrategy.EAGER:
            return [selectinload("*")]
        return []

    # Queries

    def as_queryable(self) -> QuerySequence[T]:
        """Return a deferred, composable query over all entities of this type."""
        self._ensure_open()
        stmt = select(self.model_cls).options(*self._load_options())
        return QuerySequence(
            self.session,
            self.model_cls,
            stmt,
            use_database_null_semantics=self._configuration.use_database_null_semantics,
        )

    @property
    def entities(self) -> QuerySequence[T]:
        return self.as_queryable()

    def get_by_id(self, _id: Any) -> T | None:
        """Retrieve an entity by its primary key.

        The session's tracked instances are checked first; the store is only
        queried when the key is not tracked.

        Args:
            _id: The primary key value, or a tuple for composite keys.

        Returns:
            The entity if found, None otherwise.
        """
        self._ensure_open()
        return self.session.get(self.model_cls, _id, options=self._load_options())

    def get_all(self, limit: int | None = None, offset: int | None = None) -> list[T]:
        """Retrieve all entities of this type.

        Args:
            limit: Maximum number of results to return.
            offset: Number of results to skip.

        Returns:
            List of all entities.
        """
        query = self.as_queryable()
        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)
        return query.all()

    def get_page(self, page: int = 1, page_size: int = DEFAULT_ENTITY_COUNT) -> list[T]:
        """Retrieve one page of entities ordered by primary key.

        Args:
            page: 1-based page number.
            page_size: Entities per page, capped at ``DEFAULT_MAX_ENTITY_COUNT``.

        Returns:
            The entities on the requested page.
        """
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive.")  # noqa: TRY003
        page_size = min(page_size, self.DEFAULT_MAX_ENTITY_COUNT)
        primary_key = inspect(self.model_cls).primary_key
        return self.as_queryable().order_by(*primary_key).offset((page - 1) * page_size).limit(page_size).all()

    def find_by(self, **criteria: Any) -> list[T]:
        """Retrieve entities whose attributes equal the given values.

        ``None`` values are compared with the configured null semantics.
        """
        return self.as_queryable().filter_by(**criteria).all()

    def count(self) -> int:
        """Count total number of entities."""
        return self.as_queryable().count()

    def exists(self, _id: Any) -> bool:
        """Check if an entity exists by its primary key."""
        return self.get_by_id(_id) is not None

    # Mutations

    def insert(self, entity: T, save_after: bool = False, async_: bool = False) -> Future | None:
        """Add a new entity to the session.

        Args:
            entity: The entity instance to add.
            save_after: Commit immediately after adding.
            async_: Commit on the worker thread. Only used with ``save_after``.

        Returns:
            The commit future for an asynchronous commit, None otherwise.
        """
        self._ensure_open()
        self.session.add(entity)
        logger.debug(f"Added {self.model_cls.__name__} entity")
        return self._complete(save_after, async_, [lambda: self._notify_added(entity)])

    def bulk_insert(self, entities: Iterable[T], save_after: bool = False, async_: bool = False) -> Future | None:
        """Add multiple entities, notifying for each once all of them are added."""
        self._ensure_open()
        entities = list(entities)
        for entity in entities:
            self.session.add(entity)
        logger.debug(f"Added {len(entities)} {self.model_cls.__name__} entities")
        return self._complete(save_after, async_, [lambda e=entity: self._notify_added(e) for entity in entities])

    def update(self, entity: T, save_after: bool = False, async_: bool = False) -> Future | None:
        """Attach an entity and mark it modified.

        A different instance tracked under the same key is detached first, so
        an entity built or loaded elsewhere can replace it.

        Args:
            entity: The entity instance to update.
            save_after: Commit immediately after updating.
            async_: Commit on the worker thread. Only used with ``save_after``.

        Returns:
            The commit future for an asynchronous commit, None otherwise.
        """
        self._ensure_open()
        self._stage_update(entity)
        return self._complete(save_after, async_, [lambda: self._notify_updated(entity)])

    def bulk_update(self, entities: Iterable[T], save_after: bool = False, async_: bool = False) -> Future | None:
        """Update multiple entities, notifying for each once all of them are marked modified."""
        self._ensure_open()
        entities = list(entities)
        for entity in entities:
            self._check_session(entity)
        for entity in entities:
            self._stage_update(entity)
        return self._complete(save_after, async_, [lambda e=entity: self._notify_updated(e) for entity in entities])

    def _stage_update(self, entity: T) -> None:
        self._check_session(entity)
        state = inspect(entity)
        if state.pending:
            return
        tracked = state.persistent and state.session is self.session
        if not tracked:
            self._attach(entity)
        # A tracked instance may have expired on commit; load it so every column is written.
        self._mark_modified(entity, load_expired=tracked)
        logger.debug(f"Marked {self.model_cls.__name__} entity {self._key(entity)!r} as modified")

    def delete(self, entity: T, save_after: bool = False, async_: bool = False) -> Future | None:
        """Delete an entity, attaching it first if it is detached.

        Deleting an entity that was added but never committed just removes it
        from the session.

        Args:
            entity: The entity instance to delete.
            save_after: Commit immediately after deleting.
            async_: Commit on the worker thread. Only used with ``save_after``.

        Returns:
            The commit future for an asynchronous commit, None otherwise.
        """
        self._ensure_open()
        key = self._stage_delete(entity)
        return self._complete(save_after, async_, [lambda: self._notify_deleted(key)])

    def bulk_delete(self, entities: Iterable[T], save_after: bool = False, async_: bool = False) -> Future | None:
        """Delete multiple entities, notifying for each once all of them are removed."""
        self._ensure_open()
        entities = list(entities)
        for entity in entities:
            self._check_session(entity)
        keys = [self._stage_delete(entity) for entity in entities]
        return self._complete(save_after, async_, [lambda k=key: self._notify_deleted(k) for key in keys])

    def delete_by_id(self, _id: Any, save_after: bool = False, async_: bool = False) -> Future | None:
        """Delete an entity by its primary key.

        Args:
            _id: The primary key value.
            save_after: Commit immediately after deleting.
            async_: Commit on the worker thread. Only used with ``save_after``.

        Returns:
            The commit future for an asynchronous commit, None otherwise.

        Raises:
            EntityNotFoundError: If no entity has the given key.
        """
        self._ensure_open()
        self._stage_delete(self._get_existing(_id))
        return self._complete(save_after, async_, [lambda: self._notify_deleted(_id)])

    def bulk_delete_by_ids(self, ids: Iterable[Any], save_after: bool = False, async_: bool = False) -> Future | None:
        """Delete entities by primary key, notifying with each raw id once all of them are removed.

        Every id is looked up before anything is staged, so a missing id leaves
        the session untouched.
        """
        self._ensure_open()
        ids = list(ids)
        targets = [self._get_existing(_id) for _id in ids]
        for target in targets:
            self._stage_delete(target)
        return self._complete(save_after, async_, [lambda i=_id: self._notify_deleted(i) for _id in ids])

    def _get_existing(self, _id: Any) -> T:
        entity = self.get_by_id(_id)
        if entity is None:
            raise EntityNotFoundError(self.model_cls.__name__, _id)
        return entity

    def _stage_delete(self, entity: T) -> Any:
        self._check_session(entity)
        state = inspect(entity)
        if state.pending:
            key = self._key(entity)
            self.session.expunge(entity)
            logger.debug(f"Discarded pending {self.model_cls.__name__} entity")
            return key
        self._attach(entity)
        key = self._key(entity)
        self.session.delete(entity)
        logger.debug(f"Marked {self.model_cls.__name__} entity {key!r} as deleted")
        return key

    # Commit

    def save(self, async_: bool = False) -> Future | None:
        """Commit all pending changes in the session.

        Args:
            async_: Run the commit on the repository's worker thread.

        Returns:
            A future resolving when the asynchronous commit finishes, None for a
            synchronous commit. A failed asynchronous commit is logged and its
            exception is kept on the future.
        """
        self._ensure_open()
        if not async_:
            self.session.commit()
            return None
        return self._submit([])

    def _submit(self, notifications: list[Notification]) -> Future:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix=f"goldfinch-{self.model_cls.__name__.lower()}"
            )
        return self._executor.submit(self._commit_in_background, notifications)

    def _commit_in_background(self, notifications: list[Notification]) -> None:
        try:
            self.session.commit()
        except Exception:
            logger.exception(f"Asynchronous commit failed for {self.model_cls.__name__} repository")
            raise
        # Handler errors land on the future.
        self._fire(notifications)

    def _complete(self, save_after: bool, async_: bool, notifications: list[Notification]) -> Future | None:
        if not save_after:
            self._fire(notifications)
            return None
        if not async_:
            self.save()
            self._fire(notifications)
            return None
        return self._submit(notifications)

    # Notifications

    def subscribe(self, observer: RepositoryObserver) -> None:
        self.events.subscribe(observer)

    def unsubscribe(self, observer: RepositoryObserver) -> None:
        self.events.unsubscribe(observer)

    @staticmethod
    def _fire(notifications: list[Notification]) -> None:
        for notify in notifications:
            notify()

    def _notify_added(self, entity: T) -> None:
        if self.events.on_data_added:
            self.events.on_data_added(self._key(entity), entity)

    def _notify_updated(self, entity: T) -> None:
        if self.events.on_data_updated:
            self.events.on_data_updated(self._key(entity), entity)

    def _notify_deleted(self, key: Any) -> None:
        if self.events.on_data_deleted:
            self.events.on_data_deleted(key)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model_cls.__name__}, closed={self._closed})"


def create_repository(session: Session, model_cls: type[T], **kwargs: Any) -> GenericRepository[T]:
    """Factory function to create a repository instance.

    Args:
        session: SQLAlchemy session.
        model_cls: The model class for the repository.
        **kwargs: Configuration flags and observers passed to ``GenericRepository``.

    Returns:
        A new GenericRepository instance.

    Example:
        >>> session = SessionFactory()
        >>> user_repo = create_repository(session, User, disable_lazy_loading=True)
        >>> user = user_repo.get_by_id(1)
    """
    return GenericRepository(session, model_cls, **kwargs)
