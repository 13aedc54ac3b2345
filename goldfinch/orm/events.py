"""Change notifications raised by repositories after each mutation."""

from collections.abc import Callable, Iterable
from typing import Any


class EventHook:
    """An ordered list of handlers invoked synchronously on the calling thread."""

    def __init__(self, name: str):
        self.name = name
        self._handlers: list[Callable[..., Any]] = []

    def connect(self, handler: Callable[..., Any]) -> Callable[..., Any]:
        """Register a handler. Returns it so the method can be used as a decorator."""
        self._handlers.append(handler)
        return handler

    def disconnect(self, handler: Callable[..., Any]) -> None:
        """Remove a handler. Removing a handler that is not connected is a no-op."""
        if handler in self._handlers:
            self._handlers.remove(handler)

    def __call__(self, *args: Any) -> None:
        for handler in list(self._handlers):
            handler(*args)

    def __len__(self) -> int:
        return len(self._handlers)

    def __repr__(self) -> str:
        return f"EventHook({self.name!r}, handlers={len(self._handlers)})"


class RepositoryObserver:
    """Base class for objects observing repository changes.

    Subclasses override only the notifications they care about.
    """

    def on_data_added(self, key: Any, entity: Any) -> None:
        pass

    def on_data_updated(self, key: Any, entity: Any) -> None:
        pass

    def on_data_deleted(self, key: Any) -> None:
        pass


class RepositoryEvents:
    """The three change notifications of a repository.

    Attributes:
        on_data_added: Fired with ``(key, entity)`` after an insert.
        on_data_updated: Fired with ``(key, entity)`` after an update.
        on_data_deleted: Fired with ``(key,)`` after a delete.
    """

    def __init__(self, observers: Iterable[RepositoryObserver] = ()):
        self.on_data_added = EventHook("on_data_added")
        self.on_data_updated = EventHook("on_data_updated")
        self.on_data_deleted = EventHook("on_data_deleted")
        for observer in observers:
            self.subscribe(observer)

    def subscribe(self, observer: RepositoryObserver) -> None:
        self.on_data_added.connect(observer.on_data_added)
        self.on_data_updated.connect(observer.on_data_updated)
        self.on_data_deleted.connect(observer.on_data_deleted)

    def unsubscribe(self, observer: RepositoryObserver) -> None:
        self.on_data_added.disconnect(observer.on_data_added)
        self.on_data_updated.disconnect(observer.on_data_updated)
        self.on_data_deleted.disconnect(observer.on_data_deleted)
