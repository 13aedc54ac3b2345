from unittest.mock import MagicMock

import pytest

from goldfinch.orm.events import EventHook, RepositoryEvents, RepositoryObserver


class DeletionCounter(RepositoryObserver):
    def __init__(self):
        self.deleted = []

    def on_data_deleted(self, key):
        self.deleted.append(key)


def test_hook_invokes_handlers_in_registration_order():
    calls = []
    hook = EventHook("on_data_added")
    hook.connect(lambda key, entity: calls.append(("first", key)))
    hook.connect(lambda key, entity: calls.append(("second", key)))

    hook(1, object())

    assert calls == [("first", 1), ("second", 1)]
    assert len(hook) == 2


def test_hook_without_handlers_is_noop():
    hook = EventHook("on_data_deleted")

    hook(1)

    assert not hook


def test_disconnect_unknown_handler_is_noop():
    hook = EventHook("on_data_deleted")
    handler = MagicMock()
    hook.connect(handler)

    hook.disconnect(lambda key: None)
    hook.disconnect(handler)
    hook(1)

    handler.assert_not_called()


def test_connect_works_as_decorator():
    hook = EventHook("on_data_deleted")

    @hook.connect
    def handler(key):
        handler.seen = key

    hook(9)

    assert handler.seen == 9


def test_handler_errors_propagate():
    hook = EventHook("on_data_deleted")
    hook.connect(MagicMock(side_effect=RuntimeError("boom")))

    with pytest.raises(RuntimeError, match="boom"):
        hook(1)


def test_observer_overrides_only_what_it_needs():
    counter = DeletionCounter()
    events = RepositoryEvents([counter])

    events.on_data_added(1, object())
    events.on_data_updated(1, object())
    events.on_data_deleted(1)

    assert counter.deleted == [1]


def test_subscribe_and_unsubscribe_multiple_observers():
    first, second = DeletionCounter(), DeletionCounter()
    events = RepositoryEvents()
    events.subscribe(first)
    events.subscribe(second)

    events.on_data_deleted("a")
    events.unsubscribe(first)
    events.on_data_deleted("b")

    assert first.deleted == ["a"]
    assert second.deleted == ["a", "b"]
    assert "handlers=1" in repr(events.on_data_deleted)
