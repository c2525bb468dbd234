"""Tests for ProgressBus state merging and notification, and the FolderEvents signal."""

from __future__ import annotations

from folder_index.schemas.progress import TaskProgressState
from folder_index.services.folder_events import FolderEvents
from folder_index.services.progress import ProgressBus


class TestProgressBus:
    def test_unknown_folder_is_idle(self) -> None:
        bus = ProgressBus()
        state = bus.get('proj')
        assert state.phase == 'idle'
        assert state.percent == 0
        assert bus.peek('proj') is None

    def test_update_merges_into_previous_state(self) -> None:
        bus = ProgressBus()
        bus.update('proj', phase='embedding', total_files=10, message='Embedding 0/10 documents')
        state = bus.update('proj', processed_files=4)

        assert state.phase == 'embedding'
        assert state.total_files == 10
        assert state.processed_files == 4
        assert state.message == 'Embedding 0/10 documents'
        assert bus.peek('proj') == state

    def test_listeners_receive_full_state(self) -> None:
        bus = ProgressBus()
        received: list[tuple[str, TaskProgressState | None]] = []
        bus.subscribe(lambda name, state: received.append((name, state)))

        bus.update('proj', phase='parsing', percent=10)
        bus.update('proj', percent=15)
        bus.clear('proj')

        assert [name for name, _ in received] == ['proj', 'proj', 'proj']
        second = received[1][1]
        assert second is not None
        assert (second.phase, second.percent) == ('parsing', 15)
        assert received[2][1] is None

    def test_clear_unknown_folder_is_silent(self) -> None:
        bus = ProgressBus()
        received: list[str] = []
        bus.subscribe(lambda name, state: received.append(name))
        bus.clear('proj')
        assert received == []

    def test_failing_listener_is_isolated(self) -> None:
        bus = ProgressBus()
        received: list[str] = []

        def explode(name: str, state: TaskProgressState | None) -> None:
            raise RuntimeError('listener bug')

        bus.subscribe(explode)
        bus.subscribe(lambda name, state: received.append(name))
        bus.update('proj', phase='scheduled')
        assert received == ['proj']

    def test_unsubscribe(self) -> None:
        bus = ProgressBus()
        received: list[str] = []
        unsubscribe = bus.subscribe(lambda name, state: received.append(name))
        unsubscribe()
        bus.update('proj', phase='scheduled')
        assert received == []

    def test_folders_are_independent(self) -> None:
        bus = ProgressBus()
        bus.update('a', phase='embedding')
        bus.update('b', phase='error', error='boom')
        assert bus.get('a').error is None
        assert bus.get('b').phase == 'error'


class TestFolderEvents:
    def test_failing_listener_does_not_stop_others(self) -> None:
        events = FolderEvents()
        calls: list[str] = []

        def broken() -> None:
            raise RuntimeError('boom')

        events.subscribe(broken)
        unsubscribe = events.subscribe(lambda: calls.append('ok'))
        events.notify_change()
        assert calls == ['ok']

        unsubscribe()
        events.notify_change()
        assert calls == ['ok']
