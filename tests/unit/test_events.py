"""
tests/unit/test_events.py — EventEmitter / SchedulerObserver Tests

Covers:
  - on / once / off registration and call order
  - lifecycle events called without arguments, task events with payloads
  - string event names coerced, unknown names rejected
  - failing listeners logged and isolated from other listeners
  - coroutine listeners scheduled as tasks
  - SchedulerObserver subscribe / unsubscribe wiring through a Scheduler
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from relaytask.scheduler import (
    EventEmitter,
    Scheduler,
    SchedulerEvent,
    SchedulerObserver,
    TaskFailed,
    TaskFinished,
    TaskStarted,
)


class TestEventEmitter:

    def test_emit_without_listeners_returns_false(self):
        assert EventEmitter().emit(SchedulerEvent.START) is False

    def test_lifecycle_listener_called_without_args(self):
        em = EventEmitter()
        spy = MagicMock(return_value=None)
        em.on(SchedulerEvent.STOP, spy)
        assert em.emit(SchedulerEvent.STOP) is True
        spy.assert_called_once_with()

    def test_task_listener_receives_payload(self):
        em = EventEmitter()
        spy = MagicMock(return_value=None)
        em.on("task-start", spy)
        payload = TaskStarted(id=1, name="#1")
        em.emit(SchedulerEvent.TASK_START, payload)
        spy.assert_called_once_with(payload)

    def test_listeners_called_in_registration_order(self):
        em = EventEmitter()
        order = []
        em.on(SchedulerEvent.PAUSE, lambda: order.append(1))
        em.on(SchedulerEvent.PAUSE, lambda: order.append(2))
        em.emit(SchedulerEvent.PAUSE)
        assert order == [1, 2]

    def test_once_fires_a_single_time(self):
        em = EventEmitter()
        spy = MagicMock(return_value=None)
        em.once(SchedulerEvent.RESUME, spy)
        em.emit(SchedulerEvent.RESUME)
        em.emit(SchedulerEvent.RESUME)
        assert spy.call_count == 1
        assert em.listener_count(SchedulerEvent.RESUME) == 0

    def test_off_removes_listener(self):
        em = EventEmitter()
        spy = MagicMock(return_value=None)
        em.on(SchedulerEvent.START, spy)
        assert em.off(SchedulerEvent.START, spy) is True
        assert em.off(SchedulerEvent.START, spy) is False
        em.emit(SchedulerEvent.START)
        spy.assert_not_called()

    def test_off_removes_once_listener(self):
        em = EventEmitter()
        spy = MagicMock(return_value=None)
        em.once(SchedulerEvent.START, spy)
        assert em.off(SchedulerEvent.START, spy) is True

    def test_unknown_event_rejected(self):
        with pytest.raises(ValueError, match="Unknown scheduler event"):
            EventEmitter().on("finished", lambda: None)

    def test_failing_listener_does_not_block_others(self):
        em = EventEmitter()
        spy = MagicMock(return_value=None)

        def bad(_):
            raise RuntimeError("boom")

        em.on(SchedulerEvent.TASK_ERROR, bad)
        em.on(SchedulerEvent.TASK_ERROR, spy)
        payload = TaskFailed(id=1, name="#1", error=ValueError("x"))
        em.emit(SchedulerEvent.TASK_ERROR, payload)
        spy.assert_called_once_with(payload)

    def test_listener_may_unregister_itself(self):
        em = EventEmitter()
        calls = []

        def listener():
            calls.append(1)
            em.off(SchedulerEvent.STOP, listener)

        em.on(SchedulerEvent.STOP, listener)
        em.emit(SchedulerEvent.STOP)
        em.emit(SchedulerEvent.STOP)
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_coroutine_listener_is_scheduled(self):
        em = EventEmitter()
        seen = []

        async def listener(payload):
            await asyncio.sleep(0)
            seen.append(payload.value)

        em.on(SchedulerEvent.TASK_FINISH, listener)
        em.emit(SchedulerEvent.TASK_FINISH, TaskFinished(id=1, name="#1", value=9))
        assert seen == []
        for _ in range(3):
            await asyncio.sleep(0)
        assert seen == [9]

    def test_coroutine_listener_without_loop_is_dropped(self):
        em = EventEmitter()

        async def listener():
            raise AssertionError("must not run")

        em.on(SchedulerEvent.STOP, listener)
        assert em.emit(SchedulerEvent.STOP) is True


class _Recorder(SchedulerObserver):
    def __init__(self) -> None:
        self.events: list[str] = []

    def on_start(self) -> None:
        self.events.append("start")

    def on_task_start(self, event: TaskStarted) -> None:
        self.events.append(f"task-start:{event.name}")

    def on_task_finish(self, event: TaskFinished) -> None:
        self.events.append(f"task-finish:{event.name}={event.value}")

    def on_task_error(self, event: TaskFailed) -> None:
        self.events.append(f"task-error:{event.name}")


class TestSchedulerObserver:

    @pytest.mark.asyncio
    async def test_observer_receives_typed_events(self):
        s = Scheduler()
        rec = _Recorder()
        s.subscribe(rec)

        def boom():
            raise RuntimeError("x")

        s.add("one", lambda: 1)
        s.add("two", boom)
        s.start()
        await s.join()
        assert rec.events == [
            "start",
            "task-start:one",
            "task-finish:one=1",
            "task-start:two",
            "task-error:two",
        ]

    def test_subscribe_twice_registers_once(self):
        em = EventEmitter()
        rec = _Recorder()
        em.subscribe(rec)
        em.subscribe(rec)
        assert em.listener_count(SchedulerEvent.START) == 1

    def test_unsubscribe(self):
        em = EventEmitter()
        rec = _Recorder()
        em.subscribe(rec)
        assert em.unsubscribe(rec) is True
        assert em.unsubscribe(rec) is False
        em.emit(SchedulerEvent.START)
        assert rec.events == []
        for event in SchedulerEvent:
            assert em.listener_count(event) == 0
