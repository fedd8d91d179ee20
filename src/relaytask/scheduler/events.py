"""
scheduler/events.py — Scheduler Event Emitter

Typed listener registry used by the Scheduler to surface lifecycle and
task events. Two ways to listen:

    scheduler.on(SchedulerEvent.TASK_FINISH, lambda evt: print(evt.value))

    class Printer(SchedulerObserver):
        def on_task_error(self, event: TaskFailed) -> None:
            print(event.name, event.error)
    scheduler.subscribe(Printer())

Listeners run synchronously in registration order. A listener that returns
an awaitable has it scheduled as a separate asyncio task. A failing listener
is logged and never affects the emitter or the remaining listeners.
"""

from __future__ import annotations

import asyncio
import inspect
from enum import Enum
from typing import Any, Callable, Optional

from relaytask.observability.logger import get_logger
from relaytask.scheduler.types import TaskFailed, TaskFinished, TaskStarted

log = get_logger(__name__)

Listener = Callable[..., Any]


class SchedulerEvent(str, Enum):
    START       = "start"
    PAUSE       = "pause"
    RESUME      = "resume"
    STOP        = "stop"
    TASK_START  = "task-start"
    TASK_FINISH = "task-finish"
    TASK_ERROR  = "task-error"


_LIFECYCLE_EVENTS = frozenset({
    SchedulerEvent.START,
    SchedulerEvent.PAUSE,
    SchedulerEvent.RESUME,
    SchedulerEvent.STOP,
})


# ─────────────────────────────────────────────────────────────────────────────
# Observer interface
# ─────────────────────────────────────────────────────────────────────────────

class SchedulerObserver:
    """Base class for typed observers. Override the hooks you need."""

    def on_start(self) -> None: ...
    def on_pause(self) -> None: ...
    def on_resume(self) -> None: ...
    def on_stop(self) -> None: ...
    def on_task_start(self, event: TaskStarted) -> None: ...
    def on_task_finish(self, event: TaskFinished) -> None: ...
    def on_task_error(self, event: TaskFailed) -> None: ...

    def listeners(self) -> dict[SchedulerEvent, Listener]:
        return {
            SchedulerEvent.START:       self.on_start,
            SchedulerEvent.PAUSE:       self.on_pause,
            SchedulerEvent.RESUME:      self.on_resume,
            SchedulerEvent.STOP:        self.on_stop,
            SchedulerEvent.TASK_START:  self.on_task_start,
            SchedulerEvent.TASK_FINISH: self.on_task_finish,
            SchedulerEvent.TASK_ERROR:  self.on_task_error,
        }


# ─────────────────────────────────────────────────────────────────────────────
# EventEmitter
# ─────────────────────────────────────────────────────────────────────────────

class _Once:
    __slots__ = ("listener",)

    def __init__(self, listener: Listener) -> None:
        self.listener = listener


class EventEmitter:
    """Per-event ordered listener lists."""

    def __init__(self) -> None:
        self._listeners: dict[SchedulerEvent, list[Any]] = {e: [] for e in SchedulerEvent}
        self._observers: dict[int, dict[SchedulerEvent, Listener]] = {}
        self._pending: set[asyncio.Task] = set()

    @staticmethod
    def _coerce(event: SchedulerEvent | str) -> SchedulerEvent:
        try:
            return SchedulerEvent(event)
        except ValueError:
            raise ValueError(
                f"Unknown scheduler event '{event}'. "
                f"Valid events: {[e.value for e in SchedulerEvent]}"
            ) from None

    def on(self, event: SchedulerEvent | str, listener: Listener) -> Listener:
        """Register `listener` for `event`. Returns the listener (decorator-friendly)."""
        self._listeners[self._coerce(event)].append(listener)
        return listener

    def once(self, event: SchedulerEvent | str, listener: Listener) -> Listener:
        """Register `listener` to fire on the next `event` only."""
        self._listeners[self._coerce(event)].append(_Once(listener))
        return listener

    def off(self, event: SchedulerEvent | str, listener: Listener) -> bool:
        """Remove the first registration of `listener`. True if one was removed."""
        entries = self._listeners[self._coerce(event)]
        for i, entry in enumerate(entries):
            target = entry.listener if isinstance(entry, _Once) else entry
            if target == listener:
                del entries[i]
                return True
        return False

    def subscribe(self, observer: SchedulerObserver) -> None:
        if id(observer) in self._observers:
            return
        hooks = observer.listeners()
        self._observers[id(observer)] = hooks
        for event, hook in hooks.items():
            self.on(event, hook)

    def unsubscribe(self, observer: SchedulerObserver) -> bool:
        hooks = self._observers.pop(id(observer), None)
        if hooks is None:
            return False
        for event, hook in hooks.items():
            self.off(event, hook)
        return True

    def listener_count(self, event: SchedulerEvent | str) -> int:
        return len(self._listeners[self._coerce(event)])

    def emit(self, event: SchedulerEvent, payload: Optional[Any] = None) -> bool:
        """
        Call every listener of `event`. Lifecycle events are emitted without
        arguments, task events with their payload. Returns True if any
        listener was registered.
        """
        entries = self._listeners[event]
        if not entries:
            return False
        # Snapshot so listeners may (un)register while we iterate
        for entry in list(entries):
            if isinstance(entry, _Once):
                try:
                    entries.remove(entry)
                except ValueError:
                    continue
                listener = entry.listener
            else:
                listener = entry
            self._call(event, listener, payload)
        return True

    def _call(self, event: SchedulerEvent, listener: Listener, payload: Any) -> None:
        try:
            if event in _LIFECYCLE_EVENTS:
                result = listener()
            else:
                result = listener(payload)
        except Exception as e:
            log.error(
                "events.listener_error",
                scheduler_event=event.value,
                error=f"{type(e).__name__}: {e}",
                exc_info=True,
            )
            return
        if inspect.isawaitable(result):
            self._track(event, result)

    def _track(self, event: SchedulerEvent, awaitable: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.warning("events.async_listener_dropped", scheduler_event=event.value)
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        task = asyncio.ensure_future(awaitable, loop=loop)
        self._pending.add(task)

        def _done(t: asyncio.Task) -> None:
            self._pending.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                log.error(
                    "events.listener_error",
                    scheduler_event=event.value,
                    error=f"{type(exc).__name__}: {exc}",
                    exc_info=exc,
                )

        task.add_done_callback(_done)
