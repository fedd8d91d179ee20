"""
scheduler/scheduler.py — Scheduler

In-process, concurrency-bounded task scheduler running on an asyncio event
loop. Callers enqueue work items; the scheduler runs up to max_concurrency
of them at once and feeds each result to the next task it starts.

Design
------
* Pure asyncio. All bookkeeping (queue, counters, state, last value) is
  mutated on the event loop only, by the public methods and by the
  scheduler's own _execute coroutines. Task bodies run as separate asyncio
  tasks and report back by returning to _execute.
* One chokepoint: _dispatch is the only place that admits work, so
  running_count <= max_concurrency holds by construction. It runs after
  start(), resume(), every completion, and an add() that re-arms a drained
  scheduler.
* Deferred: dispatch is scheduled with loop.call_soon and each task body
  starts in its own asyncio task, so nothing runs inside add()/start().
* Fail-safe: a failing task body is reported through the task-error event
  and resets the value chain. It NEVER propagates into the scheduler.
  A task cancelled before _execute is entered is booked by the
  done-callback attached at dispatch, so every admitted task releases
  its slot exactly once.
* Admission failures are return values (None / False), not exceptions.

State machine::

    pending ──start/resume──▶ running ──pause──▶ paused ──resume──▶ running
       ▲                        │
       └──── queue drained ─────┘            any ──stop──▶ stopped
                                             stopped ──start──▶ running

Usage::

    scheduler = Scheduler(max_concurrency=2)
    scheduler.on("task-finish", lambda evt: print(evt.name, evt.value))
    scheduler.add("fetch", fetch_page)
    scheduler.add("parse", parse_page)
    scheduler.start("https://example.com")
    await scheduler.join()
"""

from __future__ import annotations

import asyncio
import functools
import inspect
from collections import deque
from typing import Any, Optional

from relaytask.config.settings import MAX_PENDING, UNBOUNDED_CONCURRENCY
from relaytask.exceptions import SchedulerError
from relaytask.observability.logger import bind_scheduler, get_logger
from relaytask.scheduler.events import (
    EventEmitter,
    Listener,
    SchedulerEvent,
    SchedulerObserver,
)
from relaytask.scheduler.types import (
    NO_ITEM,
    NO_SEED,
    SchedulerState,
    SchedulerStats,
    TaskDescriptor,
    TaskFailed,
    TaskFinished,
    TaskSelector,
    TaskStarted,
    resolve_work_item,
)

log = get_logger(__name__)

MAX_TASK_ID = 2**32 - 1

_HEAD: Any = object()


class Scheduler:
    """
    Concurrency-bounded FIFO task scheduler with value propagation.

    Args:
        max_concurrency:  Tasks allowed in flight at once. None → 1 (serial),
                          0 → unbounded.
        max_pending:      Queue capacity. add() returns None once reached.
        loop:             Event loop to schedule on. Defaults to the loop
                          running when the scheduler first needs one.
        name:             Bound to every log line of this scheduler.

    Introspection::

        scheduler.state           # SchedulerState
        scheduler.pending_count   # queued, not yet started
        scheduler.running_count   # in flight
        scheduler.last_value      # value the next unseeded task receives
        scheduler.stats           # SchedulerStats counters
    """

    def __init__(
        self,
        max_concurrency: Optional[int] = None,
        *,
        max_pending: int = MAX_PENDING,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        name: str = "scheduler",
    ) -> None:
        if max_concurrency is None:
            max_concurrency = 1
        if isinstance(max_concurrency, bool) or not isinstance(max_concurrency, int):
            raise ValueError(f"max_concurrency must be an int, got {max_concurrency!r}")
        if max_concurrency < 0:
            raise ValueError("max_concurrency must be >= 0 (0 = unbounded)")
        if not (1 <= max_pending <= MAX_PENDING):
            raise ValueError(f"max_pending must be between 1 and {MAX_PENDING}")

        self._max_running = max_concurrency or UNBOUNDED_CONCURRENCY
        self._max_pending = max_pending
        self._loop = loop
        self._name = name

        self._running = 0
        self._queue: deque[TaskDescriptor] = deque()
        self._next_id = 0
        self._state = SchedulerState.PENDING
        self._last_value: Any = None
        self._started = False

        self._events = EventEmitter()
        self._inflight: set[asyncio.Task] = set()
        self._entered: set[asyncio.Task] = set()
        self._idle_waiters: list[asyncio.Future] = []
        self.stats = SchedulerStats()

        self._log = log.bind(scheduler=name)
        self._log.debug(
            "scheduler.init",
            max_concurrency=max_concurrency,
            max_pending=max_pending,
        )

    # ── Factory ───────────────────────────────────────────────────────────────

    @classmethod
    def from_settings(cls, settings, **kwargs: Any) -> "Scheduler":
        return cls(
            max_concurrency=settings.scheduler.max_concurrency,
            max_pending=settings.scheduler.max_pending,
            **kwargs,
        )

    # ── Read-only views ───────────────────────────────────────────────────────

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    @property
    def running_count(self) -> int:
        return self._running

    @property
    def last_value(self) -> Any:
        return self._last_value

    @property
    def max_concurrency(self) -> int:
        return self._max_running

    @property
    def name(self) -> str:
        return self._name

    def __repr__(self) -> str:
        return (
            f"<Scheduler {self._name!r} state={self._state.value} "
            f"running={self._running}/{self._max_running} pending={len(self._queue)}>"
        )

    # ── Events ────────────────────────────────────────────────────────────────

    def on(self, event: SchedulerEvent | str, listener: Listener) -> Listener:
        return self._events.on(event, listener)

    def once(self, event: SchedulerEvent | str, listener: Listener) -> Listener:
        return self._events.once(event, listener)

    def off(self, event: SchedulerEvent | str, listener: Listener) -> bool:
        return self._events.off(event, listener)

    def subscribe(self, observer: SchedulerObserver) -> None:
        self._events.subscribe(observer)

    def unsubscribe(self, observer: SchedulerObserver) -> bool:
        return self._events.unsubscribe(observer)

    # ── Queue ─────────────────────────────────────────────────────────────────

    def add(self, name: Any = NO_ITEM, func: Any = NO_ITEM, seed: Any = NO_SEED) -> Optional[int]:
        """
        Enqueue a task. Returns its id, or None if the queue is full.

            add(func)                # name defaults to "#<id>"
            add(func, seed)          # func receives `seed` instead of the chain value
            add("name", func)
            add("name", func, seed)
            add("name", 42)          # non-callable: the task just yields 42

        If the scheduler has been started and has drained back to pending,
        the new task re-arms dispatch immediately.
        """
        if callable(name):
            if func is not NO_ITEM:
                if seed is not NO_SEED:
                    raise TypeError("add() got the seed both positionally and by keyword")
                seed = func
            name, func = NO_ITEM, name
        if name is NO_ITEM or name is None:
            name = None
        elif not isinstance(name, str):
            raise TypeError(f"Task name must be a str, got {type(name).__name__}")
        if func is NO_ITEM:
            func = None

        if len(self._queue) >= self._max_pending or self._next_id >= MAX_TASK_ID:
            self._log.warning(
                "scheduler.queue_full",
                pending=len(self._queue),
                next_id=self._next_id,
            )
            return None

        self._next_id += 1
        task_id = self._next_id
        descriptor = TaskDescriptor(
            id=task_id,
            name=name if name is not None else f"#{task_id}",
            func=func,
            seed=seed,
        )
        self._queue.append(descriptor)
        self._log.debug(
            "scheduler.task_added",
            task=descriptor.name,
            task_id=task_id,
            seeded=descriptor.has_seed,
        )

        if self._state is SchedulerState.PENDING and self._started:
            self._state = SchedulerState.RUNNING
            self._schedule_dispatch(self._last_value)
        return task_id

    def remove(self, selector: Any = _HEAD) -> bool:
        """
        Remove queued tasks.

        With no argument, remove the head of the queue (False if empty).
        Otherwise remove every descriptor matching `selector`, which is a
        TaskSelector or a raw key: a callable matches by identity, a number
        by id, anything else by name. Returns True if anything was removed.
        Tasks already running are unaffected.
        """
        if selector is _HEAD:
            if not self._queue:
                return False
            head = self._queue.popleft()
            self._log.debug("scheduler.task_removed", task=head.name, task_id=head.id)
            self._notify_if_idle()
            return True

        if not isinstance(selector, TaskSelector):
            selector = TaskSelector.infer(selector)
        kept = [d for d in self._queue if not selector.matches(d)]
        removed = len(self._queue) - len(kept)
        if not removed:
            return False
        self._queue.clear()
        self._queue.extend(kept)
        self._log.debug(
            "scheduler.task_removed",
            selector=selector.kind.value,
            key=repr(selector.key),
            count=removed,
        )
        self._notify_if_idle()
        return True

    def remove_by_id(self, task_id: int) -> bool:
        return self.remove(TaskSelector.by_id(task_id))

    def remove_by_name(self, name: str) -> bool:
        return self.remove(TaskSelector.by_name(name))

    def remove_by_ref(self, func: Any) -> bool:
        return self.remove(TaskSelector.by_ref(func))

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self, seed: Any = None) -> bool:
        """
        Start dispatching with `seed` as the first value of the chain.

        Allowed from pending or stopped only; otherwise returns False and
        leaves the chain value untouched.
        """
        if self._state not in (SchedulerState.PENDING, SchedulerState.STOPPED):
            self._log.warning("scheduler.start_rejected", state=self._state.value)
            return False
        self._require_loop()
        self._started = True
        self._state = SchedulerState.RUNNING
        self._last_value = seed
        self._schedule_dispatch(seed)
        self._log.info("scheduler.start", pending=len(self._queue))
        self._events.emit(SchedulerEvent.START)
        return True

    def pause(self) -> bool:
        """Suspend dispatch. In-flight tasks keep running. True if paused afterwards."""
        if self._state is SchedulerState.RUNNING:
            self._state = SchedulerState.PAUSED
            self._log.info("scheduler.pause", running=self._running, pending=len(self._queue))
            self._events.emit(SchedulerEvent.PAUSE)
            return True
        return self._state is SchedulerState.PAUSED

    def resume(self) -> bool:
        """
        Resume dispatch from paused or pending. A stopped scheduler refuses.

        A successful resume schedules a dispatch pass with last_value, so
        queued work starts even when nothing is in flight to re-arm it.
        """
        if self._state in (SchedulerState.PAUSED, SchedulerState.PENDING):
            self._require_loop()
            self._started = True
            self._state = SchedulerState.RUNNING
            self._schedule_dispatch(self._last_value)
            self._log.info("scheduler.resume", pending=len(self._queue))
            self._events.emit(SchedulerEvent.RESUME)
            return True
        return self._state is SchedulerState.RUNNING

    def stop(self) -> bool:
        """
        Drop all queued tasks and reset id allocation. In-flight tasks are
        not cancelled; they finish and report as usual.
        """
        dropped = len(self._queue)
        self._state = SchedulerState.STOPPED
        self._next_id = 0
        self._queue.clear()
        self._log.info("scheduler.stop", dropped=dropped, running=self._running)
        self._events.emit(SchedulerEvent.STOP)
        self._notify_if_idle()
        return self._state is SchedulerState.STOPPED

    async def join(self) -> None:
        """
        Wait until nothing is queued and nothing is in flight.

        Returns immediately when already idle. A scheduler holding queued
        work while paused (or never started) keeps the caller waiting until
        that work has run or been removed.
        """
        if self._is_idle():
            return
        waiter = asyncio.get_running_loop().create_future()
        self._idle_waiters.append(waiter)
        await waiter

    # ── Dispatch ──────────────────────────────────────────────────────────────

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            try:
                self._loop = asyncio.get_running_loop()
            except RuntimeError:
                raise SchedulerError(
                    "Scheduler needs a running asyncio event loop to dispatch tasks. "
                    "Call start()/resume() from a coroutine or pass loop=..."
                ) from None
        return self._loop

    def _schedule_dispatch(self, value: Any) -> None:
        self._require_loop().call_soon(self._dispatch, value)

    def _dispatch(self, value: Any) -> None:
        """One dispatch pass. `value` is the chain value captured when it was scheduled."""
        if self._state is not SchedulerState.RUNNING:
            return
        capacity = self._max_running - self._running
        if capacity <= 0:
            return

        batch = [self._queue.popleft() for _ in range(min(capacity, len(self._queue)))]
        if not self._queue:
            self._state = SchedulerState.PENDING
            self._log.debug("scheduler.drained", admitted=len(batch))

        if batch:
            self._log.debug(
                "scheduler.dispatch",
                admitted=[d.name for d in batch],
                running=self._running + len(batch),
            )
        loop = self._require_loop()
        for descriptor in batch:
            task_input = descriptor.take_input(value)
            self._running += 1
            task = loop.create_task(
                self._execute(descriptor, task_input),
                name=f"relaytask:{self._name}:{descriptor.name}",
            )
            self._inflight.add(task)
            task.add_done_callback(functools.partial(self._on_task_done, descriptor))

    # ── Task execution ────────────────────────────────────────────────────────

    async def _execute(self, descriptor: TaskDescriptor, value: Any) -> None:
        """Run one task. Never raises except to propagate cancellation."""
        self._entered.add(asyncio.current_task())
        bind_scheduler(self._name)
        self._log.debug("scheduler.task_start", task=descriptor.name, task_id=descriptor.id)
        self._events.emit(
            SchedulerEvent.TASK_START,
            TaskStarted(id=descriptor.id, name=descriptor.name),
        )

        try:
            result = resolve_work_item(descriptor.func).invoke(value)
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError as e:
            self._log.info("scheduler.task_cancelled", task=descriptor.name, task_id=descriptor.id)
            self._fail(descriptor, e)
            raise
        except Exception as e:
            self._log.warning(
                "scheduler.task_error",
                task=descriptor.name,
                task_id=descriptor.id,
                error=f"{type(e).__name__}: {e}",
                exc_info=True,
            )
            self._fail(descriptor, e)
        else:
            self._finish(descriptor, result)

    def _finish(self, descriptor: TaskDescriptor, result: Any) -> None:
        self._running -= 1
        self.stats.total_runs += 1
        self.stats.successful_runs += 1
        self.stats.last_run_task = descriptor.name
        self._log.debug("scheduler.task_complete", task=descriptor.name, task_id=descriptor.id)
        self._events.emit(
            SchedulerEvent.TASK_FINISH,
            TaskFinished(id=descriptor.id, name=descriptor.name, value=result),
        )
        self._last_value = result
        self._schedule_dispatch(result)
        self._notify_if_idle()

    def _fail(self, descriptor: TaskDescriptor, error: BaseException) -> None:
        self._running -= 1
        self.stats.total_runs += 1
        self.stats.failed_runs += 1
        self.stats.last_run_task = descriptor.name
        self.stats.last_error = f"{type(error).__name__}: {error}"
        self._events.emit(
            SchedulerEvent.TASK_ERROR,
            TaskFailed(id=descriptor.id, name=descriptor.name, error=error),
        )
        self._last_value = None
        self._schedule_dispatch(None)
        self._notify_if_idle()

    def _on_task_done(self, descriptor: TaskDescriptor, task: asyncio.Task) -> None:
        """
        Done-callback of every task created by _dispatch.

        _execute books its own outcome once it has entered. A task cancelled
        before its first step (e.g. by loop shutdown) never enters, so its
        slot is released here.
        """
        self._inflight.discard(task)
        if task in self._entered:
            self._entered.discard(task)
            return
        if task.cancelled():
            self._log.info(
                "scheduler.task_cancelled",
                task=descriptor.name,
                task_id=descriptor.id,
                entered=False,
            )
            self._fail(descriptor, asyncio.CancelledError())

    # ── Idle tracking ─────────────────────────────────────────────────────────

    def _is_idle(self) -> bool:
        return self._running == 0 and not self._queue

    def _notify_if_idle(self) -> None:
        if not self._is_idle() or not self._idle_waiters:
            return
        waiters, self._idle_waiters = self._idle_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)


def create_scheduler(max_concurrency: Optional[int] = None, **kwargs: Any) -> Scheduler:
    """Factory equivalent to Scheduler(max_concurrency, **kwargs)."""
    return Scheduler(max_concurrency, **kwargs)
