"""
scheduler/ — Concurrency-bounded task scheduler

Usage:
    from relaytask.scheduler import Scheduler, SchedulerEvent

    scheduler = Scheduler(max_concurrency=2)
    scheduler.on(SchedulerEvent.TASK_ERROR, lambda evt: print(evt.name, evt.error))
    scheduler.add("square", lambda x: x * x, 12)
    scheduler.start()
    await scheduler.join()
"""

from relaytask.scheduler.scheduler import MAX_TASK_ID, Scheduler, create_scheduler
from relaytask.scheduler.events import EventEmitter, SchedulerEvent, SchedulerObserver
from relaytask.scheduler.types import (
    NO_SEED,
    Computation,
    ConstantValue,
    SchedulerState,
    SchedulerStats,
    SelectorKind,
    TaskDescriptor,
    TaskFailed,
    TaskFinished,
    TaskSelector,
    TaskStarted,
)

__all__ = [
    "Scheduler",
    "create_scheduler",
    "MAX_TASK_ID",
    # Events
    "EventEmitter",
    "SchedulerEvent",
    "SchedulerObserver",
    # Types
    "NO_SEED",
    "Computation",
    "ConstantValue",
    "SchedulerState",
    "SchedulerStats",
    "SelectorKind",
    "TaskDescriptor",
    "TaskFailed",
    "TaskFinished",
    "TaskSelector",
    "TaskStarted",
]
