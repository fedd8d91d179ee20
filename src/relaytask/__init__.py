"""
relaytask — in-process, concurrency-bounded asyncio task scheduler.

    from relaytask import Scheduler

    scheduler = Scheduler(max_concurrency=1)
    scheduler.add("ten", lambda: 10)
    scheduler.add("square", lambda x: x * x)
    scheduler.start()
    await scheduler.join()
    scheduler.last_value   # 100
"""

from relaytask.exceptions import RelayTaskError, SchedulerError
from relaytask.scheduler import (
    Scheduler,
    SchedulerEvent,
    SchedulerObserver,
    SchedulerState,
    TaskFailed,
    TaskFinished,
    TaskSelector,
    TaskStarted,
    create_scheduler,
)

__version__ = "1.0.0"

__all__ = [
    "Scheduler",
    "create_scheduler",
    "SchedulerEvent",
    "SchedulerObserver",
    "SchedulerState",
    "TaskSelector",
    "TaskStarted",
    "TaskFinished",
    "TaskFailed",
    "RelayTaskError",
    "SchedulerError",
]
