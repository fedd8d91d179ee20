"""
scheduler/types.py — Scheduler Data Contracts

Dataclasses and enums shared by the scheduler and its event layer.

  - SchedulerState:   lifecycle state of a Scheduler
  - TaskDescriptor:   queued representation of a not-yet-started task
  - Computation /
    ConstantValue:    the two kinds of work item, resolved at dispatch time
  - TaskSelector:     which queued descriptors a remove() call targets
  - TaskStarted /
    TaskFinished /
    TaskFailed:       payloads of the task-* events
  - SchedulerStats:   completion counters
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Union


# ─────────────────────────────────────────────────────────────────────────────
# Sentinels
# ─────────────────────────────────────────────────────────────────────────────

class _Sentinel:
    __slots__ = ("_name",)

    def __init__(self, name: str) -> None:
        self._name = name

    def __repr__(self) -> str:
        return self._name

    def __bool__(self) -> bool:
        return False


NO_SEED: Any = _Sentinel("NO_SEED")
"""Marks a descriptor without an explicit seed (None is a legal seed)."""

NO_ITEM: Any = _Sentinel("NO_ITEM")
"""Marks an add() call that was given no work item."""


# ─────────────────────────────────────────────────────────────────────────────
# State
# ─────────────────────────────────────────────────────────────────────────────

class SchedulerState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED  = "paused"
    STOPPED = "stopped"


# ─────────────────────────────────────────────────────────────────────────────
# Work items
# ─────────────────────────────────────────────────────────────────────────────

def _accepts_input(fn: Callable) -> bool:
    """True if fn can be called with one positional argument."""
    try:
        sig = inspect.signature(fn)
    except (TypeError, ValueError):
        return True
    for param in sig.parameters.values():
        if param.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
            inspect.Parameter.VAR_POSITIONAL,
        ):
            return True
    return False


@dataclass(frozen=True)
class Computation:
    """A callable work item. May return a plain value or an awaitable."""
    fn: Callable[..., Any]
    takes_input: bool = True

    @classmethod
    def from_callable(cls, fn: Callable[..., Any]) -> "Computation":
        return cls(fn=fn, takes_input=_accepts_input(fn))

    def invoke(self, value: Any) -> Any:
        if self.takes_input:
            return self.fn(value)
        return self.fn()


@dataclass(frozen=True)
class ConstantValue:
    """A non-callable work item; running it yields the value unchanged."""
    value: Any

    def invoke(self, value: Any) -> Any:
        return self.value


WorkItem = Union[Computation, ConstantValue]


def resolve_work_item(func: Any) -> WorkItem:
    if callable(func):
        return Computation.from_callable(func)
    return ConstantValue(func)


# ─────────────────────────────────────────────────────────────────────────────
# TaskDescriptor
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class TaskDescriptor:
    """
    One queued unit of work.

    id      Unique within the scheduler until the next stop().
    name    Caller-supplied, or "#<id>".
    func    The work item exactly as given to add().
    seed    Explicit input for this task only; NO_SEED when absent.
    """
    id: int
    name: str
    func: Any
    seed: Any = NO_SEED

    @property
    def has_seed(self) -> bool:
        return self.seed is not NO_SEED

    def take_input(self, propagated: Any) -> Any:
        """Return the seed if one was supplied (clearing it), else `propagated`."""
        if self.seed is NO_SEED:
            return propagated
        value, self.seed = self.seed, NO_SEED
        return value


# ─────────────────────────────────────────────────────────────────────────────
# Selectors
# ─────────────────────────────────────────────────────────────────────────────

class SelectorKind(str, Enum):
    ID   = "id"
    NAME = "name"
    REF  = "ref"


@dataclass(frozen=True)
class TaskSelector:
    """Matches queued descriptors by id, by name, or by work-item identity."""
    kind: SelectorKind
    key: Any

    @classmethod
    def by_id(cls, task_id: int) -> "TaskSelector":
        return cls(SelectorKind.ID, task_id)

    @classmethod
    def by_name(cls, name: str) -> "TaskSelector":
        return cls(SelectorKind.NAME, name)

    @classmethod
    def by_ref(cls, func: Any) -> "TaskSelector":
        return cls(SelectorKind.REF, func)

    @classmethod
    def infer(cls, key: Any) -> "TaskSelector":
        """Callable → REF, int or float → ID, anything else → NAME."""
        if callable(key):
            return cls.by_ref(key)
        if isinstance(key, (int, float)) and not isinstance(key, bool):
            return cls.by_id(key)
        return cls.by_name(key)

    def matches(self, descriptor: TaskDescriptor) -> bool:
        if self.kind is SelectorKind.ID:
            return descriptor.id == self.key
        if self.kind is SelectorKind.NAME:
            return descriptor.name == self.key
        if self.kind is SelectorKind.REF:
            return descriptor.func is self.key
        raise ValueError(f"Unknown selector kind: {self.kind!r}")


# ─────────────────────────────────────────────────────────────────────────────
# Event payloads
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TaskStarted:
    id: int
    name: str


@dataclass(frozen=True)
class TaskFinished:
    id: int
    name: str
    value: Any


@dataclass(frozen=True)
class TaskFailed:
    id: int
    name: str
    error: BaseException


# ─────────────────────────────────────────────────────────────────────────────
# SchedulerStats
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class SchedulerStats:
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    last_run_task: Optional[str] = None
    last_error: Optional[str] = None
