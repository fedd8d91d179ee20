"""
exceptions.py — relaytask Error Hierarchy

Only programmer misuse is raised. Admission failures (queue full, start
from the wrong state, ...) are reported through return values, and
failures inside task bodies are reported through the task-error event.

Hierarchy:
    RelayTaskError
    └── SchedulerError

ConfigError lives next to the settings it validates (config/settings.py).
"""

from __future__ import annotations


class RelayTaskError(Exception):
    """Base class for all relaytask exceptions."""


class SchedulerError(RelayTaskError):
    """The scheduler was used in a way it cannot honour (e.g. no event loop)."""
