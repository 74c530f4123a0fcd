from __future__ import annotations


class BeatError(Exception):
    """Base class for lifecycle failures reported by the controller."""


class ConfigurationError(BeatError):
    """Configuration is malformed, unreadable or fails validation."""


class SetupError(BeatError):
    """A dependency needed by the collector could not be initialized."""


class RunError(BeatError):
    """The collector's run phase raised instead of returning."""


class CycleError(BeatError):
    """A single collection cycle failed; the loop keeps going."""


class CleanupError(BeatError):
    """Best-effort resource release failed."""


class LifecycleError(RuntimeError):
    """A lifecycle phase was invoked out of order."""
