"""Lifecycle and event-publishing core for collection daemons."""

from libbeat.collector import Collector, PeriodicCollector
from libbeat.config import OptionsModel, resolve_options
from libbeat.errors import (
    BeatError,
    CleanupError,
    ConfigurationError,
    CycleError,
    LifecycleError,
    RunError,
    SetupError,
)
from libbeat.event import Event
from libbeat.lifecycle import Beat, LifecycleController, Phase, RunState, RunStateView, RunStatus
from libbeat.publisher import Publisher, PublisherClient
from libbeat.signals import SignalBridge

__all__ = [
    "Beat",
    "BeatError",
    "CleanupError",
    "Collector",
    "ConfigurationError",
    "CycleError",
    "Event",
    "LifecycleController",
    "LifecycleError",
    "OptionsModel",
    "Phase",
    "PeriodicCollector",
    "Publisher",
    "PublisherClient",
    "RunError",
    "RunState",
    "RunStateView",
    "RunStatus",
    "SetupError",
    "SignalBridge",
    "resolve_options",
]
