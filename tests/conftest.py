from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any, ClassVar

import pytest
from pydantic import Field

from libbeat.collector import PeriodicCollector
from libbeat.config import OptionsModel
from libbeat.event import Event
from libbeat.lifecycle import Beat


class RecordingPublisher:
    def __init__(self, accept: bool = True) -> None:
        self.accept = accept
        self.events: list[Event] = []
        self.closed = False
        self.on_submit: Callable[[int], None] | None = None
        self._lock = threading.Lock()

    def submit(self, event: Event) -> bool:
        with self._lock:
            self.events.append(event)
            count = len(self.events)
        if self.on_submit is not None:
            self.on_submit(count)
        return self.accept

    def close(self) -> None:
        self.closed = True


class ScriptedCollector:
    def __init__(
        self,
        *,
        fail_config: Exception | None = None,
        fail_setup: Exception | None = None,
        fail_run: Exception | None = None,
        fail_cleanup: Exception | None = None,
        run_body: Callable[[Beat], None] | None = None,
    ) -> None:
        self.fail_config = fail_config
        self.fail_setup = fail_setup
        self.fail_run = fail_run
        self.fail_cleanup = fail_cleanup
        self.run_body = run_body
        self.calls: list[str] = []
        self.stop_calls = 0
        self._lock = threading.Lock()

    def config(self, beat: Beat) -> None:
        self.calls.append("config")
        if self.fail_config is not None:
            raise self.fail_config

    def setup(self, beat: Beat) -> None:
        self.calls.append("setup")
        if self.fail_setup is not None:
            raise self.fail_setup

    def run(self, beat: Beat) -> None:
        self.calls.append("run")
        if self.run_body is not None:
            self.run_body(beat)
        if self.fail_run is not None:
            raise self.fail_run

    def cleanup(self, beat: Beat) -> None:
        self.calls.append("cleanup")
        if self.fail_cleanup is not None:
            raise self.fail_cleanup

    def stop(self) -> None:
        with self._lock:
            self.stop_calls += 1
            self.calls.append("stop")


class TickOptions(OptionsModel):
    defaults: ClassVar[dict[str, Any]] = {"period": 1.0, "label": "tick"}

    period: float | None = Field(default=None, ge=0)
    label: str | None = None


class TickCollector(PeriodicCollector):
    name = "tick"
    options_model = TickOptions

    def __init__(self, fail_cycles: set[int] | None = None) -> None:
        super().__init__()
        self.fail_cycles = fail_cycles or set()
        self.cleanups = 0

    def gather(self, beat: Beat) -> list[Event]:
        if self.cycles in self.fail_cycles:
            raise OSError(f"sensor unavailable on cycle {self.cycles}")
        return [Event.create("tick", {"cycle": self.cycles, "label": getattr(self.options, "label")})]

    def cleanup(self, beat: Beat) -> None:
        self.cleanups += 1


@pytest.fixture()
def publisher() -> RecordingPublisher:
    return RecordingPublisher()
