from __future__ import annotations

import logging
import socket
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from libbeat.collector import Collector
from libbeat.errors import (
    BeatError,
    CleanupError,
    ConfigurationError,
    LifecycleError,
    RunError,
    SetupError,
)
from libbeat.event import truncate_to_millis
from libbeat.publisher import Publisher, PublisherClient

logger = logging.getLogger("beat.lifecycle")

JOIN_POLL_SECONDS = 0.2


class Phase(str, Enum):
    CREATED = "created"
    CONFIGURED = "configured"
    SET_UP = "set_up"
    RUNNING = "running"
    STOPPING = "stopping"
    CLEANED_UP = "cleaned_up"
    TERMINATED = "terminated"


_PHASE_ORDER = {phase: index for index, phase in enumerate(Phase)}


class RunStatus(str, Enum):
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class RunState:
    """Run/stop cell owned by the controller.

    Locks are re-entrant because the signal path runs on the main thread and
    may interrupt the controller while it holds them.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._status = RunStatus.RUNNING
        self._stopped = threading.Event()

    @property
    def status(self) -> RunStatus:
        with self._lock:
            return self._status

    def request_stop(self) -> bool:
        with self._lock:
            if self._status is not RunStatus.RUNNING:
                return False
            self._status = RunStatus.STOPPING
            self._stopped.set()
            return True

    def mark_stopped(self) -> bool:
        with self._lock:
            if self._status is RunStatus.STOPPED:
                return False
            self._status = RunStatus.STOPPED
            self._stopped.set()
            return True

    def wait(self, timeout: float | None) -> bool:
        return self._stopped.wait(timeout)

    def view(self) -> RunStateView:
        return RunStateView(self)


class RunStateView:
    __slots__ = ("_state",)

    def __init__(self, state: RunState) -> None:
        self._state = state

    @property
    def status(self) -> RunStatus:
        return self._state.status

    @property
    def running(self) -> bool:
        return self._state.status is RunStatus.RUNNING

    @property
    def stop_requested(self) -> bool:
        return self._state.status is not RunStatus.RUNNING

    def wait(self, timeout: float | None) -> bool:
        """Sleep up to ``timeout`` seconds; True as soon as a stop is requested."""
        return self._state.wait(timeout)


@dataclass
class Beat:
    name: str
    version: str
    publisher: PublisherClient
    run_state: RunStateView
    config: dict[str, Any] = field(default_factory=dict)
    hostname: str = field(default_factory=socket.gethostname)
    setup_completed_at: datetime | None = None


class LifecycleController:
    """Drives a collector through config, setup, run and cleanup exactly once."""

    def __init__(
        self,
        collector: Collector,
        *,
        name: str,
        version: str,
        publisher: Publisher | PublisherClient,
        config: dict[str, Any] | None = None,
        hostname: str | None = None,
    ) -> None:
        self.collector = collector
        self._lock = threading.RLock()
        self._state = RunState()
        self._phase = Phase.CREATED
        self._error: BeatError | None = None
        self._setup_entered = False
        self._cleanup_started = False
        self._stop_invoked = False
        client = publisher if isinstance(publisher, PublisherClient) else PublisherClient(publisher)
        self.beat = Beat(
            name=name,
            version=version,
            publisher=client,
            run_state=self._state.view(),
            config=dict(config or {}),
            hostname=hostname or socket.gethostname(),
        )

    @property
    def phase(self) -> Phase:
        with self._lock:
            return self._phase

    @property
    def run_status(self) -> RunStatus:
        return self._state.status

    @property
    def error(self) -> BeatError | None:
        with self._lock:
            return self._error

    @property
    def exit_status(self) -> int:
        return 0 if self.error is None else 1

    def _advance(self, target: Phase) -> None:
        with self._lock:
            if _PHASE_ORDER[target] <= _PHASE_ORDER[self._phase]:
                raise LifecycleError(f"cannot move from {self._phase.value} to {target.value}")
            logger.debug("%s phase %s -> %s", self.beat.name, self._phase.value, target.value)
            self._phase = target

    def _require(self, *phases: Phase) -> None:
        with self._lock:
            if self._phase not in phases:
                expected = ", ".join(phase.value for phase in phases)
                raise LifecycleError(f"expected phase {expected}, current phase is {self._phase.value}")

    def _record(self, error: BeatError) -> None:
        with self._lock:
            if self._error is None:
                self._error = error

    def initialize(self) -> None:
        self._require(Phase.CREATED)
        name = self.beat.name

        try:
            self.collector.config(self.beat)
        except Exception as exc:
            error = exc if isinstance(exc, ConfigurationError) else ConfigurationError(f"{name} config failed: {exc}")
            self._record(error)
            logger.error("%s configuration failed: %s", name, error)
            self._advance(Phase.TERMINATED)
            self._state.mark_stopped()
            if error is exc:
                raise
            raise error from exc
        self._advance(Phase.CONFIGURED)

        with self._lock:
            self._setup_entered = True
        try:
            self.collector.setup(self.beat)
        except Exception as exc:
            error = exc if isinstance(exc, SetupError) else SetupError(f"{name} setup failed: {exc}")
            self._record(error)
            logger.error("%s setup failed: %s", name, error)
            if error is exc:
                raise
            raise error from exc

        self.beat.setup_completed_at = truncate_to_millis(datetime.now(UTC))
        self._advance(Phase.SET_UP)
        logger.info("%s successfully set up", name)

    def execute(self) -> None:
        with self._lock:
            self._require(Phase.SET_UP)
            self._advance(Phase.RUNNING)
            skip = self._state.status is not RunStatus.RUNNING

        if skip:
            logger.info("%s stop requested before run; skipping run", self.beat.name)
        else:
            logger.info("%s start running", self.beat.name)
            worker = threading.Thread(
                target=self._run_collector,
                name=f"{self.beat.name}-run",
                daemon=True,
            )
            worker.start()
            # Short joins keep the main thread free to service signal handlers.
            while worker.is_alive():
                worker.join(timeout=JOIN_POLL_SECONDS)

        with self._lock:
            if self._phase is Phase.RUNNING:
                self._advance(Phase.STOPPING)
            self._state.mark_stopped()

    def _run_collector(self) -> None:
        try:
            self.collector.run(self.beat)
        except Exception as exc:
            error = RunError(f"{self.beat.name} run failed: {exc}")
            error.__cause__ = exc
            self._record(error)
            logger.exception("running %s returned an error", self.beat.name)
        else:
            logger.info("%s run returned", self.beat.name)

    def shutdown(self) -> None:
        with self._lock:
            if self._phase in (Phase.RUNNING, Phase.CLEANED_UP, Phase.TERMINATED):
                raise LifecycleError(f"cannot shut down from phase {self._phase.value}")
            run_cleanup = self._setup_entered
            self._cleanup_started = True
            self._state.mark_stopped()

        if run_cleanup:
            logger.info("cleaning up %s before shutting down", self.beat.name)
            try:
                self.collector.cleanup(self.beat)
            except Exception as exc:
                error = exc if isinstance(exc, CleanupError) else CleanupError(f"{self.beat.name} cleanup failed: {exc}")
                if error is not exc:
                    error.__cause__ = exc
                logger.error("%s cleanup returned an error: %s", self.beat.name, error)
                self._record(error)
            self._advance(Phase.CLEANED_UP)

        self._advance(Phase.TERMINATED)
        logger.info(
            "%s terminated exit_status=%d published=%s",
            self.beat.name,
            self.exit_status,
            self.beat.publisher.stats(),
        )

    def request_stop(self) -> None:
        with self._lock:
            if not self._state.request_stop():
                logger.debug("%s stop already requested", self.beat.name)
                return
            logger.info("stopping %s", self.beat.name)
            if self._phase is Phase.RUNNING:
                self._advance(Phase.STOPPING)
            can_signal = (
                self._phase in (Phase.SET_UP, Phase.STOPPING)
                and not self._cleanup_started
                and not self._stop_invoked
            )
            if not can_signal:
                return
            self._stop_invoked = True
            try:
                self.collector.stop()
            except Exception:
                logger.exception("%s stop raised; ignoring", self.beat.name)

    def run(self) -> int:
        try:
            self.initialize()
        except ConfigurationError:
            return self.exit_status
        except SetupError:
            self.shutdown()
            return self.exit_status
        self.execute()
        self.shutdown()
        return self.exit_status
