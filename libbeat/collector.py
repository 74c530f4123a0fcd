from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import TYPE_CHECKING, ClassVar, Protocol, runtime_checkable

from libbeat.config import OptionsModel, resolve_options
from libbeat.errors import ConfigurationError, CycleError
from libbeat.event import Event

if TYPE_CHECKING:
    from libbeat.lifecycle import Beat

logger = logging.getLogger("beat.collector")


@runtime_checkable
class Collector(Protocol):
    def config(self, beat: Beat) -> None:
        """Resolve options from ``beat.config``; raise on invalid input."""

    def setup(self, beat: Beat) -> None:
        """Acquire resources needed by run()."""

    def run(self, beat: Beat) -> None:
        """Collect until done or until ``beat.run_state`` reports a stop."""

    def cleanup(self, beat: Beat) -> None:
        """Release what setup() acquired. Runs after run() has returned."""

    def stop(self) -> None:
        """Signal run() to return. Must not raise or block."""


class PeriodicCollector(ABC):
    """Collector that gathers and publishes once per ``period`` seconds.

    Subclasses declare an ``options_model`` with a ``period`` option and
    implement ``gather``. Cancellation is cooperative: a ``gather`` call that
    never returns holds up shutdown for as long as it blocks.
    """

    name: ClassVar[str] = "periodic"
    options_model: ClassVar[type[OptionsModel]]

    def __init__(self) -> None:
        self.options: OptionsModel | None = None
        self.cycles = 0
        self.failed_cycles = 0

    @property
    def period(self) -> float:
        if self.options is None:
            raise RuntimeError(f"{self.name} collector is not configured")
        return float(getattr(self.options, "period"))

    def config(self, beat: Beat) -> None:
        options = resolve_options(self.options_model, beat.config, section=self.name)
        period = getattr(options, "period", None)
        if period is None:
            raise ConfigurationError(f"[{self.name}] period is required")
        if period < 0:
            raise ConfigurationError(f"[{self.name}] period must be >= 0, got {period}")
        self.options = options
        logger.info("%s collector configured period=%ss explicit=%s", self.name, period, sorted(options.explicit_options))

    def setup(self, beat: Beat) -> None:
        del beat

    def cleanup(self, beat: Beat) -> None:
        del beat

    def stop(self) -> None:
        logger.info("%s collector stop requested", self.name)

    @abstractmethod
    def gather(self, beat: Beat) -> Iterable[Event]:
        """Take one measurement and return the events built from it."""

    def run_cycle(self, beat: Beat) -> int:
        try:
            events = list(self.gather(beat))
        except Exception as exc:
            raise CycleError(f"{self.name} gather failed: {exc}") from exc

        published = 0
        for event in events:
            try:
                accepted = beat.publisher.submit(event)
            except Exception as exc:
                raise CycleError(f"{self.name} publish failed after {published} events: {exc}") from exc
            if accepted:
                published += 1
            else:
                logger.warning("%s event dropped by publisher type=%s", self.name, event.type)
        return published

    def run(self, beat: Beat) -> None:
        period = self.period
        logger.info("%s collector running period=%ss", self.name, period)
        while beat.run_state.running:
            self.cycles += 1
            try:
                published = self.run_cycle(beat)
            except CycleError:
                self.failed_cycles += 1
                logger.exception("%s cycle %d failed", self.name, self.cycles)
            else:
                logger.debug("%s cycle %d published=%d", self.name, self.cycles, published)
            if beat.run_state.wait(period):
                break
        logger.info("%s collector loop exited cycles=%d failed=%d", self.name, self.cycles, self.failed_cycles)
