from __future__ import annotations

from collections.abc import Callable

from collectbeat.collectors.process import ProcessCollector
from collectbeat.collectors.system import SystemCollector
from libbeat.collector import Collector
from libbeat.errors import ConfigurationError

COLLECTORS: dict[str, Callable[[], Collector]] = {
    SystemCollector.name: SystemCollector,
    ProcessCollector.name: ProcessCollector,
}


def available_collectors() -> list[str]:
    return sorted(COLLECTORS)


def build_collector(name: str) -> Collector:
    try:
        factory = COLLECTORS[name]
    except KeyError:
        raise ConfigurationError(
            f"unknown collector {name!r}; available: {', '.join(available_collectors())}"
        ) from None
    return factory()
