from __future__ import annotations

import logging
import threading
from typing import Protocol, runtime_checkable

from libbeat.event import Event

logger = logging.getLogger("beat.publisher")


@runtime_checkable
class Publisher(Protocol):
    def submit(self, event: Event) -> bool:
        """Hand the event to the delivery pipeline; True when accepted."""

    def close(self) -> None:
        """Flush what can be flushed and release the pipeline."""


class PublisherClient:
    """The collector-facing side of the publisher port.

    Events are forwarded in the order they are submitted. Rejections are
    counted and reported through the return value only; exceptions raised by
    the pipeline propagate to the caller.
    """

    def __init__(self, publisher: Publisher) -> None:
        self._publisher = publisher
        self._lock = threading.Lock()
        self.accepted = 0
        self.rejected = 0

    def submit(self, event: Event) -> bool:
        if not isinstance(event, Event):
            raise TypeError(f"expected Event, got {type(event).__name__}")
        accepted = bool(self._publisher.submit(event))
        with self._lock:
            if accepted:
                self.accepted += 1
            else:
                self.rejected += 1
        if not accepted:
            logger.debug("event rejected by publisher type=%s", event.type)
        return accepted

    def close(self) -> None:
        self._publisher.close()

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {"accepted": self.accepted, "rejected": self.rejected}
