from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Callable, Iterable
from types import FrameType
from typing import Any

logger = logging.getLogger("beat.signals")


def default_stop_signals() -> tuple[signal.Signals, ...]:
    signals = [signal.SIGINT, signal.SIGTERM]
    sigbreak = getattr(signal, "SIGBREAK", None)
    if sigbreak is not None:
        signals.append(sigbreak)
    return tuple(signals)


class SignalBridge:
    """Routes OS stop signals to a single stop callback.

    The handler never touches collector state; it only calls ``on_stop``,
    which must be idempotent.
    """

    def __init__(
        self,
        on_stop: Callable[[], None],
        signals: Iterable[signal.Signals] | None = None,
    ) -> None:
        self.on_stop = on_stop
        self.signals = tuple(signals) if signals is not None else default_stop_signals()
        self.received: list[int] = []
        self._previous: dict[signal.Signals, Any] = {}

    @property
    def installed(self) -> bool:
        return bool(self._previous)

    def _handle(self, signum: int, frame: FrameType | None) -> None:
        del frame
        self.received.append(signum)
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        logger.info("received signal %s", name)
        self.on_stop()

    def install(self) -> bool:
        if threading.current_thread() is not threading.main_thread():
            logger.warning("signal handlers can only be installed from the main thread; skipping")
            return False
        if self.installed:
            return True
        for sig in self.signals:
            self._previous[sig] = signal.signal(sig, self._handle)
        return True

    def restore(self) -> None:
        for sig, previous in self._previous.items():
            signal.signal(sig, previous if previous is not None else signal.SIG_DFL)
        self._previous.clear()

    def __enter__(self) -> "SignalBridge":
        self.install()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.restore()
