from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any, ClassVar

import psutil
from pydantic import Field

from libbeat.collector import PeriodicCollector
from libbeat.config import OptionsModel
from libbeat.errors import SetupError
from libbeat.event import Event

if TYPE_CHECKING:
    from libbeat.lifecycle import Beat

logger = logging.getLogger("beat.collector.system")


class SystemOptions(OptionsModel):
    defaults: ClassVar[dict[str, Any]] = {"period": 10.0, "percpu": False, "include_swap": True}

    period: float | None = Field(default=None, ge=0, le=86400)
    percpu: bool | None = None
    include_swap: bool | None = None


class SystemCollector(PeriodicCollector):
    name = "system"
    options_model = SystemOptions

    def setup(self, beat: Beat) -> None:
        del beat
        try:
            # Prime the counters so the first cycle reports a real interval.
            psutil.cpu_percent(interval=None, percpu=bool(self._option("percpu")))
        except (psutil.Error, OSError) as exc:
            raise SetupError(f"cpu counters unavailable: {exc}") from exc

    def _option(self, name: str) -> Any:
        return getattr(self.options, name)

    def _load(self) -> dict[str, float] | None:
        if not hasattr(os, "getloadavg"):
            return None
        one, five, fifteen = os.getloadavg()
        return {"1": round(one, 2), "5": round(five, 2), "15": round(fifteen, 2)}

    def gather(self, beat: Beat) -> list[Event]:
        del beat
        percpu = bool(self._option("percpu"))
        memory = psutil.virtual_memory()
        fields: dict[str, Any] = {
            "cpu": {"total_pct": round(psutil.cpu_percent(interval=None), 2), "count": psutil.cpu_count()},
            "memory": {
                "total": int(memory.total),
                "available": int(memory.available),
                "used_pct": round(float(memory.percent), 2),
            },
        }
        if percpu:
            fields["cpu"]["per_cpu_pct"] = [round(value, 2) for value in psutil.cpu_percent(interval=None, percpu=True)]
        if self._option("include_swap"):
            swap = psutil.swap_memory()
            fields["swap"] = {"total": int(swap.total), "used": int(swap.used), "used_pct": round(float(swap.percent), 2)}
        load = self._load()
        if load is not None:
            fields["load"] = load
        return [Event.create("system", fields)]
