from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, ClassVar

import psutil
from pydantic import Field

from libbeat.collector import PeriodicCollector
from libbeat.config import OptionsModel
from libbeat.event import Event

if TYPE_CHECKING:
    from libbeat.lifecycle import Beat

PROCESS_ATTRS = ["pid", "name", "username", "create_time", "memory_info", "cpu_percent"]


class ProcessOptions(OptionsModel):
    defaults: ClassVar[dict[str, Any]] = {"period": 10.0, "max_processes": 20, "names": []}

    period: float | None = Field(default=None, ge=0, le=86400)
    max_processes: int | None = Field(default=None, ge=0, le=10000)
    names: list[str] | None = None


def _started(create_time: float | None) -> str | None:
    if not create_time:
        return None
    return datetime.fromtimestamp(create_time, tz=UTC).isoformat()


class ProcessCollector(PeriodicCollector):
    name = "process"
    options_model = ProcessOptions

    def _snapshot(self) -> list[dict[str, Any]]:
        wanted = {name.lower() for name in (getattr(self.options, "names") or [])}
        rows: list[dict[str, Any]] = []
        for proc in psutil.process_iter(attrs=PROCESS_ATTRS):
            info = proc.info
            name = str(info.get("name") or "unknown")
            if wanted and name.lower() not in wanted:
                continue
            memory = info.get("memory_info")
            rows.append(
                {
                    "pid": int(info.get("pid") or 0),
                    "name": name,
                    "username": str(info.get("username") or "unknown"),
                    "started": _started(info.get("create_time")),
                    "rss": int(getattr(memory, "rss", 0) or 0),
                    "cpu_pct": round(float(info.get("cpu_percent") or 0.0), 2),
                }
            )
        rows.sort(key=lambda row: row["rss"], reverse=True)
        return rows

    def gather(self, beat: Beat) -> list[Event]:
        del beat
        limit = int(getattr(self.options, "max_processes"))
        rows = self._snapshot()
        events = [Event.create("process", {"process": row}) for row in rows[:limit]]
        events.append(
            Event.create(
                "process_summary",
                {"processes": {"total": len(rows), "reported": min(limit, len(rows))}},
            )
        )
        return events
