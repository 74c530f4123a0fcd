from collectbeat.collectors.factory import available_collectors, build_collector
from collectbeat.collectors.process import ProcessCollector, ProcessOptions
from collectbeat.collectors.system import SystemCollector, SystemOptions

__all__ = [
    "ProcessCollector",
    "ProcessOptions",
    "SystemCollector",
    "SystemOptions",
    "available_collectors",
    "build_collector",
]
