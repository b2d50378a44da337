"""Worker process supervision and stream multiplexing"""

from scifio_bridge.process.multiplexer import (
    Source,
    StreamEvent,
    StreamMultiplexer,
)
from scifio_bridge.process.supervisor import (
    ProcessSupervisor,
    WorkerProcess,
    WorkerState,
    WorkerStatus,
)

__all__ = [
    "Source",
    "StreamEvent",
    "StreamMultiplexer",
    "ProcessSupervisor",
    "WorkerProcess",
    "WorkerState",
    "WorkerStatus",
]
