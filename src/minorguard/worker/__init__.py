"""Inference workers and their request/reply channel.

Components:
- Workers: inline, thread and process isolation levels
- Serialization: JobRequest/JobResult <-> JSON messages
- Server: subprocess entry point for the process worker

The ZMQ transport (``minorguard.worker.rpc``) is imported only by the
process worker, so pyzmq stays optional for inline and thread use.
"""

from minorguard.worker.launcher import (
    WorkerLauncher,
    BaseWorker,
    WorkerInfo,
    WorkerResult,
    InlineWorker,
    ThreadWorker,
    ProcessWorker,
)

__all__ = [
    "WorkerLauncher",
    "BaseWorker",
    "WorkerInfo",
    "WorkerResult",
    "InlineWorker",
    "ThreadWorker",
    "ProcessWorker",
]
