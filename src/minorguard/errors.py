"""Exception types raised by the minorguard core.

Every failure inside a job is converted to one of these at the job
boundary, so a caller can report it and submit the next image to the same
worker.
"""


class MinorGuardError(Exception):
    """Base class for minorguard errors."""


class DecodeFailure(MinorGuardError):
    """Image bytes are malformed or unreadable."""


class ModelLoadError(MinorGuardError):
    """A model file is missing or cannot be loaded."""


class ModelInvocationFailure(MinorGuardError):
    """A model call failed (shape mismatch, backend error)."""


class WorkerNotRunningError(MinorGuardError):
    """A job was submitted to a worker that is not started."""


class QueueFullError(MinorGuardError):
    """The worker queue is at capacity; the job was not accepted."""


class JobTimeoutError(MinorGuardError):
    """A job did not complete within the configured timeout."""


ERROR_TYPES = {
    cls.__name__: cls
    for cls in (
        MinorGuardError,
        DecodeFailure,
        ModelLoadError,
        ModelInvocationFailure,
        WorkerNotRunningError,
        QueueFullError,
        JobTimeoutError,
    )
}


def error_from_name(name: str, message: str) -> MinorGuardError:
    """Rebuild a typed error received over IPC.

    Unknown names fall back to :class:`MinorGuardError`.
    """
    return ERROR_TYPES.get(name, MinorGuardError)(message)


__all__ = [
    "MinorGuardError",
    "DecodeFailure",
    "ModelLoadError",
    "ModelInvocationFailure",
    "WorkerNotRunningError",
    "QueueFullError",
    "JobTimeoutError",
    "error_from_name",
]
