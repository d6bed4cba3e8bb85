"""Worker IPC addressing.

Socket files live in the system temp directory, named after the owning
process so files left behind by a crashed session can be traced back.
"""

import logging
import os
import tempfile
import uuid
from typing import Optional

logger = logging.getLogger(__name__)

# Unix domain socket paths are capped at 107 bytes on Linux
MAX_SOCKET_PATH = 100


def check_zmq_available() -> bool:
    """True if pyzmq can be imported."""
    try:
        import zmq  # noqa: F401
    except ImportError:
        return False
    return True


def generate_ipc_address(prefix: str = "minorguard") -> tuple[str, str]:
    """Build a fresh ``ipc://`` address for one worker.

    Args:
        prefix: Leading part of the socket file name.

    Returns:
        Tuple of (zmq_address, socket_file_path).

    Raises:
        ValueError: If the resulting path is too long for a unix socket.
    """
    name = f"{prefix}-{os.getpid()}-{uuid.uuid4().hex[:8]}.sock"
    path = os.path.join(tempfile.gettempdir(), name)
    if len(path) > MAX_SOCKET_PATH:
        raise ValueError(f"IPC socket path too long ({len(path)} bytes): {path}")
    return f"ipc://{path}", path


def remove_ipc_file(path: Optional[str]) -> None:
    """Delete a socket file if it is still present."""
    if not path or not os.path.exists(path):
        return
    try:
        os.unlink(path)
    except OSError as e:
        logger.debug("Could not remove IPC file %s: %s", path, e)
