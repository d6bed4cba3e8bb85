"""ZMQ REQ-REP transport between the caller and a worker process.

Each instance owns its own zmq.Context for process isolation safety.

Example:
    Server side (subprocess):
        >>> server = ZMQRPCServer()
        >>> server.bind("ipc:///tmp/worker.sock")
        >>> data = server.recv()
        >>> server.send(b'{"type": "pong"}')
        >>> server.close()

    Client side (main process):
        >>> client = ZMQRPCClient()
        >>> client.connect("ipc:///tmp/worker.sock")
        >>> client.send(b'{"type": "ping"}')
        >>> response = client.recv()
        >>> client.close()

Requires: pyzmq
"""

import logging
from typing import Optional

import zmq

logger = logging.getLogger(__name__)


class _Endpoint:
    """Socket lifecycle shared by server and client."""

    def __init__(self, linger_ms: int = 0):
        self._linger_ms = linger_ms
        self._context: Optional[zmq.Context] = None
        self._socket: Optional[zmq.Socket] = None

    def _open(self, socket_type: int) -> zmq.Socket:
        self._context = zmq.Context()
        self._socket = self._context.socket(socket_type)
        self._socket.setsockopt(zmq.LINGER, self._linger_ms)
        return self._socket

    def _recv(self, timeout_ms: Optional[int]) -> Optional[bytes]:
        if timeout_ms is not None:
            old_timeout = self._socket.getsockopt(zmq.RCVTIMEO)
            self._socket.setsockopt(zmq.RCVTIMEO, timeout_ms)
        try:
            return self._socket.recv()
        except zmq.Again:
            return None
        finally:
            if timeout_ms is not None:
                self._socket.setsockopt(zmq.RCVTIMEO, old_timeout)

    def close(self) -> None:
        """Close the socket and terminate the context."""
        if self._socket is not None:
            try:
                self._socket.close(linger=self._linger_ms)
            except zmq.ZMQError as e:
                logger.debug("Socket close error: %s", e)
            self._socket = None

        if self._context is not None:
            try:
                self._context.term()
            except zmq.ZMQError as e:
                logger.debug("Context term error: %s", e)
            self._context = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ZMQRPCServer(_Endpoint):
    """ZMQ REP socket server, bound in the worker process.

    Args:
        linger_ms: Socket linger time on close (milliseconds).
    """

    def __init__(self, linger_ms: int = 0):
        super().__init__(linger_ms)
        self._is_bound = False

    def bind(self, address: str) -> None:
        """Bind the REP socket to an address."""
        if self._is_bound:
            return
        self._open(zmq.REP).bind(address)
        self._is_bound = True
        logger.info("RPC server bound to %s", address)

    def recv(self, timeout_ms: Optional[int] = None) -> Optional[bytes]:
        """Receive a request; None on timeout or when not bound."""
        if not self._is_bound or self._socket is None:
            return None
        return self._recv(timeout_ms)

    def send(self, data: bytes) -> None:
        """Send a response to the client."""
        if self._socket is None:
            raise RuntimeError("Server not bound")
        self._socket.send(data)

    def close(self) -> None:
        super().close()
        self._is_bound = False

    @property
    def is_bound(self) -> bool:
        return self._is_bound


class ZMQRPCClient(_Endpoint):
    """ZMQ REQ socket client, owned by the caller.

    Args:
        send_timeout_ms: Default send timeout (milliseconds).
        recv_timeout_ms: Default receive timeout (milliseconds).
        linger_ms: Socket linger time on close (milliseconds).
    """

    def __init__(
        self,
        send_timeout_ms: int = 30000,
        recv_timeout_ms: int = 30000,
        linger_ms: int = 0,
    ):
        super().__init__(linger_ms)
        self._send_timeout_ms = send_timeout_ms
        self._recv_timeout_ms = recv_timeout_ms
        self._is_connected = False

    def connect(self, address: str) -> None:
        """Connect the REQ socket to a server address."""
        if self._is_connected:
            return
        socket = self._open(zmq.REQ)
        socket.setsockopt(zmq.SNDTIMEO, self._send_timeout_ms)
        socket.setsockopt(zmq.RCVTIMEO, self._recv_timeout_ms)
        socket.connect(address)
        self._is_connected = True
        logger.debug("RPC client connected to %s", address)

    def send(self, data: bytes) -> None:
        """Send a request to the server."""
        if self._socket is None:
            raise RuntimeError("Client not connected")
        self._socket.send(data)

    def recv(self, timeout_ms: Optional[int] = None) -> Optional[bytes]:
        """Receive a response; None on timeout or when not connected."""
        if not self._is_connected or self._socket is None:
            return None
        return self._recv(timeout_ms)

    def close(self) -> None:
        super().close()
        self._is_connected = False

    @property
    def is_connected(self) -> bool:
        return self._is_connected


__all__ = [
    "ZMQRPCServer",
    "ZMQRPCClient",
]
