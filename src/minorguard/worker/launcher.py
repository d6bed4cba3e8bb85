"""Inference workers for different isolation levels.

A worker owns one ScreeningPipeline and runs one job at a time:

- InlineWorker: Same thread as the caller ("inline")
- ThreadWorker: One background thread fed by a bounded queue ("thread")
- ProcessWorker: Separate Python process over ZMQ REQ/REP ("process")

Every worker loads both models and runs a warm-up inference inside
``start()``, so ``is_running`` only becomes true once the worker can serve
real jobs.

Example:
    >>> from minorguard.config import MinorGuardConfig
    >>> from minorguard.worker.launcher import WorkerLauncher
    >>>
    >>> worker = WorkerLauncher.create(MinorGuardConfig())
    >>> with worker:
    ...     future = worker.submit(image_bytes)
    ...     result = future.result()
    ...     outcome = worker.process(other_bytes)
"""

import itertools
import json
import logging
import os
import queue
import subprocess
import sys
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Optional

from minorguard.config import MinorGuardConfig, WorkerConfig
from minorguard.errors import (
    JobTimeoutError,
    MinorGuardError,
    QueueFullError,
    WorkerNotRunningError,
)
from minorguard.pipeline import ScreeningPipeline
from minorguard.types import JobRequest, JobResult
from minorguard.worker._util import (
    check_zmq_available,
    generate_ipc_address,
    remove_ipc_file,
)
from minorguard.worker.serialization import (
    deserialize_error,
    deserialize_result,
    encode_request,
)

logger = logging.getLogger(__name__)


@dataclass
class WorkerInfo:
    """Public worker status information.

    Attributes:
        isolation_level: "inline", "thread" or "process".
        pid: Process running the models (0 = not yet started).
        pending: Jobs accepted but not yet delivered.
    """
    isolation_level: str
    pid: int
    pending: int = 0


@dataclass
class WorkerResult:
    """Outcome of one job.

    Attributes:
        result: The job result, or None if the job failed.
        error: Typed error if the job failed.
        timing_ms: Wall time from submission to delivery in milliseconds.
    """
    result: Optional[JobResult]
    error: Optional[MinorGuardError] = None
    timing_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


def run_job(pipeline: ScreeningPipeline, request: JobRequest) -> JobResult:
    """Run one job, converting unexpected failures to MinorGuardError."""
    try:
        return pipeline.screen(request.image_bytes, job_id=request.job_id)
    except MinorGuardError:
        raise
    except Exception as e:
        logger.error("Job %d crashed: %s", request.job_id, e, exc_info=True)
        raise MinorGuardError(f"Job {request.job_id} failed: {e}") from e


class _JobSlots:
    """Counts accepted jobs: the running one plus up to ``max_pending``."""

    def __init__(self, max_pending: int):
        self._capacity = max_pending + 1
        self._lock = threading.Lock()
        self._taken = 0

    def acquire(self) -> None:
        with self._lock:
            if self._taken >= self._capacity:
                raise QueueFullError(
                    f"Worker queue full ({self._capacity - 1} job(s) pending)"
                )
            self._taken += 1

    def release(self) -> None:
        with self._lock:
            self._taken -= 1

    @property
    def taken(self) -> int:
        with self._lock:
            return self._taken


class BaseWorker(ABC):
    """Abstract base class for workers.

    Job ids are allocated from a monotonic counter unless the caller
    supplies one.
    """

    _ids = itertools.count(1)
    _ids_lock = threading.Lock()

    # Seconds process() waits on a future before reporting a timeout.
    _result_timeout: Optional[float] = None

    @classmethod
    def next_job_id(cls) -> int:
        with cls._ids_lock:
            return next(cls._ids)

    @abstractmethod
    def start(self) -> None:
        """Load models and start the worker; returns once it is ready."""
        ...

    @abstractmethod
    def stop(self) -> None:
        """Stop the worker and release the models."""
        ...

    @abstractmethod
    def submit(self, image_bytes: bytes, job_id: Optional[int] = None) -> "Future[JobResult]":
        """Queue a photo for screening.

        Args:
            image_bytes: Encoded photo; the bytes are copied.
            job_id: Identifier echoed in the result.

        Returns:
            Future resolving to the JobResult or failing with a MinorGuardError.

        Raises:
            WorkerNotRunningError: If the worker is not started.
            QueueFullError: If the job cannot be accepted.
        """
        ...

    def process(self, image_bytes: bytes, job_id: Optional[int] = None) -> WorkerResult:
        """Screen a photo and wait for the outcome.

        Never raises for job failures; the error is returned instead.
        """
        start = time.perf_counter()
        try:
            future = self.submit(image_bytes, job_id)
            result = future.result(timeout=self._result_timeout)
            return WorkerResult(result=result, timing_ms=_elapsed_ms(start))
        except FutureTimeoutError:
            error = JobTimeoutError(f"Job did not complete within {self._result_timeout}s")
            return WorkerResult(result=None, error=error, timing_ms=_elapsed_ms(start))
        except MinorGuardError as e:
            return WorkerResult(result=None, error=e, timing_ms=_elapsed_ms(start))

    @property
    @abstractmethod
    def is_running(self) -> bool:
        """Check if the worker is ready to accept jobs."""
        ...

    @property
    @abstractmethod
    def worker_info(self) -> WorkerInfo:
        """Return public worker status information."""
        ...

    def __enter__(self) -> "BaseWorker":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class InlineWorker(BaseWorker):
    """Worker that screens on the caller's thread.

    Zero overhead and no isolation; submit() returns an already
    completed future.
    """

    def __init__(self, pipeline: ScreeningPipeline, device: str = "cpu"):
        self._pipeline = pipeline
        self._device = device
        self._running = False

    def start(self) -> None:
        """Start the worker (loads models)."""
        self._pipeline.initialize(self._device)
        self._running = True

    def stop(self) -> None:
        """Stop the worker (releases models)."""
        if self._running:
            self._pipeline.cleanup()
        self._running = False

    def submit(self, image_bytes: bytes, job_id: Optional[int] = None) -> "Future[JobResult]":
        if not self._running:
            raise WorkerNotRunningError("Worker not running")
        request = JobRequest(
            job_id=self.next_job_id() if job_id is None else job_id,
            image_bytes=bytes(image_bytes),
        )
        future: "Future[JobResult]" = Future()
        try:
            future.set_result(run_job(self._pipeline, request))
        except MinorGuardError as e:
            future.set_exception(e)
        return future

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def worker_info(self) -> WorkerInfo:
        return WorkerInfo(isolation_level="inline", pid=os.getpid())


_STOP = object()


class ThreadWorker(BaseWorker):
    """Worker that screens on a single background thread.

    Jobs run in strict submission order. Up to ``max_pending`` jobs may
    wait behind the running one; a submit beyond that raises
    QueueFullError and the job is not accepted. Models are loaded on the
    worker thread and never touched from any other thread.
    """

    def __init__(
        self,
        pipeline: ScreeningPipeline,
        max_pending: int = 4,
        job_timeout_sec: float = 30.0,
        device: str = "cpu",
    ):
        """Initialize the thread worker.

        Args:
            pipeline: Pipeline to run; owned by the worker thread once started.
            max_pending: Jobs that may wait behind the running one.
            job_timeout_sec: How long process() waits; 0 waits forever.
            device: Inference device.
        """
        self._pipeline = pipeline
        self._max_pending = max_pending
        self._result_timeout = job_timeout_sec if job_timeout_sec > 0 else None
        self._device = device

        self._slots = _JobSlots(max_pending)
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=max_pending + 2)
        self._thread: Optional[threading.Thread] = None
        # Guards the running flag together with enqueueing
        self._state_lock = threading.Lock()
        self._running = False

    def start(self) -> None:
        """Start the worker thread and wait for the models to load.

        Raises:
            ModelLoadError: If a model cannot be loaded.
        """
        if self._running:
            return

        ready: "Future[None]" = Future()
        self._thread = threading.Thread(
            target=self._run,
            args=(ready,),
            name="minorguard-worker",
            daemon=True,
        )
        self._thread.start()
        try:
            ready.result()
        except BaseException:
            self._thread.join()
            self._thread = None
            raise
        with self._state_lock:
            self._running = True

    def stop(self) -> None:
        """Stop the worker after the accepted jobs have been delivered."""
        with self._state_lock:
            if not self._running:
                return
            self._running = False
            # Slot accounting leaves room for the marker, so this never blocks
            self._queue.put_nowait(_STOP)
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def _run(self, ready: "Future[None]") -> None:
        try:
            self._pipeline.initialize(self._device)
        except BaseException as e:
            ready.set_exception(e)
            return
        ready.set_result(None)

        try:
            while True:
                item = self._queue.get()
                if item is _STOP:
                    break
                request, future = item
                try:
                    if future.set_running_or_notify_cancel():
                        try:
                            future.set_result(run_job(self._pipeline, request))
                        except MinorGuardError as e:
                            future.set_exception(e)
                finally:
                    self._slots.release()
        finally:
            self._pipeline.cleanup()
            logger.debug("Worker thread exited")

    def submit(self, image_bytes: bytes, job_id: Optional[int] = None) -> "Future[JobResult]":
        request = JobRequest(
            job_id=self.next_job_id() if job_id is None else job_id,
            image_bytes=bytes(image_bytes),
        )
        future: "Future[JobResult]" = Future()
        with self._state_lock:
            if not self._running:
                raise WorkerNotRunningError("Worker not running")
            self._slots.acquire()
            self._queue.put_nowait((request, future))
        logger.debug("Job %d queued", request.job_id)
        return future

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def worker_info(self) -> WorkerInfo:
        return WorkerInfo(
            isolation_level="thread", pid=os.getpid(), pending=self._slots.taken
        )


class ProcessWorker(BaseWorker):
    """Worker that screens in a separate Python process.

    Uses ZMQ REQ/REP with JSON messages. The subprocess loads the models
    before answering the handshake ``ping``. Exchanges are serialized on
    one sender thread, so at most one request is in flight. A job that
    times out restarts the subprocess.

    Example:
        >>> worker = ProcessWorker(MinorGuardConfig())
        >>> worker.start()
        >>> outcome = worker.process(image_bytes)
        >>> worker.stop()
    """

    def __init__(
        self,
        config: MinorGuardConfig,
        python_executable: Optional[str] = None,
        log_level: str = "INFO",
    ):
        """Initialize the process worker.

        Args:
            config: Session configuration, forwarded to the subprocess.
            python_executable: Interpreter for the subprocess
                (default: the current one).
            log_level: Logging level of the subprocess.
        """
        self._config = config
        self._worker_config: WorkerConfig = config.worker
        self._python = python_executable or sys.executable
        self._log_level = log_level

        self._slots = _JobSlots(self._worker_config.max_pending)
        self._process: Optional[subprocess.Popen] = None
        self._rpc_client: Optional[Any] = None  # ZMQRPCClient
        self._ipc_address: str = ""
        self._ipc_file: Optional[str] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()
        self._running = False

    def start(self) -> None:
        """Start the subprocess and wait for its handshake.

        Raises:
            RuntimeError: If pyzmq is missing or the handshake fails.
        """
        if self._running:
            return
        if not check_zmq_available():
            raise RuntimeError("pyzmq is required for process isolation")

        self._launch()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="minorguard-rpc")
        self._running = True

    def _launch(self) -> None:
        from minorguard.worker.rpc import ZMQRPCClient

        self._ipc_address, self._ipc_file = generate_ipc_address(prefix="minorguard-worker")
        cmd = [
            self._python,
            "-m", "minorguard.worker.server",
            "--ipc-address", self._ipc_address,
            "--config-json", json.dumps(self._config.to_dict()),
            "--log-level", self._log_level,
        ]
        logger.info("Starting worker subprocess: %s -m minorguard.worker.server", self._python)

        try:
            self._process = subprocess.Popen(cmd, stdout=subprocess.DEVNULL)
        except OSError as e:
            self._cleanup_zmq()
            raise RuntimeError(f"Failed to start worker subprocess: {e}") from e

        timeout = self._worker_config.job_timeout_sec
        timeout_ms = int(timeout * 1000) if timeout > 0 else -1
        self._rpc_client = ZMQRPCClient(send_timeout_ms=timeout_ms, recv_timeout_ms=timeout_ms)
        try:
            self._rpc_client.connect(self._ipc_address)
            self._handshake()
        except Exception:
            self._terminate_process()
            self._cleanup_zmq()
            raise

    def _handshake(self) -> None:
        timeout = self._worker_config.handshake_timeout_sec
        deadline = time.monotonic() + timeout
        self._rpc_client.send(json.dumps({"type": "ping"}).encode())
        # Model loading happens before the reply; poll so a crash is seen early
        while True:
            raw = self._rpc_client.recv(timeout_ms=200)
            if raw is not None:
                break
            code = self._process.poll()
            if code is not None:
                raise RuntimeError(f"Worker exited during startup with code {code}")
            if time.monotonic() >= deadline:
                raise RuntimeError(f"Worker handshake timed out after {timeout}s")

        response = json.loads(raw)
        if response.get("type") != "pong":
            raise RuntimeError(f"Unexpected handshake response: {response}")
        logger.info("Worker handshake successful (pid %d)", self._process.pid)

    def stop(self) -> None:
        """Send shutdown, then terminate the subprocess."""
        if not self._running:
            return
        self._running = False

        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

        with self._lock:
            if self._rpc_client is not None and self._rpc_client.is_connected:
                try:
                    self._rpc_client.send(json.dumps({"type": "shutdown"}).encode())
                    self._rpc_client.recv(timeout_ms=5000)
                except Exception as e:
                    logger.warning("Error during shutdown signal: %s", e)
            self._terminate_process()
            self._cleanup_zmq()

    def _terminate_process(self) -> None:
        if self._process is not None:
            try:
                self._process.terminate()
                self._process.wait(timeout=5.0)
            except subprocess.TimeoutExpired:
                logger.warning("Worker process did not terminate, killing")
                self._process.kill()
                self._process.wait()
            finally:
                self._process = None

    def _cleanup_zmq(self) -> None:
        if self._rpc_client is not None:
            self._rpc_client.close()
            self._rpc_client = None

        remove_ipc_file(self._ipc_file)
        self._ipc_file = None

    def _restart(self) -> None:
        logger.warning("Restarting worker subprocess")
        self._terminate_process()
        self._cleanup_zmq()
        self._launch()

    def _exchange(self, request: JobRequest) -> JobResult:
        try:
            with self._lock:
                if self._rpc_client is None:
                    raise WorkerNotRunningError("Worker process is not available")
                self._rpc_client.send(json.dumps(encode_request(request)).encode())
                raw = self._rpc_client.recv()
                if raw is None:
                    self._restart()
                    raise JobTimeoutError(
                        f"Job {request.job_id} did not complete within "
                        f"{self._worker_config.job_timeout_sec}s"
                    )
            response = json.loads(raw)
            if "error" in response:
                raise deserialize_error(response)
            return deserialize_result(response["result"])
        except MinorGuardError:
            raise
        except Exception as e:
            raise MinorGuardError(f"Job {request.job_id} failed: {e}") from e
        finally:
            self._slots.release()

    def submit(self, image_bytes: bytes, job_id: Optional[int] = None) -> "Future[JobResult]":
        if not self._running or self._executor is None:
            raise WorkerNotRunningError("Worker not running")
        self._slots.acquire()
        request = JobRequest(
            job_id=self.next_job_id() if job_id is None else job_id,
            image_bytes=bytes(image_bytes),
        )
        return self._executor.submit(self._exchange, request)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def worker_info(self) -> WorkerInfo:
        pid = self._process.pid if self._process is not None else 0
        return WorkerInfo(isolation_level="process", pid=pid, pending=self._slots.taken)


class WorkerLauncher:
    """Factory for creating workers from a configuration.

    Example:
        >>> worker = WorkerLauncher.create(MinorGuardConfig())
        >>> with worker:
        ...     outcome = worker.process(image_bytes)
    """

    @staticmethod
    def create(
        config: MinorGuardConfig,
        pipeline: Optional[ScreeningPipeline] = None,
    ) -> BaseWorker:
        """Create a worker for ``config.worker.isolation``.

        Args:
            config: Session configuration.
            pipeline: Pipeline for inline/thread workers; built from
                ``config`` when None. Process workers build their own.

        Returns:
            A worker, not yet started.

        Raises:
            ValueError: If the isolation level is unknown or a pipeline is
                given for a process worker.
        """
        level = config.worker.isolation

        if level == "inline":
            return InlineWorker(
                pipeline or ScreeningPipeline.from_config(config),
                device=config.worker.device,
            )

        elif level == "thread":
            return ThreadWorker(
                pipeline or ScreeningPipeline.from_config(config),
                max_pending=config.worker.max_pending,
                job_timeout_sec=config.worker.job_timeout_sec,
                device=config.worker.device,
            )

        elif level == "process":
            if pipeline is not None:
                raise ValueError("process isolation builds its pipeline in the subprocess")
            return ProcessWorker(config)

        else:
            raise ValueError(f"Unknown isolation level: {level}")


__all__ = [
    "WorkerInfo",
    "WorkerResult",
    "BaseWorker",
    "InlineWorker",
    "ThreadWorker",
    "ProcessWorker",
    "WorkerLauncher",
    "run_job",
]
