"""Foreground controller for one pick, detect, choose, redact, save cycle.

EditSession never runs inference itself: it tags each photo with a job id,
hands the bytes to a worker and applies the result only if that id is
still the current selection. Picking a new photo discards everything the
previous one produced.

Example:
    >>> worker = WorkerLauncher.create(config)
    >>> with worker:
    ...     session = EditSession(worker, config)
    ...     session.select_image(data, source_name="IMG_0042.heic")
    ...     session.wait()
    ...     session.toggle(1)
    ...     path = session.save()
"""

import asyncio
import logging
import tempfile
import threading
from concurrent.futures import Future, ProcessPoolExecutor, ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Callable, FrozenSet, Iterable, Optional, Set, Tuple

from minorguard.config import MinorGuardConfig
from minorguard.errors import MinorGuardError
from minorguard.geometry import Placement, hit_test, letterbox, scale_box, to_display
from minorguard.redact import redact_request
from minorguard.types import DetectionRecord, JobResult, RedactionRequest
from minorguard.worker.launcher import BaseWorker

logger = logging.getLogger(__name__)

EXPORT_SUBDIR = Path("Pictures") / "MinorGuard"
EXPORT_PREFIX = "censored_"


def flag_children(records: Iterable[DetectionRecord]) -> Set[int]:
    """Indices of the records labelled as children."""
    return {i for i, record in enumerate(records) if record.is_child}


def export_name(source_name: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """File name for an exported photo.

    ``censored_<stem>.jpg`` for a named source, otherwise a timestamp.
    """
    if source_name:
        return f"{EXPORT_PREFIX}{Path(source_name).stem}.jpg"
    now = now or datetime.now()
    return f"{EXPORT_PREFIX}{now:%Y%m%d_%H%M%S}.jpg"


class EditSession:
    """State of the photo being edited.

    Args:
        worker: A started inference worker.
        config: Session configuration (redaction and export settings).
        auto_flag_children: Preselect faces labelled as children when a
            result arrives.
    """

    def __init__(
        self,
        worker: BaseWorker,
        config: Optional[MinorGuardConfig] = None,
        auto_flag_children: bool = True,
    ):
        self._worker = worker
        self._config = config or MinorGuardConfig()
        self._auto_flag = auto_flag_children

        self._lock = threading.RLock()
        self._job_id: Optional[int] = None
        self._applied_job: Optional[int] = None
        self._future: Optional["Future[JobResult]"] = None
        self._source_name: Optional[str] = None
        self._result: Optional[JobResult] = None
        self._selected: Set[int] = set()
        self._last_error: Optional[str] = None

    # ----- state -----

    @property
    def job_id(self) -> Optional[int]:
        return self._job_id

    @property
    def result(self) -> Optional[JobResult]:
        with self._lock:
            return self._result

    @property
    def records(self) -> Tuple[DetectionRecord, ...]:
        with self._lock:
            return self._result.records if self._result is not None else ()

    @property
    def selected(self) -> FrozenSet[int]:
        with self._lock:
            return frozenset(self._selected)

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def is_busy(self) -> bool:
        future = self._future
        return future is not None and not future.done()

    # ----- detection -----

    def select_image(self, image_bytes: bytes, source_name: Optional[str] = None) -> int:
        """Start screening a new photo.

        The previous photo's records and selection are discarded at once.

        Returns:
            Job id the result will be tagged with.

        Raises:
            MinorGuardError: If the worker does not accept the job; the
                message is also kept in ``last_error``.
        """
        job_id = self._worker.next_job_id()
        with self._lock:
            self._job_id = job_id
            self._future = None
            self._source_name = source_name
            self._result = None
            self._selected = set()
            self._last_error = None

        try:
            future = self._worker.submit(image_bytes, job_id=job_id)
        except MinorGuardError as e:
            with self._lock:
                if self._job_id == job_id:
                    self._job_id = None
                    self._future = None
                    self._last_error = str(e)
            raise

        with self._lock:
            if self._job_id == job_id:
                self._future = future
        future.add_done_callback(lambda f: self._on_job_done(job_id, f))
        logger.debug("Job %d submitted (%s)", job_id, source_name or "unnamed")
        return job_id

    def _on_job_done(self, job_id: int, future: "Future[JobResult]") -> None:
        with self._lock:
            if job_id != self._job_id or future is not self._future:
                logger.debug("Discarding stale result for job %d", job_id)
                return
            if job_id == self._applied_job:
                return
            self._applied_job = job_id

            error = future.exception()
            if error is not None:
                self._result = None
                self._selected = set()
                self._last_error = f"Failed to process image: {error}"
                logger.warning("Job %d failed: %s", job_id, error)
                return

            result = future.result()
            self._result = result
            self._selected = flag_children(result.records) if self._auto_flag else set()
            logger.info(
                "Job %d: %d face(s), %d flagged",
                job_id, len(result.records), len(self._selected),
            )

    def _current_job(self):
        with self._lock:
            if self._job_id is None:
                return None, None
            return self._job_id, self._future

    def wait(self, timeout: Optional[float] = None) -> Optional[JobResult]:
        """Block until the current job settles.

        Returns:
            The applied result, or None if the job failed.
        """
        job_id, future = self._current_job()
        if future is not None:
            try:
                future.result(timeout=timeout)
            except MinorGuardError:
                pass
            # Done callbacks may still be running on the worker thread.
            self._on_job_done(job_id, future)
        return self.result

    async def select_image_async(
        self, image_bytes: bytes, source_name: Optional[str] = None
    ) -> Optional[JobResult]:
        """Event-loop variant of ``select_image`` followed by ``wait``."""
        job_id = self.select_image(image_bytes, source_name)
        current_id, future = self._current_job()
        if current_id != job_id or future is None:
            # Superseded by a newer selection
            return None
        try:
            await asyncio.wrap_future(future)
        except MinorGuardError:
            pass
        self._on_job_done(job_id, future)
        return self.result

    # ----- selection -----

    def _require_result(self) -> JobResult:
        if self._result is None:
            raise RuntimeError("No detection result to edit")
        return self._result

    def toggle(self, index: int) -> bool:
        """Flip the selection of one face; returns its new state."""
        with self._lock:
            records = self._require_result().records
            if not 0 <= index < len(records):
                raise IndexError(f"Face index {index} out of range ({len(records)} faces)")
            if index in self._selected:
                self._selected.discard(index)
                return False
            self._selected.add(index)
            return True

    def set_selection(self, indices: Iterable[int]) -> None:
        with self._lock:
            records = self._require_result().records
            chosen = set(indices)
            bad = [i for i in chosen if not 0 <= i < len(records)]
            if bad:
                raise IndexError(f"Face indices out of range: {sorted(bad)}")
            self._selected = chosen

    def placement(self, canvas_size: Tuple[float, float]) -> Placement:
        """Where the corrected photo sits on a canvas of the given size."""
        return letterbox(self._require_result().image_size, canvas_size)

    def display_boxes(self, canvas_size: Tuple[float, float]):
        """Face boxes in canvas coordinates, in record order."""
        result = self._require_result()
        placement = self.placement(canvas_size)
        return [
            to_display(scale_box(r.box, result.scale), placement) for r in result.records
        ]

    def tap(self, point: Tuple[float, float], canvas_size: Tuple[float, float]) -> Optional[int]:
        """Toggle the face under a canvas point.

        Returns:
            Index of the toggled face, or None if the point hits no face.
        """
        with self._lock:
            result = self._require_result()
            boxes = [scale_box(r.box, result.scale) for r in result.records]
            index = hit_test(boxes, point, self.placement(canvas_size))
            if index is not None:
                self.toggle(index)
            return index

    # ----- redaction and export -----

    def submit_redaction(self) -> "Future[bytes]":
        """Blur the selected faces on a one-shot executor.

        Runs in a separate process when ``redaction.isolated`` is set.
        """
        with self._lock:
            result = self._require_result()
            request = RedactionRequest(
                image=result.image,
                records=result.records,
                selected=frozenset(self._selected),
                scale=result.scale,
            )

        redaction = self._config.redaction
        executor_cls = ProcessPoolExecutor if redaction.isolated else ThreadPoolExecutor
        executor = executor_cls(max_workers=1)
        try:
            return executor.submit(redact_request, request, redaction)
        finally:
            executor.shutdown(wait=False)

    def redact(self) -> bytes:
        """Blur the selected faces; returns metadata-free JPEG bytes."""
        return self.submit_redaction().result()

    async def redact_async(self) -> bytes:
        return await asyncio.wrap_future(self.submit_redaction())

    def save(self, output_root: Optional[str] = None, now: Optional[datetime] = None) -> Path:
        """Redact and write the photo under ``<output_root>/Pictures/MinorGuard``.

        Returns:
            Path of the written file.
        """
        data = self.redact()
        directory = Path(output_root or self._config.output_root) / EXPORT_SUBDIR
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / export_name(self._source_name, now)
        path.write_bytes(data)
        logger.info("Saved redacted image to %s", path)
        return path

    def share(self, callback: Callable[[Path], None]) -> Path:
        """Redact into a temporary file and hand it to ``callback``.

        The file is left in place for the receiver; its directory is
        returned as part of the path.
        """
        data = self.redact()
        directory = Path(tempfile.mkdtemp(prefix="minorguard-share-"))
        path = directory / export_name(self._source_name)
        path.write_bytes(data)
        callback(path)
        return path


__all__ = ["EditSession", "flag_children", "export_name", "EXPORT_SUBDIR"]
