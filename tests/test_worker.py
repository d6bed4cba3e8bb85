"""Tests for worker isolation levels with fake predictors."""

import threading
from unittest.mock import patch

import numpy as np
import pytest

from helpers import FakeDetector, make_image, png_bytes

from minorguard.config import MinorGuardConfig, WorkerConfig
from minorguard.errors import (
    DecodeFailure,
    JobTimeoutError,
    ModelLoadError,
    QueueFullError,
    WorkerNotRunningError,
)
from minorguard.pipeline import ScreeningPipeline
from minorguard.worker.launcher import (
    InlineWorker,
    ProcessWorker,
    ThreadWorker,
    WorkerLauncher,
    WorkerResult,
)


class TestInlineWorker:
    def test_start_loads_models(self, pipeline):
        worker = InlineWorker(pipeline)
        assert not worker.is_running
        worker.start()
        assert worker.is_running
        assert pipeline.is_initialized
        worker.stop()
        assert not worker.is_running

    def test_process(self, pipeline, photo_bytes):
        with InlineWorker(pipeline) as worker:
            outcome = worker.process(photo_bytes, job_id=3)
        assert isinstance(outcome, WorkerResult)
        assert outcome.ok
        assert outcome.result.job_id == 3
        assert len(outcome.result.records) == 2
        assert outcome.timing_ms >= 0

    def test_submit_returns_completed_future(self, pipeline, photo_bytes):
        with InlineWorker(pipeline) as worker:
            future = worker.submit(photo_bytes)
            assert future.done()
            assert future.result().scale == 2.0

    def test_error_is_typed(self, pipeline):
        with InlineWorker(pipeline) as worker:
            outcome = worker.process(b"corrupt")
        assert not outcome.ok
        assert isinstance(outcome.error, DecodeFailure)

    def test_not_running(self, pipeline, photo_bytes):
        worker = InlineWorker(pipeline)
        with pytest.raises(WorkerNotRunningError):
            worker.submit(photo_bytes)
        outcome = worker.process(photo_bytes)
        assert isinstance(outcome.error, WorkerNotRunningError)

    def test_worker_info(self, pipeline):
        info = InlineWorker(pipeline).worker_info
        assert info.isolation_level == "inline"
        assert info.pid > 0


class TestThreadWorker:
    def test_models_load_on_worker_thread(self, pipeline, detector):
        with ThreadWorker(pipeline) as worker:
            assert worker.is_running
            assert pipeline.is_initialized
        assert detector.init_thread == "minorguard-worker"
        assert detector.cleaned_up

    def test_start_failure_propagates(self, classifier):
        detector = FakeDetector()

        def fail(device="cpu"):
            raise ModelLoadError("model missing")

        detector.initialize = fail
        worker = ThreadWorker(ScreeningPipeline(detector, classifier))
        with pytest.raises(ModelLoadError):
            worker.start()
        assert not worker.is_running

    def test_results_in_submission_order(self, pipeline):
        small = make_image(640, 480, seed=1)
        large = make_image(1280, 960, seed=2)
        with ThreadWorker(pipeline) as worker:
            first = worker.submit(png_bytes(small))
            second = worker.submit(png_bytes(large))
            r1 = first.result(timeout=5)
            r2 = second.result(timeout=5)
        assert r1.job_id < r2.job_id
        assert np.array_equal(r1.image, small)
        assert np.array_equal(r2.image, large)
        assert r1.scale == 1.0 and r2.scale == 2.0

    def test_survives_corrupt_image(self, pipeline, photo_bytes):
        with ThreadWorker(pipeline) as worker:
            bad = worker.process(b"corrupt")
            good = worker.process(photo_bytes)
        assert isinstance(bad.error, DecodeFailure)
        assert good.ok and len(good.result.records) == 2

    def test_queue_full_is_rejected(self, pipeline, detector, photo_bytes):
        with ThreadWorker(pipeline, max_pending=1) as worker:
            detector.gate = threading.Event()
            running = worker.submit(photo_bytes)
            waiting = worker.submit(photo_bytes)
            with pytest.raises(QueueFullError):
                worker.submit(photo_bytes)
            assert worker.worker_info.pending == 2

            detector.gate.set()
            assert running.result(timeout=5).records
            assert waiting.result(timeout=5).records
            # Capacity is back once jobs are delivered
            assert worker.submit(photo_bytes).result(timeout=5).records

    def test_timeout(self, pipeline, detector):
        data = png_bytes(make_image(64, 48))
        with ThreadWorker(pipeline, job_timeout_sec=0.5) as worker:
            detector.gate = threading.Event()
            outcome = worker.process(data)
            assert isinstance(outcome.error, JobTimeoutError)
            detector.gate.set()
            detector.gate = None
            assert worker.process(data).ok

    def test_stop_delivers_accepted_jobs(self, pipeline, detector, photo_bytes):
        worker = ThreadWorker(pipeline)
        worker.start()
        detector.gate = threading.Event()
        futures = [worker.submit(photo_bytes) for _ in range(3)]
        detector.gate.set()
        worker.stop()
        assert all(f.done() and f.result().records for f in futures)

    def test_submit_after_stop(self, pipeline, photo_bytes):
        worker = ThreadWorker(pipeline)
        worker.start()
        worker.stop()
        with pytest.raises(WorkerNotRunningError):
            worker.submit(photo_bytes)

    def test_stop_during_submit_delivers_job(self, pipeline, photo_bytes):
        worker = ThreadWorker(pipeline)
        worker.start()
        stopper = threading.Thread(target=worker.stop)
        acquire = worker._slots.acquire

        def acquire_while_stopping():
            stopper.start()
            # stop() must wait until this job is queued
            stopper.join(timeout=0.2)
            acquire()

        worker._slots.acquire = acquire_while_stopping
        future = worker.submit(photo_bytes)
        stopper.join(timeout=5)

        assert not stopper.is_alive()
        assert not worker.is_running
        assert future.result(timeout=5).records

    def test_submit_copies_bytes(self, pipeline, photo_bytes, photo):
        data = bytearray(photo_bytes)
        with ThreadWorker(pipeline) as worker:
            future = worker.submit(data)
            data[:] = b"\x00" * len(data)
            assert np.array_equal(future.result(timeout=5).image, photo)


class TestWorkerLauncher:
    def test_inline(self, pipeline):
        config = MinorGuardConfig(worker=WorkerConfig(isolation="inline"))
        assert isinstance(WorkerLauncher.create(config, pipeline), InlineWorker)

    def test_thread(self, pipeline):
        config = MinorGuardConfig(worker=WorkerConfig(isolation="thread", max_pending=2))
        worker = WorkerLauncher.create(config, pipeline)
        assert isinstance(worker, ThreadWorker)
        assert worker._max_pending == 2

    def test_process(self):
        config = MinorGuardConfig(worker=WorkerConfig(isolation="process"))
        assert isinstance(WorkerLauncher.create(config), ProcessWorker)

    def test_process_rejects_pipeline(self, pipeline):
        config = MinorGuardConfig(worker=WorkerConfig(isolation="process"))
        with pytest.raises(ValueError):
            WorkerLauncher.create(config, pipeline)

    def test_builds_pipeline_from_config(self):
        config = MinorGuardConfig(worker=WorkerConfig(isolation="inline"))
        worker = WorkerLauncher.create(config)
        assert isinstance(worker._pipeline, ScreeningPipeline)


class TestProcessWorker:
    def test_not_running(self, photo_bytes):
        worker = ProcessWorker(MinorGuardConfig())
        with pytest.raises(WorkerNotRunningError):
            worker.submit(photo_bytes)
        assert worker.worker_info.pid == 0

    def test_startup_failure_is_reported(self, tmp_path):
        pytest.importorskip("zmq")
        config = MinorGuardConfig(
            models_dir=str(tmp_path),
            worker=WorkerConfig(isolation="process", handshake_timeout_sec=60),
        )
        worker = ProcessWorker(config)
        with pytest.raises(RuntimeError, match="exited during startup"):
            worker.start()
        assert not worker.is_running


@pytest.fixture
def served_worker(pipeline):
    """ProcessWorker talking to run_worker on a thread instead of a subprocess."""
    pytest.importorskip("zmq")
    from minorguard.worker._util import generate_ipc_address
    from minorguard.worker.rpc import ZMQRPCClient
    from minorguard.worker.server import run_worker

    address, _ = generate_ipc_address(prefix="test-proc")
    clients = []

    def connect(self):
        self._ipc_address = address
        self._ipc_file = None
        timeout_ms = int(self._worker_config.job_timeout_sec * 1000)
        self._rpc_client = ZMQRPCClient(send_timeout_ms=timeout_ms, recv_timeout_ms=timeout_ms)
        self._rpc_client.connect(address)
        clients.append(self._rpc_client)

    config = MinorGuardConfig(worker=WorkerConfig(isolation="process", job_timeout_sec=1.0))
    with patch(
        "minorguard.worker.server.ScreeningPipeline.from_config",
        return_value=pipeline,
    ), patch.object(ProcessWorker, "_launch", connect):
        server = threading.Thread(
            target=run_worker, args=(config, address), daemon=True
        )
        server.start()
        worker = ProcessWorker(config)
        worker.start()
        yield worker, clients
        worker.stop()
        server.join(timeout=5)


class TestProcessWorkerJobs:
    def test_results_in_submission_order(self, served_worker):
        worker, _ = served_worker
        small = make_image(640, 480, seed=1)
        large = make_image(1280, 960, seed=2)
        first = worker.submit(png_bytes(small))
        second = worker.submit(png_bytes(large))
        r1 = first.result(timeout=10)
        r2 = second.result(timeout=10)
        assert r1.job_id < r2.job_id
        assert np.array_equal(r1.image, small)
        assert np.array_equal(r2.image, large)
        assert len(r2.records) == 2
        assert r2.records[0].age_label.value == "child"

    def test_error_type_survives_transport(self, served_worker, photo_bytes):
        worker, _ = served_worker
        bad = worker.process(b"corrupt")
        assert isinstance(bad.error, DecodeFailure)
        good = worker.process(photo_bytes)
        assert good.ok and len(good.result.records) == 2

    def test_stalled_job_times_out_and_restarts(self, served_worker, detector):
        worker, clients = served_worker
        data = png_bytes(make_image(64, 48))
        detector.gate = threading.Event()
        outcome = worker.process(data)
        assert isinstance(outcome.error, JobTimeoutError)
        assert len(clients) == 2

        detector.gate.set()
        detector.gate = None
        assert worker.process(data).ok
