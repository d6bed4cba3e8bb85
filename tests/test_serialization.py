"""Tests for worker message encoding."""

import json

import numpy as np
import pytest

from minorguard.errors import DecodeFailure, MinorGuardError, QueueFullError
from minorguard.types import DetectionRecord, JobRequest, JobResult
from minorguard.worker.serialization import (
    decode_request,
    deserialize_error,
    deserialize_result,
    encode_request,
    serialize_error,
    serialize_result,
)


@pytest.fixture
def job_result(photo):
    return JobResult(
        job_id=9,
        records=(
            DetectionRecord((100, 100, 200, 220), 0.95, 0.3, face_crop=b"crop-a"),
            DetectionRecord((400, 150, 480, 250), 0.80, 0.8, face_crop=b"crop-b"),
        ),
        image=photo,
        scale=2.0,
    )


class TestRequest:
    def test_round_trip(self):
        message = encode_request(JobRequest(job_id=4, image_bytes=b"\x89PNG\x00"))
        assert message["type"] == "screen"
        json.dumps(message)
        request = decode_request(message)
        assert request == JobRequest(job_id=4, image_bytes=b"\x89PNG\x00")

    def test_missing_image(self):
        with pytest.raises(KeyError):
            decode_request({"type": "screen", "job_id": 1})


class TestResult:
    def test_json_safe_and_lossless(self, job_result, photo):
        data = json.loads(json.dumps(serialize_result(job_result)))
        result = deserialize_result(data)

        assert result.job_id == 9
        assert result.scale == 2.0
        assert np.array_equal(result.image, photo)
        assert [r.box for r in result.records] == [r.box for r in job_result.records]
        assert [r.face_crop for r in result.records] == [b"crop-a", b"crop-b"]
        assert result.child_indices == (0,)

    def test_empty_records(self, photo):
        empty = JobResult(job_id=1, records=(), image=photo, scale=2.0)
        assert deserialize_result(serialize_result(empty)).records == ()

    def test_bad_image_payload(self, job_result):
        data = serialize_result(job_result)
        data["image_png_b64"] = "AAAA"
        with pytest.raises(ValueError):
            deserialize_result(data)


class TestErrors:
    def test_typed_error_survives(self):
        error = deserialize_error(serialize_error(DecodeFailure("bad jpeg")))
        assert isinstance(error, DecodeFailure)
        assert str(error) == "bad jpeg"

    def test_foreign_error_becomes_base(self):
        data = serialize_error(ZeroDivisionError("division by zero"))
        assert data["error_type"] == "MinorGuardError"
        assert type(deserialize_error(data)) is MinorGuardError

    def test_unknown_type_name(self):
        error = deserialize_error({"error": "x", "error_type": "Nope"})
        assert type(error) is MinorGuardError

    def test_missing_type_name(self):
        assert isinstance(deserialize_error({"error": "x"}), MinorGuardError)

    def test_empty_message_uses_type_name(self):
        assert serialize_error(QueueFullError())["error"] == "QueueFullError"
