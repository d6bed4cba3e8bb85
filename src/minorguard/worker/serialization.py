"""JSON message encoding for the worker RPC channel.

Images travel base64-encoded: requests carry the caller's original bytes
unchanged, results carry the corrected image as PNG so the pixels the
caller redacts are exactly the pixels the worker analysed.
"""

import base64
from typing import Any, Dict

import cv2
import numpy as np

from minorguard.errors import MinorGuardError, error_from_name
from minorguard.imaging import encode_png
from minorguard.types import DetectionRecord, JobRequest, JobResult


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def encode_request(request: JobRequest) -> Dict[str, Any]:
    """Encode a screening request message."""
    return {
        "type": "screen",
        "job_id": request.job_id,
        "image_b64": _b64(request.image_bytes),
    }


def decode_request(message: Dict[str, Any]) -> JobRequest:
    """Decode a screening request message."""
    return JobRequest(
        job_id=int(message["job_id"]),
        image_bytes=base64.b64decode(message["image_b64"]),
    )


def serialize_result(result: JobResult) -> Dict[str, Any]:
    """Convert a JobResult to a JSON-serializable dict."""
    records = []
    for record in result.records:
        data = record.to_dict()
        data["face_crop_b64"] = _b64(record.face_crop)
        records.append(data)

    return {
        "job_id": result.job_id,
        "scale": result.scale,
        "image_png_b64": _b64(encode_png(result.image)),
        "records": records,
    }


def deserialize_result(data: Dict[str, Any]) -> JobResult:
    """Reconstruct a JobResult from its dict form.

    Raises:
        ValueError: If the image payload cannot be decoded.
        KeyError: If a required field is missing.
    """
    png = base64.b64decode(data["image_png_b64"])
    image = cv2.imdecode(np.frombuffer(png, np.uint8), cv2.IMREAD_COLOR)
    if image is None:
        raise ValueError("Failed to decode result image data")

    records = tuple(
        DetectionRecord.from_dict(
            rec, face_crop=base64.b64decode(rec.get("face_crop_b64", ""))
        )
        for rec in data["records"]
    )
    return JobResult(
        job_id=int(data["job_id"]),
        records=records,
        image=image,
        scale=float(data["scale"]),
    )


def serialize_error(error: BaseException) -> Dict[str, Any]:
    """Encode an exception as an error reply.

    Non-minorguard exceptions are reported as the base error type.
    """
    name = type(error).__name__ if isinstance(error, MinorGuardError) else "MinorGuardError"
    return {"error": str(error) or type(error).__name__, "error_type": name}


def deserialize_error(data: Dict[str, Any]) -> MinorGuardError:
    """Rebuild the typed error carried by an error reply."""
    return error_from_name(data.get("error_type", "MinorGuardError"), data["error"])


__all__ = [
    "encode_request",
    "decode_request",
    "serialize_result",
    "deserialize_result",
    "serialize_error",
    "deserialize_error",
]
