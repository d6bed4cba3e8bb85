"""Subprocess entry point for ProcessWorker.

Loads both models, runs the warm-up, then serves screening requests over a
ZMQ REP socket one at a time. The handshake ``ping`` is only answered
after the models are ready, so a caller never races model loading.

Usage:
    python -m minorguard.worker.server --ipc-address ipc:///tmp/xxx.sock \
        --config-json '{"worker": {"device": "cpu"}}'
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict

from minorguard.config import MinorGuardConfig
from minorguard.errors import MinorGuardError
from minorguard.pipeline import ScreeningPipeline
from minorguard.worker.serialization import (
    decode_request,
    serialize_error,
    serialize_result,
)

logger = logging.getLogger(__name__)


def handle_message(pipeline: ScreeningPipeline, message: Dict[str, Any]) -> Dict[str, Any]:
    """Produce the reply for one request message.

    Job failures are returned as error replies; the caller's next request
    is served normally.
    """
    msg_type = message.get("type")

    if msg_type == "ping":
        return {"type": "pong", "ready": pipeline.is_initialized}

    if msg_type == "shutdown":
        return {"type": "ack"}

    if msg_type == "screen":
        try:
            request = decode_request(message)
        except (KeyError, ValueError) as e:
            return {"error": f"Malformed screen request: {e}", "error_type": "MinorGuardError"}
        try:
            result = pipeline.screen(request.image_bytes, job_id=request.job_id)
            return {"result": serialize_result(result)}
        except MinorGuardError as e:
            logger.warning("Job %d failed: %s", request.job_id, e)
            return serialize_error(e)
        except Exception as e:
            logger.error("Job %d crashed: %s", request.job_id, e, exc_info=True)
            return serialize_error(e)

    logger.warning("Unknown message type: %s", msg_type)
    return {"error": f"Unknown message type: {msg_type}", "error_type": "MinorGuardError"}


def run_worker(config: MinorGuardConfig, ipc_address: str) -> int:
    """Run the worker process main loop.

    Args:
        config: Session configuration (models, device).
        ipc_address: ZMQ IPC address to bind to.

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    import zmq

    from minorguard.worker.rpc import ZMQRPCServer

    server = ZMQRPCServer()
    try:
        server.bind(ipc_address)
    except zmq.ZMQError as e:
        logger.error("Failed to bind to %s: %s", ipc_address, e)
        return 1

    try:
        pipeline = ScreeningPipeline.from_config(config)
        pipeline.initialize(config.worker.device)
    except Exception as e:
        logger.error("Failed to load models: %s", e)
        server.close()
        return 1

    try:
        while True:
            try:
                raw = server.recv()
            except zmq.ZMQError as e:
                logger.error("ZMQ receive error: %s", e)
                break
            if raw is None:
                continue

            try:
                message = json.loads(raw)
            except ValueError as e:
                server.send(json.dumps({"error": f"Invalid JSON: {e}"}).encode())
                continue
            if not isinstance(message, dict):
                server.send(json.dumps({"error": "Message must be a JSON object"}).encode())
                continue

            reply = handle_message(pipeline, message)
            server.send(json.dumps(reply).encode())

            if message.get("type") == "shutdown":
                logger.info("Received shutdown signal")
                break
    finally:
        pipeline.cleanup()
        server.close()
        logger.info("Worker shutdown complete")

    return 0


def main() -> int:
    """Main entry point for the worker subprocess."""
    parser = argparse.ArgumentParser(
        description="minorguard inference worker subprocess",
    )
    parser.add_argument(
        "--ipc-address",
        required=True,
        help="ZMQ IPC address to bind to (e.g., ipc:///tmp/worker.sock)",
    )
    parser.add_argument(
        "--config-json",
        default="{}",
        help="Session configuration as a JSON object",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="[%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    config = MinorGuardConfig.from_dict(json.loads(args.config_json))
    return run_worker(config, args.ipc_address)


if __name__ == "__main__":
    sys.exit(main())
