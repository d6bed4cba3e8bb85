"""CLI for minorguard: ``minorguard scan``, ``redact`` and ``info``."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from minorguard.config import ISOLATION_LEVELS, MinorGuardConfig
from minorguard.errors import MinorGuardError

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="minorguard",
        description="Detect children's faces in photos and blur them before sharing",
    )
    sub = parser.add_subparsers(dest="command")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config", "-c",
        default=None,
        help="YAML configuration file",
    )
    common.add_argument(
        "--models-dir",
        default=None,
        help="Directory containing the ONNX models",
    )
    common.add_argument(
        "--isolation",
        choices=ISOLATION_LEVELS,
        default=None,
        help="Worker isolation level (default: from config, else thread)",
    )
    common.add_argument(
        "--device",
        default=None,
        help="Inference device: cpu or cuda:N",
    )
    common.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output",
    )

    # minorguard scan
    scan_p = sub.add_parser("scan", parents=[common], help="Detect and classify faces")
    scan_p.add_argument("images", nargs="+", help="Image files to scan")
    scan_p.add_argument(
        "--json",
        action="store_true",
        help="Print results as JSON lines",
    )

    # minorguard redact
    redact_p = sub.add_parser("redact", parents=[common], help="Blur faces and save the photo")
    redact_p.add_argument("image", help="Image file to redact")
    redact_p.add_argument(
        "--faces",
        default=None,
        help="Comma-separated face indices to blur (default: faces labelled child)",
    )
    redact_p.add_argument(
        "-o", "--output-root",
        default=None,
        help="Root directory; the photo is written under Pictures/MinorGuard",
    )
    redact_p.add_argument(
        "--isolated",
        action="store_true",
        help="Run the redaction in a separate process",
    )

    # minorguard info
    sub.add_parser("info", parents=[common], help="Show model paths and inference providers")

    return parser


def _load_config(args: argparse.Namespace) -> MinorGuardConfig:
    config = MinorGuardConfig.from_yaml(args.config) if args.config else MinorGuardConfig()
    if args.models_dir:
        config.models_dir = args.models_dir
    if args.isolation:
        config.worker.isolation = args.isolation
    if args.device:
        config.worker.device = args.device
    if getattr(args, "output_root", None):
        config.output_root = args.output_root
    if getattr(args, "isolated", False):
        config.redaction.isolated = True
    return config


def _parse_indices(text: str) -> List[int]:
    try:
        return [int(part) for part in text.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid face indices: {text!r}")


def _cmd_scan(args: argparse.Namespace) -> int:
    """Handle ``minorguard scan``."""
    from minorguard.worker import WorkerLauncher

    config = _load_config(args)
    failures = 0
    with WorkerLauncher.create(config) as worker:
        for image in args.images:
            outcome = worker.process(Path(image).read_bytes())
            if not outcome.ok:
                failures += 1
                print(f"{image}: error: {outcome.error}", file=sys.stderr)
                continue
            result = outcome.result
            if args.json:
                print(json.dumps({
                    "image": image,
                    "width": result.image_size[0],
                    "height": result.image_size[1],
                    "faces": [r.to_dict() for r in result.records],
                }))
                continue
            print(f"{image}: {len(result.records)} face(s) ({outcome.timing_ms:.0f} ms)")
            for idx, record in enumerate(result.records):
                x1, y1, x2, y2 = record.box
                print(
                    f"  [{idx}] {record.age_label.value:14s} "
                    f"adult={record.age_confidence:.3f} det={record.confidence:.2f} "
                    f"box=({x1:.0f},{y1:.0f},{x2:.0f},{y2:.0f})"
                )
    return 1 if failures else 0


def _cmd_redact(args: argparse.Namespace) -> int:
    """Handle ``minorguard redact``."""
    from minorguard.session import EditSession
    from minorguard.worker import WorkerLauncher

    config = _load_config(args)
    data = Path(args.image).read_bytes()

    with WorkerLauncher.create(config) as worker:
        session = EditSession(worker, config)
        session.select_image(data, source_name=Path(args.image).name)
        if session.wait() is None:
            print(f"Error: {session.last_error}", file=sys.stderr)
            return 1

        if args.faces is not None:
            session.set_selection(_parse_indices(args.faces))

        path = session.save()

    print(f"Blurred {len(session.selected)} of {len(session.records)} face(s): {path}")
    return 0


def _cmd_info(args: argparse.Namespace) -> int:
    """Handle ``minorguard info``."""
    from minorguard.paths import get_models_dir, resolve_model_path

    config = _load_config(args)
    models_dir = Path(config.models_dir) if config.models_dir else get_models_dir()
    print(f"Models directory: {models_dir}")
    for model_file in (config.detector.model_file, config.classifier.model_file):
        path = resolve_model_path(model_file, models_dir)
        status = "found" if path.exists() else "missing"
        print(f"  {model_file:24s} {status}")

    try:
        import onnxruntime as ort
    except ImportError:
        print("onnxruntime: not installed")
    else:
        print(f"onnxruntime {ort.__version__}: {', '.join(ort.get_available_providers())}")

    print(f"Worker isolation: {config.worker.isolation} (device {config.worker.device})")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for ``minorguard`` CLI."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="[%(levelname)s] %(name)s: %(message)s",
    )

    try:
        if args.command == "scan":
            return _cmd_scan(args)
        elif args.command == "redact":
            return _cmd_redact(args)
        elif args.command == "info":
            return _cmd_info(args)
    except (MinorGuardError, argparse.ArgumentTypeError, IndexError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
