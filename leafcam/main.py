from __future__ import annotations

import argparse
import asyncio
import logging
import platform
import sys
from pathlib import Path
from typing import Sequence

from leafcloud.ai.mock import MockClassifier
from leafcloud.ai.roboflow_client import RoboflowClassifier
from leafcloud.ai.types import Classifier, ClassificationResult

from .camera import CameraDeviceManager, MediaDevices, OpenCVMediaDevices, StubMediaDevices
from .config import AppConfig, load_config
from .errors import LeafScanError
from .logging_utils import configure_logging
from .session import CaptureSession


logger = logging.getLogger(__name__)

EXPORT_FILENAME = "leaf_image.jpeg"


def parse_source(value: str) -> int | str:
    try:
        return int(value)
    except ValueError:
        return value


def build_media_devices(cfg: AppConfig) -> MediaDevices:
    camera = cfg.camera
    if camera.kind == "opencv":
        backend = camera.backend
        if not backend and platform.system() == "Windows":
            backend = "dshow"
        return OpenCVMediaDevices(
            source=parse_source(camera.source),
            facing_sources={k: parse_source(v) for k, v in camera.facing_sources.items()},
            backend=backend,
        )
    sample = Path(camera.sample_path) if camera.sample_path else None
    return StubMediaDevices(sample_path=sample if sample and sample.exists() else None)


def build_classifier(cfg: AppConfig, api_key: str | None = None) -> Classifier:
    classifier = cfg.classifier
    if classifier.kind == "roboflow":
        key = api_key or classifier.api_key()
        if not key:
            logger.warning(
                "No API key found in %s; classification requests will be rejected",
                classifier.api_key_env,
            )
        return RoboflowClassifier(
            api_key=key or "",
            model_id=classifier.model_id,
            version=classifier.version,
            base_url=classifier.base_url,
            timeout=classifier.timeout,
        )
    return MockClassifier()


def build_session(cfg: AppConfig, api_key: str | None = None) -> CaptureSession:
    camera = CameraDeviceManager(
        build_media_devices(cfg),
        default_facing=cfg.camera.facing,
        warmup_frames=cfg.camera.warmup_frames,
    )
    return CaptureSession(
        camera, build_classifier(cfg, api_key=api_key), jpeg_quality=cfg.jpeg_quality
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Capture or upload a leaf photo and classify it"
    )
    parser.add_argument("--config", default=None, help="optional JSON configuration file")
    parser.add_argument(
        "--camera",
        choices=["stub", "opencv"],
        default=None,
        help="camera backend to use",
    )
    parser.add_argument(
        "--camera-source",
        default=None,
        help="camera index or URL (OpenCV) or sample image path (stub)",
    )
    parser.add_argument(
        "--camera-backend",
        default=None,
        help="preferred OpenCV backend (e.g. dshow, msmf, v4l2, 700)",
    )
    parser.add_argument(
        "--camera-warmup",
        type=int,
        default=None,
        help="frames to read before the camera counts as ready",
    )
    parser.add_argument(
        "--facing",
        choices=["environment", "user"],
        default=None,
        help="preferred camera when the basic request fails",
    )
    parser.add_argument(
        "--api",
        choices=["mock", "roboflow"],
        default=None,
        help="classification backend to use",
    )
    parser.add_argument("--api-key", default=None, help="override the API key from the environment")
    parser.add_argument("--model-id", default=None, help="hosted model identifier")
    parser.add_argument("--model-version", default=None, help="hosted model version")
    parser.add_argument(
        "--api-timeout", type=float, default=None, help="HTTP timeout in seconds (default: wait)"
    )
    parser.add_argument(
        "--upload",
        default=None,
        help="classify this image file instead of using the camera",
    )
    parser.add_argument(
        "--iterations", type=int, default=1, help="number of camera captures to classify"
    )
    parser.add_argument(
        "--save-frames-dir",
        default=None,
        help="directory to export captured frames to",
    )
    parser.add_argument("--verbose", action="store_true", help="enable debug logging")
    return parser


def apply_overrides(cfg: AppConfig, args: argparse.Namespace) -> AppConfig:
    if args.camera:
        cfg.camera.kind = args.camera
    if args.camera_source is not None:
        if cfg.camera.kind == "stub":
            cfg.camera.sample_path = args.camera_source
        else:
            cfg.camera.source = args.camera_source
    if args.camera_backend is not None:
        cfg.camera.backend = args.camera_backend
    if args.camera_warmup is not None:
        cfg.camera.warmup_frames = args.camera_warmup
    if args.facing:
        cfg.camera.facing = args.facing
    if args.api:
        cfg.classifier.kind = args.api
    if args.model_id:
        cfg.classifier.model_id = args.model_id
    if args.model_version:
        cfg.classifier.version = args.model_version
    if args.api_timeout is not None:
        cfg.classifier.timeout = args.api_timeout
    if args.save_frames_dir is not None:
        cfg.export_dir = args.save_frames_dir or None
    return cfg


def format_result(result: ClassificationResult) -> str:
    return f"Classification: {result.label}  Confidence: {result.confidence * 100:.1f}%"


def export_frame(session: CaptureSession, directory: Path, index: int) -> Path | None:
    image = session.export_current_frame()
    if image is None:
        return None
    directory.mkdir(parents=True, exist_ok=True)
    stem, suffix = EXPORT_FILENAME.rsplit(".", 1)
    path = directory / (EXPORT_FILENAME if index == 0 else f"{stem}_{index}.{suffix}")
    path.write_bytes(image.data)
    logger.info("Saved frame to %s", path)
    return path


async def run_upload(session: CaptureSession, path: Path) -> int:
    result = await session.select_file(path.read_bytes(), filename=path.name)
    if result is None:
        print(f"Classification failed: {session.last_error}")
        return 1
    print(format_result(result))
    return 0


async def run_camera(session: CaptureSession, iterations: int, export_dir: Path | None) -> int:
    camera_state = await session.start_camera()
    if not camera_state.ready:
        print(f"Camera error: {camera_state.last_error}")
        print("Please ensure the camera is connected and permitted, then try again.")
        return 1

    failures = 0
    for index in range(max(1, iterations)):
        try:
            result = await session.capture()
        except LeafScanError as exc:
            print(f"Capture failed: {exc}")
            failures += 1
            continue
        if result is None:
            print(f"Classification failed: {session.last_error}")
            failures += 1
        else:
            print(format_result(result))
        if export_dir is not None:
            export_frame(session, export_dir, index)
        session.clear()
    return 1 if failures else 0


async def run(args: argparse.Namespace) -> int:
    cfg = apply_overrides(load_config(args.config), args)
    session = build_session(cfg, api_key=args.api_key)
    try:
        if args.upload:
            return await run_upload(session, Path(args.upload))
        export_dir = Path(cfg.export_dir) if cfg.export_dir else None
        return await run_camera(session, args.iterations, export_dir)
    finally:
        session.close()


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        print("Stopped by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
