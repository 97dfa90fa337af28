"""Runtime configuration for the LeafScan capture pipeline.

Settings come from an optional JSON file, then the environment. Secrets are
never stored in the file: the classifier reads its API key from the
environment variable named by ``ClassifierConfig.api_key_env``.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from leafcloud.ai.roboflow_client import (
    DEFAULT_BASE_URL,
    DEFAULT_MODEL_ID,
    DEFAULT_MODEL_VERSION,
)

from .camera import DEFAULT_FACING
from .encoding import DEFAULT_JPEG_QUALITY


logger = logging.getLogger(__name__)


@dataclass
class CameraConfig:
    kind: str = "stub"
    source: str = "0"
    backend: str | None = None
    facing: str = DEFAULT_FACING
    facing_sources: dict[str, str] = field(default_factory=dict)
    warmup_frames: int = 2
    sample_path: str | None = None


@dataclass
class ClassifierConfig:
    kind: str = "mock"
    base_url: str = DEFAULT_BASE_URL
    model_id: str = DEFAULT_MODEL_ID
    version: str = DEFAULT_MODEL_VERSION
    api_key_env: str = "LEAFSCAN_API_KEY"
    timeout: float | None = None

    def api_key(self) -> str | None:
        value = os.environ.get(self.api_key_env)
        return value.strip() if value and value.strip() else None


@dataclass
class AppConfig:
    camera: CameraConfig = field(default_factory=CameraConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    jpeg_quality: float = DEFAULT_JPEG_QUALITY
    export_dir: str | None = None


def _merge(target: Any, values: dict[str, Any]) -> None:
    for key, value in values.items():
        if not hasattr(target, key):
            logger.warning("Ignoring unknown config key %r", key)
            continue
        setattr(target, key, value)


def _apply_env(cfg: AppConfig) -> None:
    env = os.environ
    if env.get("LEAFSCAN_CAMERA"):
        cfg.camera.kind = env["LEAFSCAN_CAMERA"]
    if env.get("LEAFSCAN_CAMERA_SOURCE"):
        cfg.camera.source = env["LEAFSCAN_CAMERA_SOURCE"]
    if env.get("LEAFSCAN_CLASSIFIER"):
        cfg.classifier.kind = env["LEAFSCAN_CLASSIFIER"]
    if env.get("LEAFSCAN_MODEL_ID"):
        cfg.classifier.model_id = env["LEAFSCAN_MODEL_ID"]
    if env.get("LEAFSCAN_MODEL_VERSION"):
        cfg.classifier.version = env["LEAFSCAN_MODEL_VERSION"]


def load_config(path: str | Path | None = None) -> AppConfig:
    """Build an :class:`AppConfig` from ``path`` (optional) and the environment."""
    load_dotenv()
    cfg = AppConfig()
    if path is not None:
        config_path = Path(path)
        payload = json.loads(config_path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"Configuration file {config_path} must contain a JSON object")
        _merge(cfg.camera, payload.pop("camera", {}) or {})
        _merge(cfg.classifier, payload.pop("classifier", {}) or {})
        _merge(cfg, payload)
        logger.info("Loaded configuration from %s", config_path)
    _apply_env(cfg)
    return cfg


__all__ = ["AppConfig", "CameraConfig", "ClassifierConfig", "load_config"]
