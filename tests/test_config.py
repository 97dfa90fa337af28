from __future__ import annotations

import json

import pytest

from leafcam.config import load_config


def test_defaults_without_file(monkeypatch) -> None:
    monkeypatch.delenv("LEAFSCAN_CAMERA", raising=False)
    monkeypatch.delenv("LEAFSCAN_CLASSIFIER", raising=False)
    cfg = load_config()
    assert cfg.camera.kind == "stub"
    assert cfg.classifier.kind == "mock"
    assert cfg.classifier.model_id == "leaf-classification-xbz6a"
    assert cfg.jpeg_quality == pytest.approx(0.9)


def test_file_and_environment_are_merged(tmp_path, monkeypatch) -> None:
    path = tmp_path / "leafscan.json"
    path.write_text(
        json.dumps(
            {
                "camera": {"kind": "opencv", "source": "1", "facing_sources": {"user": "0"}},
                "classifier": {"kind": "roboflow", "api_key_env": "TEST_LEAF_KEY"},
                "jpeg_quality": 0.8,
                "unknown": True,
            }
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("TEST_LEAF_KEY", " secret ")
    monkeypatch.setenv("LEAFSCAN_MODEL_VERSION", "7")
    monkeypatch.delenv("LEAFSCAN_CAMERA", raising=False)
    monkeypatch.delenv("LEAFSCAN_CLASSIFIER", raising=False)

    cfg = load_config(path)

    assert cfg.camera.kind == "opencv"
    assert cfg.camera.facing_sources == {"user": "0"}
    assert cfg.classifier.api_key() == "secret"
    assert cfg.classifier.version == "7"
    assert cfg.jpeg_quality == pytest.approx(0.8)


def test_non_object_file_is_rejected(tmp_path) -> None:
    path = tmp_path / "bad.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)
