from __future__ import annotations

from .selector import select_best
from .types import (
    ClassificationResult,
    Classifier,
    LOW_CONFIDENCE_THRESHOLD,
    Prediction,
    UNDEFINED_LABEL,
)

__all__ = [
    "ClassificationResult",
    "Classifier",
    "LOW_CONFIDENCE_THRESHOLD",
    "Prediction",
    "UNDEFINED_LABEL",
    "select_best",
    "MockClassifier",
    "RoboflowClassifier",
]


def __getattr__(name: str):
    if name == "MockClassifier":
        from .mock import MockClassifier

        return MockClassifier
    if name == "RoboflowClassifier":
        from .roboflow_client import RoboflowClassifier

        return RoboflowClassifier
    raise AttributeError(f"module 'leafcloud.ai' has no attribute {name!r}")
