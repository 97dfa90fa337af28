from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Protocol

from leafcam.models import EncodedImage

# Confidence scores below this threshold are reported as "undefined".
LOW_CONFIDENCE_THRESHOLD: float = 0.6
UNDEFINED_LABEL = "undefined"


def clamp_confidence(value: object) -> float:
    try:
        score = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        score = 0.0
    if score != score:  # NaN
        score = 0.0
    return max(0.0, min(1.0, score))


@dataclass(frozen=True)
class Prediction:
    label: str
    confidence: float

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence!r}")


@dataclass(frozen=True)
class ClassificationResult:
    """Best guess for one request, plus the raw map it was chosen from."""

    prediction: Prediction
    predictions: Mapping[str, Prediction] = field(default_factory=dict)
    request_id: int = 0

    @property
    def label(self) -> str:
        return self.prediction.label

    @property
    def confidence(self) -> float:
        return self.prediction.confidence

    @property
    def is_undefined(self) -> bool:
        return self.prediction.label == UNDEFINED_LABEL


class Classifier(Protocol):
    def classify(self, image: EncodedImage) -> dict[str, Prediction]: ...


__all__ = [
    "Classifier",
    "ClassificationResult",
    "LOW_CONFIDENCE_THRESHOLD",
    "Prediction",
    "UNDEFINED_LABEL",
    "clamp_confidence",
]
