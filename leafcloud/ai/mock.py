from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from leafcam.errors import NetworkError
from leafcam.models import EncodedImage

from .types import Prediction, clamp_confidence


DEFAULT_SCORES: Dict[str, float] = {"healthy": 0.42, "blighted": 0.81}


@dataclass
class MockClassifier:
    """Offline classifier that answers every request with a fixed score map."""

    scores: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_SCORES))
    fail: bool = False
    requests: List[EncodedImage] = field(default_factory=list)

    def classify(self, image: EncodedImage) -> dict[str, Prediction]:
        self.requests.append(image)
        if image.is_empty:
            raise NetworkError("Refusing to classify an empty image payload")
        if self.fail:
            raise NetworkError("Mock classifier configured to fail")
        return {
            label: Prediction(label=label, confidence=clamp_confidence(score))
            for label, score in self.scores.items()
        }


__all__ = ["MockClassifier", "DEFAULT_SCORES"]
