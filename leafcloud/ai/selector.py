from __future__ import annotations

import logging
from typing import Any, Mapping

from .types import LOW_CONFIDENCE_THRESHOLD, UNDEFINED_LABEL, Prediction


logger = logging.getLogger(__name__)


def _confidence_of(details: Any) -> float:
    if isinstance(details, Prediction):
        return details.confidence
    if isinstance(details, Mapping):
        return float(details.get("confidence", 0.0))
    return float(details)


def select_best(
    predictions: Mapping[str, Any],
    threshold: float = LOW_CONFIDENCE_THRESHOLD,
) -> Prediction:
    """Pick the label with the strictly highest confidence.

    Values may be :class:`Prediction` objects, ``{"confidence": x}`` records or
    bare floats. Ties keep the first label seen. When nothing reaches
    ``threshold`` the ``"undefined"`` label is returned with the best
    confidence found (0 for an empty map).
    """
    best_label: str | None = None
    highest = 0.0
    for label, details in predictions.items():
        confidence = _confidence_of(details)
        if confidence > highest:
            highest = confidence
            best_label = label

    if best_label is None or highest < threshold:
        logger.debug("No prediction above %.2f (best %.3f)", threshold, highest)
        return Prediction(label=UNDEFINED_LABEL, confidence=highest)
    return Prediction(label=best_label, confidence=highest)


__all__ = ["select_best"]
