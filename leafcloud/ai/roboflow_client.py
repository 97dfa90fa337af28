from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any

import requests

from leafcam.errors import NetworkError
from leafcam.models import EncodedImage

from .types import Prediction, clamp_confidence


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://detect.roboflow.com"
DEFAULT_MODEL_ID = "leaf-classification-xbz6a"
DEFAULT_MODEL_VERSION = "2"


@dataclass
class RoboflowClassifier:
    """Classify leaf images with a hosted Roboflow classification model.

    One POST per call, no retries. The body is the base64 text of the encoded
    image, declared as form data, which is what the hosted inference endpoint
    expects for inline uploads.
    """

    api_key: str
    model_id: str = DEFAULT_MODEL_ID
    version: str = DEFAULT_MODEL_VERSION
    base_url: str = DEFAULT_BASE_URL
    timeout: float | None = None
    session: requests.Session = field(default_factory=requests.Session, repr=False)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.model_id}/{self.version}"

    def classify(self, image: EncodedImage) -> dict[str, Prediction]:
        if not self.api_key:
            raise NetworkError("Roboflow API key is required to classify images")
        if image.is_empty:
            raise NetworkError("Refusing to classify an empty image payload")

        response_data = self._send_request(image)
        predictions = self._extract_predictions(response_data)
        logger.debug("Roboflow returned %d prediction(s)", len(predictions))
        return predictions

    def _send_request(self, image: EncodedImage) -> dict[str, Any]:
        body = base64.b64encode(image.data).decode("ascii")
        try:
            response = self.session.post(
                self.endpoint,
                params={"api_key": self.api_key},
                data=body,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.Timeout as exc:
            raise NetworkError("Timed out waiting for classification response") from exc
        except requests.RequestException as exc:
            raise NetworkError(f"Failed to reach classification service: {exc}") from exc

        # requests.JSONDecodeError is both a RequestException and a ValueError.
        try:
            return response.json()
        except ValueError as exc:
            raise NetworkError("Classification service returned invalid JSON") from exc

    def _extract_predictions(self, data: Any) -> dict[str, Prediction]:
        if not isinstance(data, dict):
            raise NetworkError("Unexpected response format from classification service")
        raw = data.get("predictions")
        if raw is None:
            raise NetworkError("Classification response did not include predictions")

        predictions: dict[str, Prediction] = {}
        if isinstance(raw, dict):
            for label, details in raw.items():
                predictions[str(label)] = self._build(str(label), details)
        elif isinstance(raw, list):
            # Single-label models answer with a ranked list instead of a map.
            for item in raw:
                if not isinstance(item, dict) or "class" not in item:
                    continue
                label = str(item["class"])
                predictions.setdefault(label, self._build(label, item))
        else:
            raise NetworkError("Unexpected predictions format from classification service")
        return predictions

    def _build(self, label: str, details: Any) -> Prediction:
        value = details.get("confidence") if isinstance(details, dict) else details
        return Prediction(label=label, confidence=clamp_confidence(value))


__all__ = [
    "RoboflowClassifier",
    "DEFAULT_BASE_URL",
    "DEFAULT_MODEL_ID",
    "DEFAULT_MODEL_VERSION",
]
