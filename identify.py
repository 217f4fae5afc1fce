# identify.py — leaf / species classification via the Gemini REST API
# -----------------------------------------------------------------------------
# Sends the raw encoded image plus a plain-language instruction and asks for
# JSON that follows RESPONSE_SCHEMA. The result only decides whether the
# analysis views are worth showing; it never changes how they are computed.
#
# Environment:
#   GEMINI_API_KEY (or API_KEY)   required for classify()
#   LEAFVIEWS_MODEL               default gemini-2.5-flash
#   LEAFVIEWS_TIMEOUT             seconds, default 30
# -----------------------------------------------------------------------------

from __future__ import annotations

import base64
import json
import logging
import math
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

__all__ = [
    "ClassificationError",
    "ClassifierConfig",
    "LeafAnalysisResult",
    "LeafClassifier",
    "should_show_views",
    "NOT_A_LEAF_MESSAGE",
]

log = logging.getLogger("leafviews.identify")

API_ROOT = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.5-flash"
TEMPERATURE = 0.4

PROMPT = (
    "Analyze this image. Determine if it is a biological leaf. "
    "If it is, identify the species. Provide the output in JSON format."
)

NOT_A_LEAF_MESSAGE = (
    "We couldn't identify a leaf in this image. "
    "Please try uploading a clear photo of a single leaf."
)

RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "isLeaf": {
            "type": "BOOLEAN",
            "description": "Whether the image contains a leaf or plant foliage.",
        },
        "species": {
            "type": "STRING",
            "description": "The common name of the species if it is a leaf. Null otherwise.",
            "nullable": True,
        },
        "scientificName": {
            "type": "STRING",
            "description": "The scientific (Latin) name of the species. Null otherwise.",
            "nullable": True,
        },
        "confidence": {
            "type": "NUMBER",
            "description": "Confidence score between 0 and 1.",
        },
        "description": {
            "type": "STRING",
            "description": "A short, interesting botanical description of the leaf features. Null if not a leaf.",
            "nullable": True,
        },
        "reason": {
            "type": "STRING",
            "description": "If not a leaf, explain what was detected instead.",
            "nullable": True,
        },
    },
    "required": ["isLeaf", "confidence"],
}


class ClassificationError(RuntimeError):
    """The classifier could not be reached or returned something unusable."""


# =============== Config ===============
@dataclass(frozen=True)
class ClassifierConfig:
    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    timeout: float = 30.0
    api_root: str = API_ROOT

    @classmethod
    def from_env(cls) -> "ClassifierConfig":
        return cls(
            api_key=os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY"),
            model=os.getenv("LEAFVIEWS_MODEL", DEFAULT_MODEL),
            timeout=float(os.getenv("LEAFVIEWS_TIMEOUT", "30")),
        )


# =============== Result ===============
@dataclass(frozen=True)
class LeafAnalysisResult:
    is_leaf: bool
    confidence: float = 0.0
    species: Optional[str] = None
    scientific_name: Optional[str] = None
    description: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LeafAnalysisResult":
        if not isinstance(data, dict) or "isLeaf" not in data:
            raise ClassificationError(f"Classifier response is missing 'isLeaf': {data!r}")
        try:
            confidence = float(data.get("confidence") or 0.0)
        except (TypeError, ValueError) as e:
            raise ClassificationError(f"Bad confidence value: {data.get('confidence')!r}") from e
        return cls(
            is_leaf=bool(data["isLeaf"]),
            confidence=min(1.0, max(0.0, confidence)),
            species=data.get("species"),
            scientific_name=data.get("scientificName"),
            description=data.get("description"),
            reason=data.get("reason"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"isLeaf": self.is_leaf, "confidence": self.confidence}
        for key, value in (
            ("species", self.species),
            ("scientificName", self.scientific_name),
            ("description", self.description),
            ("reason", self.reason),
        ):
            if value is not None:
                out[key] = value
        return out

    @property
    def confidence_percent(self) -> int:
        # half-way percentages round up
        return int(math.floor(self.confidence * 100 + 0.5))


def should_show_views(result: LeafAnalysisResult) -> bool:
    return result.is_leaf


# =============== Client ===============
class LeafClassifier:
    """Thin requests-based client for generateContent with a JSON schema."""

    def __init__(self, config: Optional[ClassifierConfig] = None, session: Optional[requests.Session] = None) -> None:
        self.config = config or ClassifierConfig.from_env()
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": "leafviews/1.0", "Content-Type": "application/json"})

    def _payload(self, image_bytes: bytes, mime_type: str) -> Dict[str, Any]:
        return {
            "contents": [{
                "parts": [
                    {"inlineData": {"mimeType": mime_type, "data": base64.b64encode(image_bytes).decode("ascii")}},
                    {"text": PROMPT},
                ],
            }],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
                "temperature": TEMPERATURE,
            },
        }

    @staticmethod
    def _response_text(body: Dict[str, Any]) -> str:
        try:
            parts = body["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            parts = []
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        if not text.strip():
            raise ClassificationError("No response from classifier")
        return text

    def classify(self, image_bytes: bytes, mime_type: str) -> LeafAnalysisResult:
        if not self.config.api_key:
            raise ClassificationError("No API key: set GEMINI_API_KEY (or API_KEY)")
        url = f"{self.config.api_root}/models/{self.config.model}:generateContent"
        log.info("Classifying %d bytes (%s) with %s", len(image_bytes), mime_type, self.config.model)
        try:
            r = self._session.post(
                url,
                json=self._payload(image_bytes, mime_type),
                headers={"x-goog-api-key": self.config.api_key},
                timeout=self.config.timeout,
            )
            r.raise_for_status()
            body = r.json()
        except requests.RequestException as e:
            log.error("Error analyzing leaf: %s", e)
            raise ClassificationError(f"Classifier request failed: {e}") from e
        except ValueError as e:
            raise ClassificationError(f"Classifier returned non-JSON body: {e}") from e

        text = self._response_text(body)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ClassificationError(f"Classifier returned malformed JSON: {e}") from e
        result = LeafAnalysisResult.from_dict(data)
        log.debug("Classifier result: %s", result)
        return result
