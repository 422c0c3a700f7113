"""
Verification namespace: image reference -> authenticity verdict.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
import random
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from ..core.models import IncidentContext, ProviderOutcome, ProviderSuccess, ResolutionRequest
from .gemini import GeminiClient

logger = logging.getLogger(__name__)

VERIFICATION_PROMPT = """Analyze this image at {image_url} for authenticity and disaster context.
The image is claimed to be related to a {tags} disaster in {location}.

Please assess:
1. Signs of digital manipulation or editing
2. Whether the image content matches the claimed disaster type
3. Consistency of lighting, shadows, and image quality
4. Any obvious signs of the image being staged or fake

Respond with a JSON object containing:
- authenticity_score (0-100, where 100 is completely authentic)
- manipulation_detected (boolean)
- context_match (boolean - does the image match the disaster type)
- analysis_summary (brief explanation)
- confidence_level (low/medium/high)"""

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

LOW_TRUST_MARKERS = ("fake", "staged", "stock", "shutterstock")


@dataclass(frozen=True)
class VerificationThresholds:
    """Score boundaries: above `verified` is verified, above `suspicious` is suspicious."""

    verified: float = 70.0
    suspicious: float = 40.0

    def __post_init__(self) -> None:
        if self.suspicious >= self.verified:
            raise ValueError("suspicious threshold must be below verified threshold")

    def status_for(self, score: float) -> str:
        if score > self.verified:
            return "verified"
        if score > self.suspicious:
            return "suspicious"
        return "fake"


def parse_verdict(text: str) -> dict[str, Any]:
    """
    Structured verdict from a verifier reply.

    Uses the first-to-last brace span when it parses as a JSON object with a
    finite authenticity_score in [0, 100]; otherwise derives the verdict from
    words in the text.
    """
    match = _JSON_OBJECT.search(text)
    if match:
        try:
            analysis = json.loads(match.group(0))
        except json.JSONDecodeError:
            analysis = None
        if isinstance(analysis, dict) and "authenticity_score" in analysis:
            try:
                score = float(analysis["authenticity_score"])
            except (TypeError, ValueError):
                score = None
            if score is not None and math.isfinite(score) and 0.0 <= score <= 100.0:
                return {
                    "authenticity_score": score,
                    "manipulation_detected": bool(analysis.get("manipulation_detected", False)),
                    "context_match": bool(analysis.get("context_match", True)),
                    "analysis_summary": str(analysis.get("analysis_summary", "")),
                    "confidence_level": str(analysis.get("confidence_level", "medium")),
                }

    lowered = text.lower()
    return {
        "authenticity_score": 30.0 if "fake" in lowered else 80.0,
        "manipulation_detected": "manipulated" in lowered or "edited" in lowered,
        "context_match": "unrelated" not in lowered,
        "analysis_summary": text[:200],
        "confidence_level": "medium",
    }


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class GeminiVerificationProvider:
    """Asks Gemini to judge an image against the incident it is attached to."""

    name = "gemini"

    def __init__(self, gemini: GeminiClient, thresholds: VerificationThresholds | None = None):
        self._gemini = gemini
        self._thresholds = thresholds or VerificationThresholds()

    @staticmethod
    def build_prompt(image_url: str, context: IncidentContext) -> str:
        return VERIFICATION_PROMPT.format(
            image_url=image_url,
            tags=", ".join(context.tags) or "unspecified",
            location=context.location_name or "an unspecified location",
        )

    async def attempt(self, request: ResolutionRequest) -> ProviderOutcome:
        reply = await self._gemini.generate(self.build_prompt(request.payload, request.context))
        verdict = parse_verdict(reply)
        score = verdict["authenticity_score"]
        return ProviderSuccess(
            value={
                "status": self._thresholds.status_for(score),
                **verdict,
                "verification_method": "gemini_api",
                "timestamp": _now_iso(),
            }
        )


class MockVerificationFallback:
    """
    URL heuristics. Never fails.

    Without simulation mode the baseline score is derived from a hash of the
    image reference, so the same image always gets the same verdict.
    """

    name = "mock_analysis"

    def __init__(self, simulation_mode: bool = False, rng: random.Random | None = None):
        self._simulation_mode = simulation_mode
        self._rng = rng or random.Random()

    def baseline_score(self, image_url: str) -> int:
        """Score in [60, 100)."""
        if self._simulation_mode:
            return self._rng.randrange(60, 100)
        digest = hashlib.sha256(image_url.encode("utf-8")).digest()
        return 60 + int.from_bytes(digest[:4], "big") % 40

    def produce(self, request: ResolutionRequest, reason: str) -> dict[str, Any]:
        image_url = request.payload
        low_trust = any(marker in image_url.lower() for marker in LOW_TRUST_MARKERS)

        if low_trust:
            status, score = "suspicious", 25
            summary = "Image shows signs of being staged or stock photography"
        else:
            score = self.baseline_score(image_url)
            status = "verified" if score > 80 else "pending"
            summary = "Image appears authentic with no obvious signs of manipulation"

        return {
            "status": status,
            "authenticity_score": score,
            "manipulation_detected": low_trust,
            "context_match": True,
            "analysis_summary": summary,
            "confidence_level": "medium",
            "verification_method": "mock_analysis",
            "timestamp": _now_iso(),
        }
