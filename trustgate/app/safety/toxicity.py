"""Text toxicity scoring backed by the Perspective comment analyzer."""
import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from ..config import get_settings
from ..core.http import provider_client
from ..models.moderation import (
    TEXT_CATEGORIES,
    SignalResult,
    TextCategoryScores,
    category_reasons,
    skipped_signal,
)
from ..orchestration.scrubber import strip_markup, truncate

logger = logging.getLogger(__name__)

MAX_TEXT_CHARS = 3000
MIN_TEXT_CHARS = 3

TEXT_LABELS: Dict[str, str] = {
    "toxicity": "Toxic content",
    "severe_toxicity": "Severely toxic content",
    "insult": "Insults or offensive remarks",
    "threat": "Threats of violence",
    "identity_attack": "Attacks on groups or identities",
    "profanity": "Profanity or swearing",
}

DEFAULT_TEXT_THRESHOLDS: Dict[str, float] = {
    "toxicity": 0.7,
    "severe_toxicity": 0.5,
    "insult": 0.7,
    "threat": 0.5,
    "identity_attack": 0.6,
    "profanity": 0.9,
}


def combined_text(title: str, body: str) -> str:
    return truncate(strip_markup(f"{title or ''}\n\n{body or ''}"), MAX_TEXT_CHARS)


def build_request(text: str, language: str) -> Dict[str, Any]:
    return {
        "comment": {"text": text},
        "languages": [language],
        "requestedAttributes": {name.upper(): {} for name in TEXT_CATEGORIES},
    }


def score_toxicity_payload(data: Mapping[str, Any], thresholds: Optional[Mapping[str, float]] = None) -> SignalResult:
    attributes = data.get("attributeScores") or {}
    values = {}
    for name in TEXT_CATEGORIES:
        summary = (attributes.get(name.upper()) or {}).get("summaryScore") or {}
        values[name] = float(summary.get("value") or 0.0)
    merged = dict(DEFAULT_TEXT_THRESHOLDS)
    merged.update(thresholds or {})
    reasons = category_reasons(values, merged, TEXT_LABELS)
    return SignalResult(
        safe=not reasons,
        score=max(values.values()),
        categories=TextCategoryScores(**values),
        blocked_reasons=reasons,
    )


async def analyze_text(
    title: str,
    body: str,
    thresholds: Optional[Mapping[str, float]] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> SignalResult:
    settings = get_settings()
    api_key = (settings.PERSPECTIVE_API_KEY or "").strip()
    if not api_key:
        logger.warning("Perspective not configured; sending text to manual review")
        return skipped_signal("text", "Toxicity provider not configured")

    text = combined_text(title, body)
    if len(text) < MIN_TEXT_CHARS:
        return SignalResult(safe=True, score=0.0, categories=TextCategoryScores())

    try:
        async with provider_client(client) as http:
            resp = await http.post(
                settings.PERSPECTIVE_API_URL,
                params={"key": api_key},
                json=build_request(text, settings.PERSPECTIVE_LANGUAGE),
            )
        if not resp.is_success:
            raise RuntimeError(f"Perspective API error: {resp.status_code} - {resp.text[:300]}")
        data = resp.json()
        if not isinstance(data, dict):
            raise RuntimeError("Perspective returned a non-object payload")
        err = data.get("error")
        if err:
            message = err.get("message") if isinstance(err, dict) else err
            raise RuntimeError(f"Perspective error: {message}")
        return score_toxicity_payload(data, thresholds)
    except Exception as e:
        logger.warning("Toxicity analysis failed: %s", e)
        return skipped_signal("text", f"Toxicity provider error: {e}")
