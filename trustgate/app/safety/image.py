"""Image safety scoring backed by the Sightengine check API.

Every failure mode (missing credentials, transport errors, provider errors,
malformed payloads) returns the fail-closed sentinel signal instead of raising,
so an image that could not be checked is always routed to manual review.
"""
import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

from ..config import get_settings
from ..core.http import provider_client
from ..models.moderation import (
    IMAGE_CATEGORIES,
    ImageCategoryScores,
    SignalResult,
    category_reasons,
    skipped_signal,
)

logger = logging.getLogger(__name__)

DETECTOR_MODELS = "nudity-2.1,weapon,alcohol,recreational_drug,gore-2.0,offensive-2.0"

IMAGE_LABELS: Dict[str, str] = {
    "nudity": "Sexual content or nudity",
    "weapon": "Firearms or bladed weapons",
    "alcohol": "Alcoholic beverages",
    "drugs": "Drugs or illicit substances",
    "gore": "Graphic violence or blood",
    "offensive": "Hate or extremist symbols",
}

DEFAULT_IMAGE_THRESHOLDS: Dict[str, float] = {
    "nudity": 0.5,
    "weapon": 0.7,
    "alcohol": 0.9,  # incidental drinks in photos are common
    "drugs": 0.6,
    "gore": 0.5,
    "offensive": 0.5,
}

VERY_SUGGESTIVE_WEIGHT = 0.7
MIDDLE_FINGER_WEIGHT = 0.5


def _prob(value: Any) -> float:
    # Detectors answer either with a bare number or with {"prob": ...}
    if isinstance(value, dict):
        value = value.get("prob")
    return float(value or 0.0)


def nudity_score(nudity: Optional[Mapping[str, Any]]) -> float:
    if not nudity:
        return 0.0
    return max(
        _prob(nudity.get("sexual_activity")),
        _prob(nudity.get("sexual_display")),
        _prob(nudity.get("erotica")),
        _prob(nudity.get("very_suggestive")) * VERY_SUGGESTIVE_WEIGHT,
    )


def offensive_score(offensive: Optional[Mapping[str, Any]]) -> float:
    if not offensive:
        return 0.0
    return max(
        _prob(offensive.get("prob")),
        _prob(offensive.get("nazi")),
        _prob(offensive.get("confederate")),
        _prob(offensive.get("supremacist")),
        _prob(offensive.get("terrorist")),
        _prob(offensive.get("middle_finger")) * MIDDLE_FINGER_WEIGHT,
    )


def merged_thresholds(thresholds: Optional[Mapping[str, float]] = None) -> Dict[str, float]:
    merged = dict(DEFAULT_IMAGE_THRESHOLDS)
    merged.update(thresholds or {})
    return merged


def score_image_payload(data: Mapping[str, Any], thresholds: Optional[Mapping[str, float]] = None) -> SignalResult:
    """Turn a successful provider payload into a signal."""
    scores = ImageCategoryScores(
        nudity=nudity_score(data.get("nudity")),
        weapon=_prob(data.get("weapon")),
        alcohol=_prob(data.get("alcohol")),
        drugs=_prob(data.get("recreational_drug", data.get("drugs"))),
        gore=_prob(data.get("gore")),
        offensive=offensive_score(data.get("offensive")),
    )
    values = scores.model_dump()
    reasons = category_reasons(values, merged_thresholds(thresholds), IMAGE_LABELS)
    return SignalResult(
        safe=not reasons,
        score=max(values.values()),
        categories=scores,
        blocked_reasons=reasons,
    )


async def analyze_image(
    ref: str,
    thresholds: Optional[Mapping[str, float]] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> SignalResult:
    settings = get_settings()
    api_user = (settings.SIGHTENGINE_API_USER or "").strip()
    api_secret = (settings.SIGHTENGINE_API_SECRET or "").strip()
    if not api_user or not api_secret:
        logger.warning("Sightengine not configured; sending image to manual review")
        return skipped_signal("image", "Image safety provider not configured")

    try:
        async with provider_client(client) as http:
            resp = await http.get(
                settings.SIGHTENGINE_API_URL,
                params={
                    "url": ref,
                    "models": DETECTOR_MODELS,
                    "api_user": api_user,
                    "api_secret": api_secret,
                },
            )
        if not resp.is_success:
            raise RuntimeError(f"Sightengine API error: {resp.status_code}")
        data = resp.json()
        if not isinstance(data, dict):
            raise RuntimeError("Sightengine returned a non-object payload")
        err = data.get("error")
        if err or data.get("status") == "failure":
            message = err.get("message") if isinstance(err, dict) else err
            raise RuntimeError(f"Sightengine error: {message or 'unknown'}")
        return score_image_payload(data, thresholds)
    except Exception as e:
        logger.warning("Image analysis failed for %s: %s", ref, e)
        return skipped_signal("image", f"Image safety provider error: {e}")


def combine_image_results(results: Sequence[SignalResult]) -> SignalResult:
    """Worst image wins: per-category max, union of reasons, any skip taints the batch."""
    if not results:
        return SignalResult(safe=True, score=0.0, categories=ImageCategoryScores())
    combined = {
        name: max(getattr(r.categories, name) for r in results)
        for name in IMAGE_CATEGORIES
    }
    reasons: List[str] = list(dict.fromkeys(reason for r in results for reason in r.blocked_reasons))
    skip_reasons = [r.skip_reason for r in results if r.skipped]
    return SignalResult(
        safe=not reasons and not skip_reasons,
        score=max(r.score for r in results),
        categories=ImageCategoryScores(**combined),
        blocked_reasons=reasons,
        skipped=bool(skip_reasons),
        skip_reason=skip_reasons[0] if skip_reasons else None,
    )


async def analyze_images(
    refs: Sequence[str],
    thresholds: Optional[Mapping[str, float]] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> SignalResult:
    if not refs:
        return combine_image_results([])
    async with provider_client(client) as http:
        results = await asyncio.gather(*(analyze_image(ref, thresholds, client=http) for ref in refs))
    return combine_image_results(results)
