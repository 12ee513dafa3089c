from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, List, Mapping, Optional, TypeVar, Union

import httpx
from pydantic import ValidationError

from ..core.http import provider_client
from ..models.moderation import (
    ClassificationResult,
    ModerationDecision,
    ModerationInput,
    SignalResult,
    skipped_signal,
)
from ..policies.policy import DEFAULT_POLICY, PolicyConfig, PolicyOverride, resolve_policy
from ..safety.image import analyze_images
from ..safety.toxicity import analyze_text
from .classify import NEUTRAL_CLASSIFICATION, classify

logger = logging.getLogger(__name__)

T = TypeVar("T")

IMAGE_REVIEW_REASON = "image requires manual review"
TEXT_REVIEW_REASON = "text may contain inappropriate content"
GENERIC_REVIEW_REASON = "content requires manual review"

PolicyInput = Union[PolicyConfig, PolicyOverride, Mapping[str, Any], None]


async def _guarded(branch: str, work: Awaitable[T], fallback: T) -> T:
    # Analyzers already convert provider failures; anything reaching here is a bug.
    try:
        return await work
    except Exception:
        logger.exception("Moderation branch %s failed; using fallback", branch)
        return fallback


async def _no_images() -> None:
    return None


def fuse_signals(
    image: Optional[SignalResult],
    toxicity: SignalResult,
    classification: ClassificationResult,
    config: PolicyConfig,
) -> ModerationDecision:
    """Combine the three signals into a decision. Pure; timing is added by the caller."""
    image_score = image.score if image is not None else 0.0
    overall = max(image_score, toxicity.score)

    blocked: List[str] = []
    review: List[str] = []

    if image is not None:
        if image.score >= config.image_block_threshold:
            blocked.extend(image.blocked_reasons)
        elif image.score >= config.review_threshold:
            review.append(IMAGE_REVIEW_REASON)

    if toxicity.score >= config.text_block_threshold:
        blocked.extend(toxicity.blocked_reasons)
    elif toxicity.score >= config.review_threshold:
        review.append(TEXT_REVIEW_REASON)

    blocked = list(dict.fromkeys(blocked))
    if overall >= config.review_threshold and not review and not blocked:
        review.append(GENERIC_REVIEW_REASON)

    if blocked:
        decision = "blocked"
    elif review or overall >= config.review_threshold:
        decision = "pending_review"
    else:
        decision = "approved"

    return ModerationDecision(
        decision=decision,
        overall_score=overall,
        content_category=classification.category,
        image_result=image,
        toxicity_result=toxicity,
        classification_result=classification,
        blocked_reasons=blocked,
        review_reasons=review or None,
    )


class Orchestrator:
    """Runs the three analyses for one submission and fuses them.

    Single pass per request: analyze everything concurrently, wait for every
    branch, decide. There is no retry at this layer.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.client = client

    async def run(self, inp: ModerationInput, config_override: PolicyInput = None) -> ModerationDecision:
        started = time.perf_counter()
        try:
            config = resolve_policy(config_override)
        except ValidationError as e:
            logger.warning("Invalid policy override; using defaults: %s", e)
            config = DEFAULT_POLICY

        if not config.enabled:
            return ModerationDecision(
                decision="approved",
                overall_score=0.0,
                content_category="normal",
                processing_time_ms=_elapsed_ms(started),
            )

        async with provider_client(self.client) as http:
            image_work = (
                analyze_images(inp.images, config.image_category_thresholds, client=http)
                if inp.images
                else _no_images()
            )
            image, toxicity, classification = await asyncio.gather(
                _guarded(
                    "image",
                    image_work,
                    skipped_signal("image", "Image analysis failed unexpectedly") if inp.images else None,
                ),
                _guarded(
                    "toxicity",
                    analyze_text(inp.title, inp.body, config.text_category_thresholds, client=http),
                    skipped_signal("text", "Toxicity analysis failed unexpectedly"),
                ),
                _guarded(
                    "classification",
                    classify(inp.title, inp.body, client=http),
                    NEUTRAL_CLASSIFICATION,
                ),
            )

        result = fuse_signals(image, toxicity, classification, config)
        result = result.model_copy(update={"processing_time_ms": _elapsed_ms(started)})
        logger.info(
            "moderation_decision",
            extra={
                "decision": result.decision,
                "overall_score": result.overall_score,
                "content_category": result.content_category,
                "images": len(inp.images),
                "image_skipped": bool(image and image.skipped),
                "toxicity_skipped": toxicity.skipped,
                "ms": result.processing_time_ms,
            },
        )
        return result


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


async def moderate(
    inp: ModerationInput,
    config_override: PolicyInput = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> ModerationDecision:
    return await Orchestrator(client=client).run(inp, config_override)


async def moderate_text_only(
    text: str,
    config_override: PolicyInput = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> ModerationDecision:
    """Moderate a bare piece of text, e.g. a comment."""
    return await moderate(ModerationInput(title="", body=text), config_override, client=client)


async def moderate_image_only(
    ref: str,
    config_override: PolicyInput = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> ModerationDecision:
    return await moderate(ModerationInput(title="", body="", images=[ref]), config_override, client=client)


def blocked_message(blocked_reasons: List[str]) -> str:
    """User-facing explanation for a blocked submission."""
    if not blocked_reasons:
        return "Your post was blocked for violating our community guidelines."
    reasons = ", ".join(blocked_reasons).lower()
    return f"Your post was blocked because we detected: {reasons}. Please review the content and try again."


def pending_review_message() -> str:
    return "Your post was sent for review and will be published once a moderator approves it."
