from typing import Annotated, Dict, List, Literal, Optional, Tuple, Union

from pydantic import ConfigDict, Field, field_validator

from .base import FrozenModel

Probability = Annotated[float, Field(ge=0.0, le=1.0)]

Decision = Literal["approved", "pending_review", "blocked"]
ContentCategory = Literal["normal", "money_request"]
MoneyRequestSubcategory = Literal["crowdfunding", "personal", "charity", "pix_request"]

IMAGE_CATEGORIES: Tuple[str, ...] = ("nudity", "weapon", "alcohol", "drugs", "gore", "offensive")
TEXT_CATEGORIES: Tuple[str, ...] = (
    "toxicity",
    "severe_toxicity",
    "insult",
    "threat",
    "identity_attack",
    "profanity",
)

# Score used when a safety signal cannot be computed. It sits above the default
# review threshold so an unknown signal always lands in the review queue.
SENTINEL_SCORE = 0.35


class ModerationInput(FrozenModel):
    """Content submitted for moderation."""

    title: str = ""
    body: str = ""
    images: Tuple[str, ...] = ()


class ImageCategoryScores(FrozenModel):
    """Visual-risk probabilities for one image (or the worst of several)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    nudity: Probability = 0.0
    weapon: Probability = 0.0
    alcohol: Probability = 0.0
    drugs: Probability = 0.0
    gore: Probability = 0.0
    offensive: Probability = 0.0


class TextCategoryScores(FrozenModel):
    """Text-risk probabilities for the combined title and body."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    toxicity: Probability = 0.0
    severe_toxicity: Probability = 0.0
    insult: Probability = 0.0
    threat: Probability = 0.0
    identity_attack: Probability = 0.0
    profanity: Probability = 0.0


CategoryScores = Union[ImageCategoryScores, TextCategoryScores]


class SignalResult(FrozenModel):
    """Outcome of one safety signal (image or text)."""

    safe: bool
    score: Probability = 0.0
    categories: CategoryScores
    blocked_reasons: List[str] = Field(default_factory=list)
    skipped: bool = False
    skip_reason: Optional[str] = None


class ClassificationResult(FrozenModel):
    """Semantic label for the content, independent of its safety."""

    category: ContentCategory = "normal"
    confidence: Probability = 0.0
    subcategory: Optional[MoneyRequestSubcategory] = None
    details: Optional[str] = None


class ModerationDecision(FrozenModel):
    """Final verdict returned to the caller.

    ``toxicity_result`` and ``classification_result`` are only None when
    moderation is disabled and no analysis ran.
    """

    decision: Decision
    overall_score: Probability = 0.0
    content_category: ContentCategory = "normal"
    image_result: Optional[SignalResult] = None
    toxicity_result: Optional[SignalResult] = None
    classification_result: Optional[ClassificationResult] = None
    blocked_reasons: List[str] = Field(default_factory=list)
    review_reasons: Optional[List[str]] = None
    processing_time_ms: int = 0

    @field_validator("blocked_reasons")
    @classmethod
    def _dedupe_reasons(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(v))


def zero_scores(kind: str) -> CategoryScores:
    if kind == "image":
        return ImageCategoryScores()
    return TextCategoryScores()


def skipped_signal(kind: str, reason: str) -> SignalResult:
    """Fail-closed stand-in for a safety signal that could not be computed."""
    return SignalResult(
        safe=False,
        score=SENTINEL_SCORE,
        categories=zero_scores(kind),
        blocked_reasons=[],
        skipped=True,
        skip_reason=reason,
    )


def category_reasons(scores: Dict[str, float], thresholds: Dict[str, float], labels: Dict[str, str]) -> List[str]:
    """Labels of every category at or above its own threshold, in category order."""
    return [labels[name] for name, value in scores.items() if value >= thresholds[name]]
