from types import MappingProxyType
from typing import Annotated, Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from ..models.moderation import IMAGE_CATEGORIES, TEXT_CATEGORIES

Threshold = Annotated[float, Field(ge=0.0, le=1.0)]


def _check_categories(v: Mapping[str, float], known: tuple) -> Mapping[str, float]:
    unknown = sorted(set(v) - set(known))
    if unknown:
        raise ValueError(f"unknown categories: {', '.join(unknown)}")
    for name, value in v.items():
        if not (0.0 <= float(value) <= 1.0):
            raise ValueError(f"threshold for {name} out of range: {value}")
    return MappingProxyType({k: float(x) for k, x in v.items()})


class PolicyConfig(BaseModel):
    """Thresholds that map fused signal scores onto decision tiers.

    Instances are immutable; use ``with_overrides`` or ``resolve_policy`` to
    derive a new one.
    """

    enabled: bool = True
    image_block_threshold: Threshold = 0.7
    text_block_threshold: Threshold = 0.7
    review_threshold: Threshold = 0.3
    # Partial per-category overrides; analyzers fall back to their own defaults.
    # Stored read-only so a shared config cannot be edited in place.
    image_category_thresholds: Mapping[str, float] = Field(default_factory=dict, validate_default=True)
    text_category_thresholds: Mapping[str, float] = Field(default_factory=dict, validate_default=True)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("image_category_thresholds")
    @classmethod
    def _image_categories(cls, v: Mapping[str, float]) -> Mapping[str, float]:
        return _check_categories(v, IMAGE_CATEGORIES)

    @field_validator("text_category_thresholds")
    @classmethod
    def _text_categories(cls, v: Mapping[str, float]) -> Mapping[str, float]:
        return _check_categories(v, TEXT_CATEGORIES)

    @field_serializer("image_category_thresholds", "text_category_thresholds")
    def _plain_thresholds(self, v: Mapping[str, float]) -> Dict[str, float]:
        return dict(v)

    def with_overrides(self, **overrides: Any) -> "PolicyConfig":
        """Return a new config where each non-None override shadows this one."""
        data = self.model_dump()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return PolicyConfig.model_validate(data)


class PolicyOverride(BaseModel):
    """Caller-supplied partial policy; unset fields keep their defaults."""

    enabled: Optional[bool] = None
    image_block_threshold: Optional[Threshold] = None
    text_block_threshold: Optional[Threshold] = None
    review_threshold: Optional[Threshold] = None
    image_category_thresholds: Optional[Dict[str, float]] = None
    text_category_thresholds: Optional[Dict[str, float]] = None

    model_config = ConfigDict(extra="forbid")


DEFAULT_POLICY = PolicyConfig()


def resolve_policy(
    override: Union[PolicyConfig, PolicyOverride, Mapping[str, Any], None] = None,
    defaults: PolicyConfig = DEFAULT_POLICY,
) -> PolicyConfig:
    """Merge an override onto the defaults without touching either."""
    if override is None:
        return defaults
    if isinstance(override, PolicyConfig):
        return override
    if isinstance(override, PolicyOverride):
        return defaults.with_overrides(**override.model_dump(exclude_none=True))
    return defaults.with_overrides(**dict(override))
