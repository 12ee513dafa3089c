from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ValidationError

from ....models.moderation import ModerationDecision, ModerationInput
from ....orchestration.classify import quick_money_check
from ....orchestration.moderator import moderate
from ....policies.policy import PolicyOverride, resolve_policy

router = APIRouter(prefix="/moderation", tags=["moderation"])


class ModerationRequest(BaseModel):
    input: ModerationInput
    config: Optional[PolicyOverride] = None


class QuickMoneyCheckRequest(BaseModel):
    title: str = ""
    body: str = ""


class QuickMoneyCheckResponse(BaseModel):
    money_request_indicators: bool


@router.post("", response_model=ModerationDecision)
async def moderate_content(request: ModerationRequest):
    """
    Moderate one submission and return the fused verdict.

    Provider outages never surface as errors here; they show up as skipped
    signals and a pending_review decision.
    """
    try:
        config = resolve_policy(request.config)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return await moderate(request.input, config)


@router.post("/quick-money-check", response_model=QuickMoneyCheckResponse)
async def money_check(request: QuickMoneyCheckRequest):
    return {"money_request_indicators": quick_money_check(request.title, request.body)}
