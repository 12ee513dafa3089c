from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import httpx

from ..config import get_settings
from ..core.http import provider_client
from ..models.moderation import ClassificationResult
from .scrubber import strip_markup, truncate

logger = logging.getLogger(__name__)

MAX_BODY_CHARS = 2000
MIN_TEXT_CHARS = 20
PLACEHOLDER_KEYS = {"your-gemini-api-key"}
SUBCATEGORIES = {"crowdfunding", "personal", "charity", "pix_request"}

# Unusable classifier output never blocks or forces review.
NEUTRAL_CLASSIFICATION = ClassificationResult(category="normal", confidence=0.5)

MONEY_REQUEST_INDICATORS = (
    "pix",
    "chave pix",
    "me ajude",
    "me ajudem",
    "ajuda financeira",
    "preciso de ajuda",
    "vaquinha",
    "vakinha",
    "crowdfunding",
    "doação",
    "doações",
    "doar",
    "qualquer valor ajuda",
    "qualquer quantia",
    "conta bancária",
    "transferência",
    "cpf:",
    "cnpj:",
    "banco:",
    "agência:",
)

CLASSIFIER_PROMPT = """
You are a content classifier for a Brazilian community platform.
Decide whether the post below is a REQUEST FOR MONEY or DONATIONS.

TITLE: {title}
CONTENT: {body}

Classify as "money_request" when the post:
- asks for PIX, bank transfers or money directly
- is a "vaquinha" or any crowdfunding campaign
- asks for donations for personal causes (medical treatment, bills, etc.)
- asks for donations to institutions or NGOs
- shares a PIX key or bank account details
- uses phrases like "me ajudem", "preciso de ajuda financeira", "qualquer valor ajuda"

Classify as "normal" when the post:
- is ordinary community interaction
- sells a legitimate product or service (not a donation request)
- shares content without asking for money
- is a question or a regular discussion

Return ONLY one JSON object with:
- category: "normal" or "money_request"
- confidence: float from 0.0 to 1.0
- subcategory: one of [crowdfunding, personal, charity, pix_request] (only for money_request)
- details: short explanation
No markdown, no extra text.
"""


def has_money_request_indicators(text: str) -> bool:
    lowered = (text or "").lower()
    return any(indicator in lowered for indicator in MONEY_REQUEST_INDICATORS)


def quick_money_check(title: str, body: str) -> bool:
    """Network-free pre-filter for obvious money solicitation phrases."""
    return has_money_request_indicators(f"{title or ''} {body or ''}")


def build_prompt(title: str, body: str) -> str:
    return CLASSIFIER_PROMPT.format(
        title=title or "",
        body=truncate(strip_markup(body), MAX_BODY_CHARS),
    )


def _extract_json(text: str) -> Optional[str]:
    """Return the first balanced {...} block, ignoring braces inside strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from here; try the next opening brace
        start = text.find("{", start + 1)
    return None


@dataclass(frozen=True)
class ParseFailure:
    reason: str
    raw: str = ""


def _confidence(value: Any) -> float:
    try:
        conf = float(value or 0.5)
    except (TypeError, ValueError):
        conf = 0.5
    return max(0.0, min(1.0, conf))


def parse_classification(text: str) -> Union[ClassificationResult, ParseFailure]:
    """Parse free-form classifier output. Never applies a default itself."""
    raw = text or ""
    block = _extract_json(raw)
    if block is None:
        return ParseFailure("no JSON object in response", raw[:300])
    try:
        js = json.loads(block)
    except json.JSONDecodeError as e:
        return ParseFailure(f"json decode error: {e}", raw[:300])
    if not isinstance(js, dict):
        return ParseFailure("JSON payload is not an object", raw[:300])

    category = "money_request" if js.get("category") == "money_request" else "normal"
    subcategory = js.get("subcategory")
    if category != "money_request" or subcategory not in SUBCATEGORIES:
        subcategory = None
    details = js.get("details")
    return ClassificationResult(
        category=category,
        confidence=_confidence(js.get("confidence")),
        subcategory=subcategory,
        details=str(details) if details is not None else None,
    )


def _response_text(data: Dict[str, Any]) -> str:
    candidates = data.get("candidates") or []
    if not candidates or not isinstance(candidates[0], dict):
        return ""
    parts = ((candidates[0].get("content") or {}).get("parts")) or []
    if not parts or not isinstance(parts[0], dict):
        return ""
    return parts[0].get("text") or ""


async def classify(
    title: str,
    body: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> ClassificationResult:
    """Label content as ``normal`` or ``money_request``.

    Fails open: missing credentials, provider errors and unparseable replies all
    yield ``NEUTRAL_CLASSIFICATION``.
    """
    settings = get_settings()
    api_key = (settings.GEMINI_API_KEY or "").strip()
    if not api_key or api_key in PLACEHOLDER_KEYS:
        logger.warning("Gemini not configured; skipping content classification")
        return NEUTRAL_CLASSIFICATION

    full_text = f"{title or ''}\n{strip_markup(body)}".strip()
    if len(full_text) < MIN_TEXT_CHARS:
        return ClassificationResult(category="normal", confidence=1.0)

    payload = {
        "contents": [{"parts": [{"text": build_prompt(title, body)}]}],
        "generationConfig": {
            "temperature": 0.1,
            "maxOutputTokens": 300,
        },
    }
    try:
        async with provider_client(client) as http:
            resp = await http.post(
                f"{settings.GEMINI_API_URL}/{settings.GEMINI_MODEL}:generateContent",
                params={"key": api_key},
                json=payload,
            )
        if not resp.is_success:
            raise RuntimeError(f"Gemini API error: {resp.status_code}")
        data = resp.json()
        if not isinstance(data, dict):
            raise RuntimeError("Gemini returned a non-object payload")
    except Exception as e:
        logger.warning("Content classification failed: %s", e)
        return NEUTRAL_CLASSIFICATION

    parsed = parse_classification(_response_text(data))
    if isinstance(parsed, ParseFailure):
        logger.debug("Unparseable classifier reply (%s): %r", parsed.reason, parsed.raw)
        return NEUTRAL_CLASSIFICATION
    return parsed
