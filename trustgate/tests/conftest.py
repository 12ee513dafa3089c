import sys
from collections import Counter
from pathlib import Path
from typing import Any, Dict, Optional, Union

# Ensure repository root is on sys.path so 'import trustgate' works
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import httpx
import pytest

from trustgate.app.config import Settings

SIGHTENGINE_HOST = "api.sightengine.com"
PERSPECTIVE_HOST = "commentanalyzer.googleapis.com"
GEMINI_HOST = "generativelanguage.googleapis.com"

SETTINGS_USERS = (
    "trustgate.app.safety.image.get_settings",
    "trustgate.app.safety.toxicity.get_settings",
    "trustgate.app.orchestration.classify.get_settings",
    "trustgate.app.core.http.get_settings",
)


# Force pytest-anyio to use asyncio backend (avoid requiring 'trio')
@pytest.fixture
def anyio_backend():
    return "asyncio"


def sightengine_payload(**scores: float) -> Dict[str, Any]:
    """Provider-shaped image payload; unspecified detectors score 0."""
    return {
        "status": "success",
        "request": {"id": "req_1"},
        "nudity": {
            "sexual_activity": scores.get("sexual_activity", 0.0),
            "sexual_display": scores.get("sexual_display", 0.0),
            "erotica": scores.get("erotica", 0.0),
            "very_suggestive": scores.get("very_suggestive", 0.0),
            "suggestive": 0.0,
            "mildly_suggestive": 0.0,
            "none": 0.99,
        },
        "weapon": scores.get("weapon", 0.0),
        "alcohol": scores.get("alcohol", 0.0),
        "recreational_drug": {"prob": scores.get("drugs", 0.0)},
        "gore": {"prob": scores.get("gore", 0.0)},
        "offensive": {
            "prob": scores.get("offensive", 0.0),
            "nazi": scores.get("nazi", 0.0),
            "confederate": 0.0,
            "supremacist": 0.0,
            "terrorist": 0.0,
            "middle_finger": scores.get("middle_finger", 0.0),
        },
    }


def perspective_payload(default: float = 0.0, **scores: float) -> Dict[str, Any]:
    names = ("toxicity", "severe_toxicity", "insult", "threat", "identity_attack", "profanity")
    return {
        "attributeScores": {
            name.upper(): {"summaryScore": {"value": scores.get(name, default), "type": "PROBABILITY"}}
            for name in names
        },
        "languages": ["pt"],
    }


def gemini_payload(text: str) -> Dict[str, Any]:
    return {"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]}


class FakeProviders:
    """Routes provider requests to canned responses and counts them per host.

    A response is either a JSON-able dict or an int status code.
    """

    sightengine = staticmethod(sightengine_payload)
    perspective = staticmethod(perspective_payload)
    gemini = staticmethod(gemini_payload)

    def __init__(self):
        self.calls: Counter = Counter()
        self.requests: list = []
        self.images: Dict[str, Union[Dict[str, Any], int]] = {}
        self.image_default: Union[Dict[str, Any], int] = sightengine_payload()
        self.toxicity: Union[Dict[str, Any], int] = perspective_payload(0.1)
        self.classifier: Union[Dict[str, Any], int] = gemini_payload('{"category": "normal", "confidence": 0.9}')

    def _respond(self, response: Union[Dict[str, Any], int]) -> httpx.Response:
        if isinstance(response, int):
            return httpx.Response(response, text="provider unavailable")
        return httpx.Response(200, json=response)

    def handle(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        self.calls[host] += 1
        self.requests.append(request)
        if host == SIGHTENGINE_HOST:
            ref = request.url.params.get("url")
            return self._respond(self.images.get(ref, self.image_default))
        if host == PERSPECTIVE_HOST:
            return self._respond(self.toxicity)
        if host == GEMINI_HOST:
            return self._respond(self.classifier)
        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())


@pytest.fixture
def providers() -> FakeProviders:
    return FakeProviders()


@pytest.fixture
def configure(monkeypatch):
    """Install explicit settings for every module that reads them.

    All three providers are configured unless a credential is overridden.
    """

    def _configure(**overrides: Optional[str]) -> Settings:
        values = dict(
            SIGHTENGINE_API_USER="user",
            SIGHTENGINE_API_SECRET="secret",
            PERSPECTIVE_API_KEY="perspective-key",
            GEMINI_API_KEY="gemini-key",
        )
        values.update(overrides)
        settings = Settings(_env_file=None, **values)
        for target in SETTINGS_USERS:
            monkeypatch.setattr(target, lambda: settings)
        return settings

    return _configure
