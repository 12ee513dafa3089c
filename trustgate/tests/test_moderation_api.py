import pytest
from httpx import ASGITransport, AsyncClient

from trustgate.app.main import app
from trustgate.app.orchestration.moderator import moderate as real_moderate
from trustgate.app.safety.image import IMAGE_LABELS

IMG = "https://cdn.example/post/9.jpg"


@pytest.fixture()
async def client(monkeypatch, configure, providers):
    configure()

    async def moderate_with_fakes(inp, config_override=None):
        async with providers.client() as http:
            return await real_moderate(inp, config_override, client=http)

    monkeypatch.setattr("trustgate.app.api.v1.routers.moderation.moderate", moderate_with_fakes)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


@pytest.mark.anyio
async def test_health(client):
    res = await client.get("/api/health")
    assert res.status_code == 200
    assert res.json()["status"] == "healthy"


@pytest.mark.anyio
async def test_moderate_blocks_weapon_image(client, providers):
    providers.images[IMG] = providers.sightengine(weapon=0.85)
    res = await client.post(
        "/api/v1/moderation",
        json={"input": {"title": "Meu passeio", "body": "<p>Fotos do fim de semana no sítio</p>", "images": [IMG]}},
    )
    assert res.status_code == 200, res.text
    data = res.json()
    assert data["decision"] == "blocked"
    assert IMAGE_LABELS["weapon"] in data["blocked_reasons"]
    assert data["image_result"]["categories"]["weapon"] == pytest.approx(0.85)
    assert "threat" in data["toxicity_result"]["categories"]


@pytest.mark.anyio
async def test_provider_outage_is_not_an_http_error(client, providers):
    providers.image_default = 500
    providers.toxicity = 503
    providers.classifier = 500
    res = await client.post(
        "/api/v1/moderation",
        json={"input": {"title": "Passeio", "body": "Fotos do fim de semana no sítio", "images": [IMG]}},
    )
    assert res.status_code == 200
    data = res.json()
    assert data["decision"] == "pending_review"
    assert data["content_category"] == "normal"
    assert data["image_result"]["skipped"] is True
    assert data["toxicity_result"]["skipped"] is True


@pytest.mark.anyio
async def test_disabled_via_request_config(client, providers):
    res = await client.post(
        "/api/v1/moderation",
        json={"input": {"title": "x", "body": "y", "images": [IMG]}, "config": {"enabled": False}},
    )
    assert res.status_code == 200
    assert res.json()["decision"] == "approved"
    assert providers.total_calls == 0


@pytest.mark.anyio
@pytest.mark.parametrize(
    "config",
    [{"review_threshold": 3}, {"image_category_thresholds": {"tattoo": 0.4}}],
)
async def test_invalid_config_is_rejected(client, config):
    res = await client.post("/api/v1/moderation", json={"input": {"title": "x", "body": "y"}, "config": config})
    assert res.status_code == 422


@pytest.mark.anyio
async def test_quick_money_check(client, providers):
    res = await client.post(
        "/api/v1/moderation/quick-money-check",
        json={"title": "Ajudem", "body": "chave pix no perfil"},
    )
    assert res.status_code == 200
    assert res.json() == {"money_request_indicators": True}
    assert providers.total_calls == 0
