import pytest
from httpx import AsyncClient, ASGITransport

from medsafe.main import app, client_rate_limit, get_analysis_service

from tests.fakes import build_service


@pytest.fixture
def service():
    service, _ = build_service()
    app.dependency_overrides[get_analysis_service] = lambda: service
    app.dependency_overrides[client_rate_limit] = lambda: None
    yield service
    app.dependency_overrides.clear()


@pytest.fixture
async def client(service):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.mark.anyio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


@pytest.mark.anyio
async def test_analyze_returns_camel_case_result(client):
    resp = await client.post("/analyze", json={
        "medicationName": "Warfarin",
        "patientFactors": {"age": 72, "currentMedications": ["Ibuprofen"]},
    })
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["medicationInfo"]["isCritical"] is True
    assert data["requiresConsultation"] is True
    assert data["disclaimer"]
    assert data["emergencyWarning"]
    assert data["interactions"]["findings"][0]["severity"] == "major"
    assert "Ibuprofen" in data["interactions"]["checkedMedications"]


@pytest.mark.anyio
async def test_analyze_rejects_injection(client):
    resp = await client.post("/analyze", json={"medicationName": "<script>alert(1)</script>"})
    assert resp.status_code == 400
    assert "markup" in resp.json()["detail"]


@pytest.mark.anyio
async def test_interaction_check(client):
    resp = await client.post("/interactions/check", json={"medications": ["Nardil", "Zoloft"]})
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["hasInteractions"] is True
    assert data["severitySummary"]["contraindicated"] == 1


@pytest.mark.anyio
async def test_interaction_check_requires_medications(client):
    resp = await client.post("/interactions/check", json={"medications": []})
    assert resp.status_code == 422


@pytest.mark.anyio
async def test_get_medication(client):
    resp = await client.get("/medications/Lipitor")
    assert resp.status_code == 200
    data = resp.json()
    assert data["genericName"] == "atorvastatin"
    assert data["category"] == "Cardiovascular"

    resp = await client.get("/medications/Zyxoprine")
    assert resp.status_code == 404
