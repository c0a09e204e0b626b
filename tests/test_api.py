# tests/test_api.py
import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services.classification_service import get_classification_engine


@pytest.fixture
def client(engine):
    app.dependency_overrides[get_classification_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_classify(client):
    response = client.post("/api/classify", json={"description": "cotton t-shirt for boys", "countryOfOrigin": "CN"})
    assert response.status_code == 200
    body = response.json()
    assert body["success"]
    assert body["primary"]["htsCode"].startswith("6109")
    assert body["primary"]["dutyBreakdown"]["totalRate"] == 36.5


def test_classify_with_answers(client):
    response = client.post("/api/classify", json={"description": "rubber footwear", "answers": {"value": "gt_3"}})
    assert response.json()["primary"]["htsCode"] == "64029990"


@pytest.mark.parametrize("payload", [
    {"description": ""},
    {"description": "   "},
    {"description": "x" * 2001},
    {"description": "planter", "unitValue": -5},
    {},
])
def test_classify_rejects_bad_input(client, payload):
    assert client.post("/api/classify", json=payload).status_code == 422


def test_justify(client):
    response = client.post("/api/classify/justify", json={"description": "plastic planter"})
    assert response.status_code == 200
    body = response.json()
    assert body["fullJustification"].startswith("## GRI 1 - Terms of Headings")
    assert body["carveOutExclusions"] == ["Nursing nipples and finger cots", "Picture frames"]


def test_duty_calculation_looks_up_the_rate(client):
    response = client.post("/api/duty/calculate", json={
        "htsCode": "6109.10.00.12", "countryOfOrigin": "CN", "unitValue": 1000,
    })
    assert response.status_code == 200
    body = response.json()
    assert body["duty"]["baseRate"]["adValorem"] == 16.5
    assert body["duty"]["totalRate"] == 36.5
    assert body["landedCost"]["landedCost"] == 1394.0


def test_duty_calculation_with_zero_value(client):
    response = client.post("/api/duty/calculate", json={
        "htsCode": "6109.10.00.12", "countryOfOrigin": "CN", "unitValue": 0,
    })
    body = response.json()
    assert body["duty"]["estimatedDuty"] == 0.0
    assert body["landedCost"]["landedCost"] == 27.75


def test_duty_calculation_with_explicit_rate(client):
    response = client.post("/api/duty/calculate", json={
        "htsCode": "8541400000", "countryOfOrigin": "CN", "baseRate": "Free",
    })
    body = response.json()
    assert body["duty"]["totalRate"] == 70
    assert body["duty"]["adcvdWarning"]["isCountryAffected"] is True
    assert body["landedCost"] is None


def test_duty_calculation_errors(client):
    unknown = client.post("/api/duty/calculate", json={"htsCode": "9999.99.99", "countryOfOrigin": "CN"})
    assert unknown.status_code == 404

    invalid = client.post("/api/duty/calculate", json={"htsCode": "61x9", "countryOfOrigin": "CN"})
    assert invalid.status_code == 400

    bad_country = client.post("/api/duty/calculate", json={"htsCode": "6109", "countryOfOrigin": "CHN"})
    assert bad_country.status_code == 422


def test_country_profile(client):
    body = client.get("/api/duty/countries/sg").json()
    assert body["profile"]["countryName"] == "Singapore"
    assert body["hasAdditionalDuties"] is False
    assert body["summary"] == "Eligible for preferential rates under US-Singapore FTA"
    assert body["lastVerified"] == "2025-04-05"
