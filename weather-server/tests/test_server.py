import os
import sys
from unittest.mock import AsyncMock, MagicMock, patch

# Ensure weather-server/ is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

import server
from advice import (
    DEFAULT_TIP,
    FALLBACK_TIP,
    HEAT_TIP,
    HUMIDITY_TIP,
    UMBRELLA_TIP,
    WIND_TIP,
    AdviceGenerator,
)
from config import Settings

client = TestClient(server.app)

BASE_URL = "https://api.openweathermap.org"
GEO_URL = f"{BASE_URL}/geo/1.0/direct"
CURRENT_URL = f"{BASE_URL}/data/2.5/weather"
FORECAST_URL = f"{BASE_URL}/data/2.5/forecast"

MOCK_GEOCODE = [{"name": "Mumbai", "country": "IN", "lat": 19.0761, "lon": 72.8775}]

# No "clouds" and no "dt": those fields must be absent from the response.
MOCK_CURRENT = {
    "weather": [{"description": "haze"}],
    "main": {"temp": 29.0, "feels_like": 33.5, "humidity": 74},
    "wind": {"speed": 3.1},
}

MOCK_FORECAST = {
    "list": [
        {"dt_txt": "2026-10-18 15:00:00", "main": {"temp": 29.5}, "pop": 0.2, "weather": [{"description": "haze"}]},
        {"dt_txt": "2026-10-18 18:00:00", "main": {"temp": 28.1}, "pop": 0.3, "weather": [{"description": "haze"}]},
        {"dt_txt": "2026-10-19 00:00:00", "main": {"temp": 26.0}, "pop": 0.6, "weather": [{"description": "light rain"}]},
    ]
}

ADVICE_BODY = {
    "location": {"name": "Mumbai", "country": "IN"},
    "current": {"temp": 36, "humidity": 80, "wind_speed": 10, "description": "light rain"},
    "forecast": [{"day": "2026-10-18", "temp": 31, "pop": 0.5, "description": "light rain"}],
}


@pytest.fixture
async def weather_service():
    async with httpx.AsyncClient() as http_client:
        service = server.build_weather_service(Settings(weather_api_key="test_key"), http_client)
        with patch.object(server, "_weather_service", service):
            yield service
    assert http_client.is_closed


@pytest.fixture
def offline_advice():
    generator = AdviceGenerator(Settings(offline_advice_only=True))
    with patch.object(server, "_advice_generator", generator):
        yield generator


def _mock_upstream():
    geo = respx.get(GEO_URL).mock(return_value=httpx.Response(200, json=MOCK_GEOCODE))
    current = respx.get(CURRENT_URL).mock(return_value=httpx.Response(200, json=MOCK_CURRENT))
    forecast = respx.get(FORECAST_URL).mock(return_value=httpx.Response(200, json=MOCK_FORECAST))
    return geo, current, forecast


# ── /health ───────────────────────────────────────────────────────────────────

def test_health_returns_200():
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert isinstance(data["weather_api_key_configured"], bool)
    assert isinstance(data["llm_configured"], bool)
    assert isinstance(data["offline_advice_only"], bool)


def test_unknown_route_returns_error_body():
    response = client.get("/nope")
    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}


def test_wrong_method_returns_error_body():
    response = client.post("/api/weather", params={"city": "Mumbai"})
    assert response.status_code == 405
    assert response.json() == {"error": "Method Not Allowed"}
    assert "GET" in response.headers["allow"]


# ── /api/weather ──────────────────────────────────────────────────────────────

@respx.mock
def test_weather_success_normalized_shape(weather_service):
    _mock_upstream()

    response = client.get("/api/weather", params={"city": "Mumbai"})

    assert response.status_code == 200
    data = response.json()
    assert data["location"] == {
        "name": "Mumbai",
        "state": "",
        "country": "IN",
        "lat": 19.0761,
        "lon": 72.8775,
    }
    assert data["current"]["description"] == "haze"
    assert data["current"]["feels_like"] == 33.5
    assert "clouds" not in data["current"]
    assert "dt" not in data["current"]
    assert data["forecast"] == [
        {"day": "2026-10-18", "temp": 29.5, "pop": 0.2, "description": "haze"},
        {"day": "2026-10-19", "temp": 26.0, "pop": 0.6, "description": "light rain"},
    ]


@pytest.mark.parametrize("params", [{}, {"city": ""}, {"city": "   "}])
@respx.mock
def test_weather_blank_city_returns_400(weather_service, params):
    response = client.get("/api/weather", params=params)

    assert response.status_code == 400
    assert response.json() == {"error": "city is required"}
    assert respx.calls.call_count == 0


@respx.mock
def test_weather_city_not_found_returns_404(weather_service):
    respx.get(GEO_URL).mock(return_value=httpx.Response(200, json=[]))

    response = client.get("/api/weather", params={"city": "Atlantis"})

    assert response.status_code == 404
    assert response.json() == {"error": "City not found"}


@respx.mock
def test_weather_upstream_failure_returns_generic_500(weather_service):
    respx.get(GEO_URL).mock(return_value=httpx.Response(200, json=MOCK_GEOCODE))
    respx.get(CURRENT_URL).mock(
        return_value=httpx.Response(401, json={"cod": 401, "message": "Invalid API key secret-detail"})
    )
    respx.get(FORECAST_URL).mock(return_value=httpx.Response(200, json=MOCK_FORECAST))

    response = client.get("/api/weather", params={"city": "Mumbai"})

    assert response.status_code == 500
    assert response.json() == {"error": "Server error fetching weather"}
    assert "secret-detail" not in response.text


@respx.mock
def test_weather_geocoding_timeout_returns_500(weather_service):
    respx.get(GEO_URL).mock(side_effect=httpx.TimeoutException("timed out"))

    response = client.get("/api/weather", params={"city": "Mumbai"})

    assert response.status_code == 500
    assert "error" in response.json()


@respx.mock
def test_weather_is_cached_case_insensitively(weather_service):
    geo, current, forecast = _mock_upstream()

    first = client.get("/api/weather", params={"city": "Mumbai"})
    second = client.get("/api/weather", params={"city": "mUMBAI"})

    assert first.status_code == second.status_code == 200
    assert first.content == second.content
    assert geo.call_count == 1
    assert current.call_count == 1
    assert forecast.call_count == 1


def test_weather_unexpected_exception_returns_500():
    service = MagicMock()
    service.get_weather = AsyncMock(side_effect=RuntimeError("something broke"))
    with patch.object(server, "_weather_service", service):
        response = client.get("/api/weather", params={"city": "Mumbai"})

    assert response.status_code == 500
    assert response.json() == {"error": "Server error fetching weather"}


def test_weather_service_not_initialized_returns_500():
    with patch.object(server, "_weather_service", None):
        response = client.get("/api/weather", params={"city": "Mumbai"})

    assert response.status_code == 500


# ── /api/ai-advice ────────────────────────────────────────────────────────────

def test_advice_rule_based(offline_advice):
    response = client.post("/api/ai-advice", json=ADVICE_BODY)

    assert response.status_code == 200
    data = response.json()
    assert data["tips"] == [HEAT_TIP, HUMIDITY_TIP, WIND_TIP, UMBRELLA_TIP]
    assert data["source"] == "rules"
    assert data["advice"] == "\n".join(f"- {tip}" for tip in data["tips"])


def test_advice_missing_current_still_200(offline_advice):
    response = client.post("/api/ai-advice", json={"location": {"name": "Mumbai"}})

    assert response.status_code == 200
    assert response.json()["advice"] == f"- {DEFAULT_TIP}"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"content": b"not json{", "headers": {"Content-Type": "application/json"}},
        {"content": b""},
        {"json": ["a", "list"]},
        {"json": {"current": "sunny"}},
    ],
)
def test_advice_malformed_body_still_200(offline_advice, kwargs):
    response = client.post("/api/ai-advice", **kwargs)

    assert response.status_code == 200
    assert response.json()["advice"]


def test_advice_malformed_current_gets_fallback_tip(offline_advice):
    response = client.post("/api/ai-advice", json={"current": "sunny"})

    assert response.status_code == 200
    assert response.json()["advice"] == f"- {FALLBACK_TIP}"


def test_advice_uses_llm_when_configured():
    mock_client = MagicMock()
    choice = MagicMock()
    choice.message.content = "Stay hydrated.\nCarry an umbrella."
    completion = MagicMock()
    completion.choices = [choice]
    mock_client.chat.completions.create = AsyncMock(return_value=completion)

    generator = AdviceGenerator(Settings(openai_api_key="sk-test"), mock_client)
    with patch.object(server, "_advice_generator", generator):
        response = client.post("/api/ai-advice", json=ADVICE_BODY)

    assert response.status_code == 200
    assert response.json() == {
        "advice": "- Stay hydrated.\n- Carry an umbrella.",
        "tips": ["Stay hydrated.", "Carry an umbrella."],
        "source": "llm",
    }


def test_advice_generator_not_initialized_still_200():
    with patch.object(server, "_advice_generator", None):
        response = client.post("/api/ai-advice", json=ADVICE_BODY)

    assert response.status_code == 200
    assert response.json()["source"] == "rules"
