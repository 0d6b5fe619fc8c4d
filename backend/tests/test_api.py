"""
API endpoint tests.

The upstream GPS-tracking API and the insights model are replaced with
httpx.MockTransport handlers; responses come from the real analytics code.
"""

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from fleetdash.api.routes import get_insights_service, get_proxy_transport, get_upstream
from fleetdash.core.config import settings
from fleetdash.db import Base, SessionLocal, engine
from fleetdash.main import app
from fleetdash.models import InsightCache
from fleetdash.schemas.insights import Insight
from fleetdash.services.insights_service import InsightsService, cache_key
from fleetdash.services.upstream import UpstreamClient


def _recent(minutes: int = 1) -> str:
    return (datetime.now(timezone.utc) - timedelta(minutes=minutes)).isoformat()


VEHICLES = [
    {
        "Code": "V1",
        "Name": "Truck 1",
        "SPZ": "1AB",
        "LastPosition": {"Latitude": "50.08", "Longitude": "14.42"},
        "Speed": 0,
        "IsActive": True,
        "Odometer": 100000,
    },
    {"Code": "V2", "Name": "Van 2", "SPZ": "2CD", "Speed": 130, "IsActive": True, "Odometer": 100000},
    {"Code": "V3", "Name": "Car 3", "SPZ": "3EF", "Speed": 0, "IsActive": False, "Odometer": 100000},
]

TRIPS = {
    "V1": [
        {
            "DriverName": "Anna",
            "StartTime": "2024-01-02T08:00:00",
            "TotalDistance": 100,
            "AverageSpeed": 60,
            "MaxSpeed": 100,
            "FuelConsumed": {"Value": 8},
            "TripCost": {"Value": 300},
            "IsFinished": True,
        }
    ],
    "V2": [
        {
            "DriverName": "Bob",
            "StartTime": "2024-01-01T08:00:00",
            "TotalDistance": 100,
            "AverageSpeed": 80,
            "MaxSpeed": 135,
            "FuelConsumed": {"Value": 10},
            "TripCost": {"Value": 350},
            "IsFinished": False,
        }
    ],
    "V3": [],
}


class FakeUpstream:
    def __init__(self, fail_with: int | None = None):
        self.fail_with = fail_with
        self.requests: list[httpx.Request] = []
        self.vehicles = [{**v, "LastPositionTimestamp": _recent()} for v in VEHICLES]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with:
            return httpx.Response(self.fail_with, json={"error": "boom"})

        path = request.url.path.removeprefix("/api/v1")
        if path == "/groups":
            return httpx.Response(200, json=[{"Code": "G1", "Name": "Fleet"}])
        if path == "/vehicles/group/G1":
            return httpx.Response(200, json=self.vehicles)
        if path.startswith("/vehicle/"):
            parts = path.split("/")
            code = parts[2]
            vehicle = next((v for v in self.vehicles if v["Code"] == code), None)
            if vehicle is None:
                return httpx.Response(404, json={"error": "not found"})
            if len(parts) == 4 and parts[3] == "trips":
                return httpx.Response(200, json=TRIPS[code])
            return httpx.Response(200, json=vehicle)
        return httpx.Response(404)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def client(upstream):
    async def _upstream_override():
        api = UpstreamClient(
            base_url="https://upstream.test/api/v1",
            username="user",
            password="secret",
            transport=httpx.MockTransport(upstream),
        )
        try:
            yield api
        finally:
            await api.aclose()

    app.dependency_overrides[get_upstream] = _upstream_override
    yield TestClient(app)
    app.dependency_overrides.clear()


# ============================================
# Root & Dashboard
# ============================================

class TestRoot:
    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_dashboard(self, client, upstream):
        response = client.get("/api/dashboard")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == {"active": 1, "idle": 1, "offline": 1, "total": 3}
        assert [(a["vehicle_code"], a["severity"]) for a in data["alerts"]] == [("V2", "high"), ("V3", "medium")]
        assert all(r.headers["authorization"].startswith("Basic ") for r in upstream.requests)

    def test_upstream_failure_is_bad_gateway(self, upstream, client):
        upstream.fail_with = 500
        assert client.get("/api/dashboard").status_code == 502

    def test_invalid_date(self, client):
        assert client.get("/api/drivers", params={"date_from": "yesterday"}).status_code == 400


# ============================================
# Drivers, Health, Fuel
# ============================================

class TestAnalyticsEndpoints:
    def test_driver_ranking(self, client):
        response = client.get("/api/drivers", params={"date_from": "2024-01-01", "date_to": "2024-01-07"})
        assert response.status_code == 200
        data = response.json()
        assert data["date_from"] == "2024-01-01T00:00:00"
        assert data["date_to"] == "2024-01-07T23:59:59"
        assert [(d["name"], d["score"], d["band"]) for d in data["drivers"]] == [
            ("Anna", 100, "good"),
            ("Bob", 97, "good"),
        ]

    def test_trips_are_fetched_per_vehicle(self, client, upstream):
        client.get("/api/drivers", params={"date_from": "2024-01-01", "date_to": "2024-01-07"})
        trip_requests = [r for r in upstream.requests if r.url.path.endswith("/trips")]
        assert len(trip_requests) == 3
        assert trip_requests[0].url.params["from"] == "2024-01-01T00:00:00"

    def test_top_drivers(self, client):
        response = client.get("/api/drivers/top", params={"limit": 1})
        assert [d["name"] for d in response.json()] == ["Anna"]

    def test_vehicle_filter(self, client):
        response = client.get("/api/drivers", params=[("vehicles", "V2")])
        assert [d["name"] for d in response.json()["drivers"]] == ["Bob"]

    def test_vehicle_health(self, client):
        rows = client.get("/api/health/vehicles").json()
        scores = {r["vehicle_code"]: (r["health_score"], r["status"]) for r in rows}
        assert scores == {"V1": (100, "good"), "V2": (97, "good"), "V3": (100, "good")}
        assert rows[-1]["vehicle_code"] == "V2"

    def test_health_summary(self, client):
        data = client.get("/api/health/summary").json()
        assert data["total_vehicles"] == 3
        assert data["active_now"] == 1
        assert data["good_health"] == 3
        assert data["avg_odometer"] == pytest.approx(100000)

    def test_fuel_endpoints(self, client):
        summary = client.get("/api/fuel/summary").json()
        assert summary["total_fuel"] == 18
        assert summary["avg_per_100km"] == pytest.approx(9)

        rows = client.get("/api/fuel/vehicles").json()
        assert [r["vehicle_code"] for r in rows] == ["V2", "V1"]

        daily = client.get("/api/fuel/daily").json()
        assert [p["date"] for p in daily] == ["2024-01-01", "2024-01-02"]


# ============================================
# Single vehicle
# ============================================

class TestVehicleEndpoints:
    def test_economics(self, client):
        data = client.get("/api/vehicles/V1/economics").json()
        assert data["has_fuel_data"] is True
        assert data["fuel_per_100km"] == pytest.approx(8)
        assert data["drivers"] == ["Anna"]
        assert data["daily"] == [{"date": "2024-01-02", "fuel": 8.0, "distance": 100.0, "trips": 1}]

    def test_economics_without_fuel_data(self, client):
        data = client.get("/api/vehicles/V3/economics").json()
        assert data["has_fuel_data"] is False
        assert data["fuel_per_100km"] is None

    def test_unknown_vehicle(self, client):
        assert client.get("/api/vehicles/NOPE/economics").status_code == 404

    def test_active_trip(self, client):
        data = client.get("/api/vehicles/V2/active-trip").json()
        assert data["driver_name"] == "Bob"
        assert data["is_finished"] is False

    def test_no_active_trip(self, client):
        response = client.get("/api/vehicles/V3/active-trip")
        assert response.status_code == 200
        assert response.json() is None

    def test_positions(self, client):
        rows = {r["code"]: r for r in client.get("/api/vehicles").json()}
        assert rows["V1"]["latitude"] == pytest.approx(50.08)
        assert rows["V1"]["longitude"] == pytest.approx(14.42)
        assert rows["V1"]["state"] == "idle"
        assert (rows["V2"]["state"], rows["V2"]["speed"]) == ("active", 130)
        assert rows["V3"]["state"] == "offline"
        assert rows["V3"]["latitude"] is None
        assert rows["V3"]["last_seen"].endswith("ago")


# ============================================
# Proxy
# ============================================

class TestProxy:
    def test_relays_and_strips_auth_challenge(self, client, monkeypatch):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                401,
                json={"error": "unauthorized"},
                headers={"WWW-Authenticate": 'Basic realm="gps"', "X-Upstream": "1"},
            )

        monkeypatch.setattr(settings, "upstream_base_url", "https://upstream.test/api/v1")
        app.dependency_overrides[get_proxy_transport] = lambda: httpx.MockTransport(handler)

        response = client.get("/api/v1/groups?lang=en")

        assert response.status_code == 401
        assert "www-authenticate" not in response.headers
        assert response.headers["x-upstream"] == "1"
        assert response.headers["access-control-allow-origin"] == "*"
        assert str(seen[0].url) == "https://upstream.test/api/v1/groups?lang=en"
        assert seen[0].headers["authorization"].startswith("Basic ")

    def test_forwards_body(self, client):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        app.dependency_overrides[get_proxy_transport] = lambda: httpx.MockTransport(handler)
        response = client.post("/api/v1/vehicle/V1/command", json={"relay": 1})

        assert response.status_code == 200
        assert json.loads(seen[0].content) == {"relay": 1}
        assert seen[0].method == "POST"


# ============================================
# Insights
# ============================================

@pytest.fixture
def insights_db():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    db.query(InsightCache).delete()
    db.commit()
    db.close()
    yield


@pytest.fixture
def model_calls(monkeypatch):
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        text = json.dumps({"insights": [{"title": "Speeding", "description": "Bob drives fast", "severity": "warning"}]})
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})

    monkeypatch.setattr(settings, "insights_api_key", "test-key")
    app.dependency_overrides[get_insights_service] = lambda: InsightsService(transport=httpx.MockTransport(handler))
    return calls


class TestInsights:
    def test_insights_are_cached(self, client, insights_db, model_calls):
        first = client.post("/api/insights/drivers", json={"locale": "cs"})
        assert first.status_code == 200
        assert first.json()["cached"] is False
        assert first.json()["insights"][0]["severity"] == "warning"

        second = client.post("/api/insights/drivers", json={"locale": "cs"})
        assert second.json()["cached"] is True
        assert len(model_calls) == 1

        prompt = json.loads(model_calls[0].content)["contents"][0]["parts"][0]["text"]
        assert '"avg_score": 98.5' in prompt
        assert model_calls[0].url.params["key"] == "test-key"

    def test_unknown_module(self, client):
        assert client.post("/api/insights/weather").status_code == 404

    def test_missing_api_key(self, client, insights_db, monkeypatch):
        monkeypatch.setattr(settings, "insights_api_key", "")
        assert client.post("/api/insights/health").status_code == 503

    def test_concurrent_miss_keeps_stored_answer(self, insights_db):
        data = {"total_fuel_l": 18.0}
        key = cache_key("fuel", data, "en")

        class RacingService(InsightsService):
            def _ask_model(self, module, data, locale):
                # another request stores the same key while the model is answering
                other = SessionLocal()
                other.add(InsightCache(key=key, module=module, locale=locale, insights_json="[]"))
                other.commit()
                other.close()
                return [Insight(title="Fuel", description="Consumption is stable")]

        db = SessionLocal()
        try:
            response = RacingService().get_insights(db, "fuel", data, "en")
            assert response.cached is False
            assert response.insights[0].title == "Fuel"
            assert db.query(InsightCache).count() == 1
            assert json.loads(db.get(InsightCache, key).insights_json) == []
        finally:
            db.close()


# ============================================
# Chat
# ============================================

class ChatModel:
    def __init__(self):
        self.status = 200
        self.text = json.dumps({"blocks": [{"type": "text", "content": "Van 2 is speeding."}]})
        self.calls: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if self.status != 200:
            return httpx.Response(self.status, json={"error": {"code": self.status}})
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": self.text}]}}]})


@pytest.fixture
def chat_model(monkeypatch):
    model = ChatModel()
    monkeypatch.setattr(settings, "insights_api_key", "test-key")
    app.dependency_overrides[get_insights_service] = lambda: InsightsService(transport=httpx.MockTransport(model))
    return model


CONVERSATION = [
    {"role": "user", "content": "Hi"},
    {"role": "assistant", "content": "Hello, how can I help?"},
    {"role": "user", "content": "Who is speeding?"},
]


class TestChat:
    def test_answer_with_fleet_context(self, client, chat_model):
        response = client.post("/api/chat", json={"messages": CONVERSATION, "locale": "cs"})
        assert response.status_code == 200
        assert response.json()["blocks"][0]["content"] == "Van 2 is speeding."

        sent = json.loads(chat_model.calls[0].content)
        assert [c["role"] for c in sent["contents"]] == ["user", "model", "user"]
        assert sent["contents"][-1]["parts"][0]["text"] == "Who is speeding?"
        system = sent["systemInstruction"]["parts"][0]["text"]
        assert "'cs'" in system
        assert '"code": "V2"' in system
        assert '"driver_count": 2' in system

    def test_structured_blocks(self, client, chat_model):
        chat_model.text = json.dumps(
            {
                "blocks": [
                    {"type": "vehicleCard", "vehicles": [{"code": "V2", "name": "Van 2", "speed": 130}]},
                    {"type": "action", "label": "Open health", "href": "/health/V2"},
                ]
            }
        )
        blocks = client.post("/api/chat", json={"messages": CONVERSATION}).json()["blocks"]
        assert [b["type"] for b in blocks] == ["vehicleCard", "action"]
        assert blocks[0]["vehicles"][0]["code"] == "V2"
        assert blocks[1]["href"] == "/health/V2"

    def test_plain_text_answer(self, client, chat_model):
        chat_model.text = "Everything looks fine."
        blocks = client.post("/api/chat", json={"messages": CONVERSATION}).json()["blocks"]
        assert [(b["type"], b["content"]) for b in blocks] == [("text", "Everything looks fine.")]

    def test_unknown_block_type(self, client, chat_model):
        chat_model.text = json.dumps({"blocks": [{"type": "video", "url": "x"}]})
        assert client.post("/api/chat", json={"messages": CONVERSATION}).status_code == 502

    def test_rate_limited(self, client, chat_model):
        chat_model.status = 429
        response = client.post("/api/chat", json={"messages": CONVERSATION})
        assert response.status_code == 429
        assert "rate limit" in response.json()["detail"]

    def test_empty_conversation(self, client, chat_model):
        assert client.post("/api/chat", json={"messages": []}).status_code == 422
        assert chat_model.calls == []
