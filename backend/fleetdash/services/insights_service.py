from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timedelta

import httpx
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fleetdash.analytics.drivers import compute_all_driver_stats
from fleetdash.analytics.fuel import compute_daily_fuel, compute_fuel_summary, compute_vehicle_fuel_rows
from fleetdash.analytics.health import compute_fleet_health_summary, compute_vehicle_health
from fleetdash.analytics.numbers import utcnow
from fleetdash.analytics.status import classify, compute_fleet_status_counts, generate_alerts
from fleetdash.core.config import settings
from fleetdash.errors import InsightsError
from fleetdash.models import InsightCache
from fleetdash.schemas.insights import ChatBlock, ChatMessageIn, ChatResponse, Insight, InsightResponse
from fleetdash.services.fleet_service import FleetSnapshot

logger = logging.getLogger(__name__)

INSIGHT_MODULES = ("dashboard", "drivers", "fuel", "health")

PROMPT = (
    "You are a fleet operations analyst. Using only the JSON metrics below for the '{module}' view, "
    "write 2 to 4 short insight cards in language '{locale}'. Answer with JSON of the form "
    '{{"insights": [{{"title": str, "description": str, "severity": "info|warning|critical|positive"}}]}}.\n\n'
    "Metrics:\n{data}"
)

CHAT_PROMPT = (
    "You are a fleet management assistant. Answer in language '{locale}' using only the fleet data below. "
    'Reply with JSON of the form {{"blocks": [...]}} where each block is one of '
    '{{"type": "text", "content": str}}, '
    '{{"type": "vehicleCard", "vehicles": [{{"code", "name", "spz", "speed", "isActive", "odometer"}}]}}, '
    '{{"type": "statCard", "stats": [{{"label", "value", "description"}}]}}, '
    '{{"type": "action", "label": str, "href": str}}.\n\n'
    "Fleet data:\n{context}"
)

MAX_CHAT_HISTORY = 20
MAX_CONTEXT_VEHICLES = 50


def _r(value: float, digits: int = 1) -> float:
    return round(float(value), digits)


def build_insight_payload(module: str, snapshot: FleetSnapshot, now: datetime | None = None) -> dict:
    """Reduce core outputs of one view to plain, finite numbers for the model."""
    now = now or utcnow()

    if module == "dashboard":
        alerts = generate_alerts(snapshot.vehicles, now=now, limit=len(snapshot.vehicles) * 3)
        counts = compute_fleet_status_counts(snapshot.vehicles)
        return {
            "vehicles": {"total": counts.total, "active": counts.active, "idle": counts.idle, "offline": counts.offline},
            "alerts": {sev: sum(1 for a in alerts if a.severity == sev) for sev in ("high", "medium", "low")},
        }

    if module == "drivers":
        stats = compute_all_driver_stats(snapshot.trips)
        rows = [
            {
                "name": d.name,
                "score": d.score,
                "trips": d.total_trips,
                "distance_km": _r(d.total_distance),
                "speeding_points": d.speeding_events,
                "idle_minutes": d.idle_minutes,
                "fuel_per_100km": _r(d.fuel_per_km * 100),
            }
            for d in stats
        ]
        avg_score = sum(d.score for d in stats) / len(stats) if stats else 0.0
        return {"driver_count": len(stats), "avg_score": _r(avg_score), "top": rows[:3], "bottom": rows[-3:][::-1]}

    if module == "fuel":
        summary = compute_fuel_summary(snapshot.trips)
        return {
            "total_fuel_l": _r(summary.total_fuel),
            "total_cost": _r(summary.total_cost, 0),
            "total_distance_km": _r(summary.total_distance),
            "avg_per_100km": _r(summary.avg_per_100km),
            "trips": summary.total_trips,
            "top_vehicles": [
                {"vehicle": r.vehicle_name, "fuel_l": _r(r.fuel), "per_100km": _r(r.per_100km)}
                for r in compute_vehicle_fuel_rows(snapshot.trips)[:5]
            ],
            "daily": [{"date": p.date, "fuel_l": p.fuel, "cost": p.cost} for p in compute_daily_fuel(snapshot.trips)],
        }

    if module == "health":
        health = compute_vehicle_health(snapshot.vehicles, snapshot.trips, now=now)
        summary = compute_fleet_health_summary(health)
        return {
            "total_vehicles": summary.total_vehicles,
            "active_now": summary.active_now,
            "good": summary.good_health,
            "warning": summary.warning_health,
            "critical": summary.critical_health,
            "avg_health_score": _r(summary.avg_health_score),
            "avg_odometer_km": _r(summary.avg_odometer, 0),
            "lowest": [
                {"vehicle": h.vehicle_name, "score": h.health_score, "speeding_trips": h.speeding_events}
                for h in health[-3:][::-1]
            ],
        }

    raise InsightsError(f"Unknown insight module: {module}", status_code=404)


def cache_key(module: str, data: dict, locale: str) -> str:
    raw = json.dumps({"module": module, "data": data, "locale": locale}, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def parse_model_answer(payload: dict) -> list[Insight]:
    try:
        text = payload["candidates"][0]["content"]["parts"][0]["text"]
        body = json.loads(text)
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise InsightsError("Insights model returned an unexpected answer") from e

    items = body.get("insights", []) if isinstance(body, dict) else body
    if not isinstance(items, list):
        raise InsightsError("Insights model returned an unexpected answer")
    try:
        return [Insight.model_validate(item) for item in items]
    except ValidationError as e:
        raise InsightsError("Insights model returned malformed cards") from e


def build_chat_context(snapshot: FleetSnapshot, now: datetime | None = None) -> dict:
    """Vehicle list plus every insight payload, so the assistant sees what the views show."""
    now = now or utcnow()
    context: dict = {
        "vehicles": [
            {
                "code": v.code,
                "name": v.name,
                "spz": v.spz,
                "state": classify(v),
                "speed": _r(v.speed),
                "isActive": v.is_active,
                "odometer": _r(v.odometer, 0),
            }
            for v in snapshot.vehicles[:MAX_CONTEXT_VEHICLES]
        ]
    }
    for module in INSIGHT_MODULES:
        context[module] = build_insight_payload(module, snapshot, now=now)
    return context


def parse_chat_answer(payload: dict) -> list[ChatBlock]:
    try:
        text = payload["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise InsightsError("Chat model returned an unexpected answer") from e
    if not isinstance(text, str):
        raise InsightsError("Chat model returned an unexpected answer")

    try:
        body = json.loads(text)
    except ValueError:
        # plain prose instead of JSON
        return [ChatBlock(type="text", content=text)]

    items = body.get("blocks") if isinstance(body, dict) else None
    if not isinstance(items, list):
        raise InsightsError("Chat model returned an unexpected answer")
    try:
        return [ChatBlock.model_validate(item) for item in items]
    except ValidationError as e:
        raise InsightsError("Chat model returned malformed blocks") from e


class InsightsService:
    def __init__(self, transport: httpx.BaseTransport | None = None) -> None:
        self._transport = transport

    def _generate(self, contents: list[dict], system: str | None = None) -> dict:
        if not settings.insights_api_key:
            raise InsightsError("Insights API key not configured", status_code=503)

        url = f"{settings.insights_api_url.rstrip('/')}/{settings.insights_model}:generateContent"
        body: dict = {
            "contents": contents,
            "generationConfig": {"responseMimeType": "application/json"},
        }
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}
        try:
            with httpx.Client(timeout=settings.insights_timeout_sec, transport=self._transport) as client:
                response = client.post(url, params={"key": settings.insights_api_key}, json=body)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning("Insights model answered %s", status)
            if status == 429:
                raise InsightsError("AI rate limit reached, try again later", status_code=429) from e
            raise InsightsError(f"AI insight error: {status}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Insights model call failed: %s", e)
            raise InsightsError(f"AI insight error: {e}") from e

    def _ask_model(self, module: str, data: dict, locale: str) -> list[Insight]:
        prompt = PROMPT.format(module=module, locale=locale, data=json.dumps(data))
        return parse_model_answer(self._generate([{"parts": [{"text": prompt}]}]))

    def chat(self, messages: list[ChatMessageIn], context: dict, locale: str = "en") -> ChatResponse:
        """Answer the last user message with the conversation and fleet figures as context."""
        contents = [
            {"role": "model" if m.role == "assistant" else "user", "parts": [{"text": m.content}]}
            for m in messages[-MAX_CHAT_HISTORY:]
        ]
        system = CHAT_PROMPT.format(locale=locale, context=json.dumps(context))
        blocks = parse_chat_answer(self._generate(contents, system=system))
        return ChatResponse(blocks=blocks, generated_at=datetime.utcnow())

    def get_insights(self, db: Session, module: str, data: dict, locale: str = "en") -> InsightResponse:
        key = cache_key(module, data, locale)
        cutoff = datetime.utcnow() - timedelta(seconds=settings.insights_stale_seconds)

        row = db.get(InsightCache, key)
        if row is not None and row.created_at >= cutoff:
            logger.debug("Insight cache hit for %s", module)
            cards = [Insight.model_validate(i) for i in json.loads(row.insights_json)]
            return InsightResponse(module=module, insights=cards, cached=True, generated_at=row.created_at)

        logger.info("Insight cache miss for %s, asking model", module)
        cards = self._ask_model(module, data, locale)
        now = datetime.utcnow()
        if row is None:
            row = InsightCache(key=key, module=module, locale=locale)
            db.add(row)
        row.created_at = now
        row.insights_json = json.dumps([c.model_dump() for c in cards])
        try:
            db.commit()
        except IntegrityError:
            # a concurrent request stored the same key first; its answer stays
            db.rollback()
            logger.info("Insight cache for %s already written by another request", module)
        return InsightResponse(module=module, insights=cards, cached=False, generated_at=now)
