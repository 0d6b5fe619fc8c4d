from __future__ import annotations

from collections import defaultdict
from datetime import datetime

from fleetdash.analytics.numbers import hours_since, safe_div, utcnow
from fleetdash.analytics.schemas import FleetHealthSummary, TripRecord, VehicleHealth, VehicleRecord
from fleetdash.analytics.status import effective_speed

SPEEDING_KMH = 130
SPEEDING_PENALTY = 3

FUEL_HIGH_L_PER_100KM = 15
FUEL_ELEVATED_L_PER_100KM = 12
ODOMETER_HIGH = 500_000
ODOMETER_ELEVATED = 300_000
STALE_HOURS_HIGH = 48
STALE_HOURS_ELEVATED = 24

GOOD_THRESHOLD = 75
WARNING_THRESHOLD = 50


def health_status(score: float) -> str:
    if score >= GOOD_THRESHOLD:
        return "good"
    if score >= WARNING_THRESHOLD:
        return "warning"
    return "critical"


def _fuel_penalty(fuel_efficiency: float) -> int:
    if fuel_efficiency > FUEL_HIGH_L_PER_100KM:
        return 10
    if fuel_efficiency > FUEL_ELEVATED_L_PER_100KM:
        return 5
    return 0


def _odometer_penalty(odometer: float) -> int:
    if odometer > ODOMETER_HIGH:
        return 10
    if odometer > ODOMETER_ELEVATED:
        return 5
    return 0


def _recency_penalty(last_seen: str, now: datetime) -> int:
    hours = hours_since(last_seen, now)
    if hours is None:
        return 0
    whole_hours = int(hours)
    if whole_hours > STALE_HOURS_HIGH:
        return 15
    if whole_hours > STALE_HOURS_ELEVATED:
        return 5
    return 0


def _score_vehicle(vehicle: VehicleRecord, trips: list[TripRecord], now: datetime) -> VehicleHealth:
    total_distance = sum(t.total_distance for t in trips)
    total_fuel = sum(t.fuel for t in trips)
    avg_speed = safe_div(sum(t.average_speed for t in trips), len(trips))
    max_speed_recorded = max([t.max_speed for t in trips] + [0.0])
    speeding_events = sum(1 for t in trips if t.max_speed > SPEEDING_KMH)
    fuel_efficiency = safe_div(total_fuel, total_distance) * 100

    score = 100
    score -= speeding_events * SPEEDING_PENALTY
    score -= _fuel_penalty(fuel_efficiency)
    score -= _odometer_penalty(vehicle.odometer)
    score -= _recency_penalty(vehicle.last_position_timestamp, now)
    score = max(0, min(100, score))

    return VehicleHealth(
        vehicle_code=vehicle.code,
        vehicle_name=vehicle.name,
        vehicle_spz=vehicle.spz,
        is_active=vehicle.is_active,
        current_speed=effective_speed(vehicle),
        odometer=vehicle.odometer,
        last_seen=vehicle.last_position_timestamp,
        total_trips=len(trips),
        total_distance=total_distance,
        avg_speed=avg_speed,
        max_speed_recorded=max_speed_recorded,
        fuel_efficiency=fuel_efficiency,
        speeding_events=speeding_events,
        health_score=score,
        status=health_status(score),
    )


def compute_vehicle_health(
    vehicles: list[VehicleRecord],
    trips: list[TripRecord],
    now: datetime | None = None,
) -> list[VehicleHealth]:
    now = now or utcnow()
    trips_by_vehicle: dict[str, list[TripRecord]] = defaultdict(list)
    for trip in trips:
        trips_by_vehicle[trip.vehicle_code].append(trip)

    rows = [_score_vehicle(v, trips_by_vehicle.get(v.code, []), now) for v in vehicles]
    return sorted(rows, key=lambda r: r.health_score, reverse=True)


def compute_fleet_health_summary(health: list[VehicleHealth]) -> FleetHealthSummary:
    total = len(health)
    total_odometer = sum(v.odometer for v in health)
    return FleetHealthSummary(
        total_vehicles=total,
        active_now=sum(1 for v in health if v.current_speed > 0),
        good_health=sum(1 for v in health if v.status == "good"),
        warning_health=sum(1 for v in health if v.status == "warning"),
        critical_health=sum(1 for v in health if v.status == "critical"),
        avg_health_score=safe_div(sum(v.health_score for v in health), total),
        total_odometer=total_odometer,
        avg_odometer=safe_div(total_odometer, total),
    )
