from __future__ import annotations

import math
from datetime import datetime

from fleetdash.analytics.numbers import format_time_since, half_up, hours_since, utcnow
from fleetdash.analytics.schemas import FleetStatusCounts, TripRecord, VehicleAlert, VehicleRecord

SPEEDING_ALERT_KMH = 120
IDLE_ALERT_HOURS = 2
MAX_ALERTS = 5


def effective_speed(vehicle: VehicleRecord) -> float:
    speed = vehicle.speed
    if speed is None or not isinstance(speed, (int, float)) or not math.isfinite(speed):
        return 0.0
    return float(speed)


def format_speed(speed: float) -> str:
    return str(int(speed)) if speed.is_integer() else repr(speed)


def classify(vehicle: VehicleRecord) -> str:
    """Operational state shown on markers, tags and alerts: active, idle or offline."""
    if effective_speed(vehicle) > 0:
        return "active"
    if vehicle.is_active:
        return "idle"
    return "offline"


def compute_fleet_status_counts(vehicles: list[VehicleRecord]) -> FleetStatusCounts:
    states = [classify(v) for v in vehicles]
    return FleetStatusCounts(
        active=states.count("active"),
        idle=states.count("idle"),
        offline=states.count("offline"),
        total=len(vehicles),
    )


def generate_alerts(
    vehicles: list[VehicleRecord],
    now: datetime | None = None,
    limit: int = MAX_ALERTS,
) -> list[VehicleAlert]:
    """Alerts in vehicle order, at most one per condition per vehicle.

    The result is cut to ``limit`` without reordering by severity.
    """
    now = now or utcnow()
    alerts: list[VehicleAlert] = []

    for v in vehicles:
        speed = effective_speed(v)
        since = format_time_since(v.last_position_timestamp, now)

        if speed > SPEEDING_ALERT_KMH:
            alerts.append(
                VehicleAlert(
                    vehicle_code=v.code,
                    vehicle_name=v.name,
                    message=f"Speeding detected: {format_speed(speed)} km/h",
                    time=since,
                    severity="high",
                )
            )
        if not v.is_active:
            alerts.append(
                VehicleAlert(
                    vehicle_code=v.code,
                    vehicle_name=v.name,
                    message="Vehicle offline — check connection",
                    time=since,
                    severity="medium",
                )
            )
        if speed == 0 and v.is_active:
            hours = hours_since(v.last_position_timestamp, now)
            if hours is not None and hours > IDLE_ALERT_HOURS:
                alerts.append(
                    VehicleAlert(
                        vehicle_code=v.code,
                        vehicle_name=v.name,
                        message=f"Idle for {half_up(hours)}+ hours",
                        time=since,
                        severity="low",
                    )
                )

    return alerts[: max(0, limit)]


def pick_active_trip(trips: list[TripRecord]) -> TripRecord | None:
    if not trips:
        return None
    for trip in trips:
        if not trip.is_finished:
            return trip
    return trips[-1]
