from __future__ import annotations

from dataclasses import asdict
from datetime import datetime

from fleetdash.analytics.drivers import compute_all_driver_stats, driver_score_band
from fleetdash.analytics.fuel import compute_daily_fuel, compute_fuel_summary, compute_vehicle_fuel_rows
from fleetdash.analytics.health import compute_fleet_health_summary, compute_vehicle_health
from fleetdash.analytics.numbers import utcnow
from fleetdash.analytics.schemas import TripRecord, VehicleRecord
from fleetdash.analytics.status import compute_fleet_status_counts, generate_alerts


def analyze(
    vehicles: list[VehicleRecord],
    trips: list[TripRecord],
    now: datetime | None = None,
) -> dict:
    now = now or utcnow()
    drivers = compute_all_driver_stats(trips)
    health = compute_vehicle_health(vehicles, trips, now=now)

    return {
        "generated_at": now.isoformat(),
        "dataset": {
            "vehicles": len(vehicles),
            "trips": len(trips),
            "drivers": len(drivers),
        },
        "status": asdict(compute_fleet_status_counts(vehicles)),
        "alerts": [asdict(a) for a in generate_alerts(vehicles, now=now)],
        "drivers": [{**asdict(d), "band": driver_score_band(d.score)} for d in drivers],
        "vehicle_health": [asdict(h) for h in health],
        "health_summary": asdict(compute_fleet_health_summary(health)),
        "fuel_summary": asdict(compute_fuel_summary(trips)),
        "fuel_by_vehicle": [asdict(r) for r in compute_vehicle_fuel_rows(trips)],
        "fuel_daily": [asdict(p) for p in compute_daily_fuel(trips)],
    }
