from __future__ import annotations

import math

from fleetdash.analytics.numbers import half_up, parse_waiting_minutes, safe_div
from fleetdash.analytics.schemas import DriverAggregate, DriverStats, TripRecord

HARD_SPEEDING_KMH = 130
SOFT_SPEEDING_KMH = 110
HARD_SPEEDING_POINTS = 3
SOFT_SPEEDING_POINTS = 1
IDLE_MINUTES_PER_POINT = 5
FUEL_EXCESS_PCT_PER_POINT = 20

GOOD_BAND = 80
FAIR_BAND = 50


def speeding_points(max_speed: float) -> int:
    if max_speed > HARD_SPEEDING_KMH:
        return HARD_SPEEDING_POINTS
    if max_speed > SOFT_SPEEDING_KMH:
        return SOFT_SPEEDING_POINTS
    return 0


def aggregate_by_driver(trips: list[TripRecord]) -> dict[str, DriverAggregate]:
    """Group trips by trimmed driver name, in order of first appearance.

    Trips without a driver are left out. ``speeding_events`` accumulates
    weighted points rather than a trip count.
    """
    drivers: dict[str, DriverAggregate] = {}
    for trip in trips:
        name = (trip.driver_name or "").strip()
        if not name:
            continue

        agg = drivers.get(name)
        if agg is None:
            agg = DriverAggregate(
                name=name,
                vehicle_name=trip.vehicle_name,
                vehicle_spz=trip.vehicle_spz,
                max_speed=trip.max_speed,
            )
            drivers[name] = agg

        agg.trips += 1
        agg.total_distance += trip.total_distance
        agg.speed_sum += trip.average_speed
        agg.max_speed = max(agg.max_speed, trip.max_speed)
        agg.speeding_events += speeding_points(trip.max_speed)
        agg.idle_minutes += parse_waiting_minutes(trip.waiting_time)
        agg.total_fuel += trip.fuel
        agg.total_cost += trip.cost
    return drivers


def compute_driver_score(
    speeding_events: int,
    idle_minutes: int,
    fuel_per_km: float,
    fleet_avg_fuel_per_km: float,
) -> int:
    score = 100
    score -= speeding_events
    score -= idle_minutes // IDLE_MINUTES_PER_POINT

    if fleet_avg_fuel_per_km > 0 and fuel_per_km > fleet_avg_fuel_per_km:
        excess_pct = (fuel_per_km - fleet_avg_fuel_per_km) / fleet_avg_fuel_per_km * 100
        score -= math.floor(excess_pct / FUEL_EXCESS_PCT_PER_POINT)

    return max(0, min(100, score))


def compute_all_driver_stats(trips: list[TripRecord]) -> list[DriverStats]:
    drivers = aggregate_by_driver(trips)

    fleet_fuel = sum(d.total_fuel for d in drivers.values())
    fleet_distance = sum(d.total_distance for d in drivers.values())
    fleet_avg_fuel_per_km = safe_div(fleet_fuel, fleet_distance)

    stats: list[DriverStats] = []
    for name, d in drivers.items():
        fuel_per_km = safe_div(d.total_fuel, d.total_distance)
        stats.append(
            DriverStats(
                name=name,
                vehicle_name=d.vehicle_name,
                vehicle_spz=d.vehicle_spz,
                total_trips=d.trips,
                total_distance=d.total_distance,
                avg_speed=half_up(d.speed_sum / d.trips) if d.trips > 0 else 0,
                max_speed=d.max_speed,
                speeding_events=d.speeding_events,
                idle_minutes=d.idle_minutes,
                fuel_per_km=fuel_per_km,
                total_fuel=d.total_fuel,
                total_cost=d.total_cost,
                score=compute_driver_score(d.speeding_events, d.idle_minutes, fuel_per_km, fleet_avg_fuel_per_km),
            )
        )

    # sorted() is stable, ties keep first-appearance order
    return sorted(stats, key=lambda s: s.score, reverse=True)


def driver_score_band(score: float) -> str:
    if score >= GOOD_BAND:
        return "good"
    if score >= FAIR_BAND:
        return "fair"
    return "poor"


def top_drivers(stats: list[DriverStats], limit: int = 3) -> list[DriverStats]:
    return stats[: max(0, limit)]
