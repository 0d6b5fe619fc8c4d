from __future__ import annotations

from datetime import datetime

from fleetdash.analytics.numbers import half_up, safe_div
from fleetdash.analytics.schemas import DailyFuelPoint, FuelSummary, TripRecord, VehicleFuelRow


def trip_date(start_time: str | None) -> str | None:
    """YYYY-MM-DD prefix of a trip start, or None when it is not a date."""
    if not start_time:
        return None
    day = start_time[:10]
    try:
        datetime.strptime(day, "%Y-%m-%d")
    except ValueError:
        return None
    return day


def compute_fuel_summary(trips: list[TripRecord]) -> FuelSummary:
    total_fuel = sum(t.fuel for t in trips)
    total_cost = sum(t.cost for t in trips)
    total_distance = sum(t.total_distance for t in trips)
    return FuelSummary(
        total_fuel=total_fuel,
        total_cost=total_cost,
        total_distance=total_distance,
        avg_per_100km=safe_div(total_fuel, total_distance) * 100,
        total_trips=len(trips),
    )


def compute_vehicle_fuel_rows(trips: list[TripRecord]) -> list[VehicleFuelRow]:
    rows: dict[str, VehicleFuelRow] = {}
    for t in trips:
        row = rows.get(t.vehicle_code)
        if row is None:
            row = VehicleFuelRow(vehicle_code=t.vehicle_code, vehicle_name=t.vehicle_name, vehicle_spz=t.vehicle_spz)
            rows[t.vehicle_code] = row
        row.trips += 1
        row.fuel += t.fuel
        row.cost += t.cost
        row.distance += t.total_distance

    for row in rows.values():
        row.per_100km = safe_div(row.fuel, row.distance) * 100

    return sorted(rows.values(), key=lambda r: r.fuel, reverse=True)


def compute_daily_fuel(trips: list[TripRecord]) -> list[DailyFuelPoint]:
    days: dict[str, list[float]] = {}
    for t in trips:
        day = trip_date(t.start_time)
        if day is None:
            continue
        bucket = days.setdefault(day, [0.0, 0.0])
        bucket[0] += t.fuel
        bucket[1] += t.cost

    return [
        DailyFuelPoint(date=day, fuel=half_up(fuel * 10) / 10, cost=half_up(cost))
        for day, (fuel, cost) in sorted(days.items(), key=lambda x: x[0])
    ]
