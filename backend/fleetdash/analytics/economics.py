from __future__ import annotations

from fleetdash.analytics.fuel import trip_date
from fleetdash.analytics.numbers import half_up, safe_div
from fleetdash.analytics.schemas import TripRecord, VehicleDailyFuelPoint, VehicleEconomics, VehicleRecord


def compute_vehicle_economics(vehicle: VehicleRecord, trips: list[TripRecord]) -> VehicleEconomics:
    """Trip economics of one vehicle.

    ``has_fuel_data`` separates "consumed nothing" from "reported nothing":
    when no trip reports fuel above zero, ``fuel_per_100km`` is None.
    """
    total_distance = 0.0
    total_fuel = 0.0
    total_cost = 0.0
    speed_sum = 0.0
    max_speed = 0.0
    fuel_points = 0
    drivers: dict[str, None] = {}

    for trip in trips:
        total_distance += trip.total_distance
        total_fuel += trip.fuel
        if trip.fuel > 0:
            fuel_points += 1
        total_cost += trip.cost
        speed_sum += trip.average_speed
        max_speed = max(max_speed, trip.max_speed)

        name = (trip.driver_name or "").strip()
        if name:
            drivers.setdefault(name, None)

    has_fuel_data = fuel_points > 0
    fuel_per_100km = safe_div(total_fuel, total_distance) * 100 if has_fuel_data else None

    return VehicleEconomics(
        vehicle_code=vehicle.code,
        vehicle_name=vehicle.name,
        vehicle_spz=vehicle.spz,
        branch_name=vehicle.branch_name,
        total_trips=len(trips),
        total_distance=total_distance,
        total_fuel=total_fuel,
        total_cost=total_cost,
        fuel_per_100km=fuel_per_100km,
        cost_per_km=safe_div(total_cost, total_distance),
        avg_speed=half_up(speed_sum / len(trips)) if trips else 0,
        max_speed=max_speed,
        drivers=list(drivers),
        has_fuel_data=has_fuel_data,
    )


def compute_vehicle_daily_fuel(trips: list[TripRecord]) -> list[VehicleDailyFuelPoint]:
    days: dict[str, VehicleDailyFuelPoint] = {}
    for trip in trips:
        day = trip_date(trip.start_time)
        if day is None:
            continue
        point = days.get(day)
        if point is None:
            point = VehicleDailyFuelPoint(date=day, fuel=0.0, distance=0.0, trips=0)
            days[day] = point
        point.fuel += trip.fuel
        point.distance += trip.total_distance
        point.trips += 1
    return [days[day] for day in sorted(days)]
