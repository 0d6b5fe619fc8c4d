from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class VehicleRecord:
    code: str
    name: str
    spz: str = ""
    branch_name: str = ""
    latitude: float | None = None
    longitude: float | None = None
    speed: float = 0.0
    is_active: bool = False
    odometer: float = 0.0
    last_position_timestamp: str = ""


@dataclass(slots=True)
class TripRecord:
    vehicle_code: str
    vehicle_name: str
    vehicle_spz: str = ""
    driver_name: str = ""
    start_time: str = ""
    finish_time: str = ""
    total_distance: float = 0.0
    average_speed: float = 0.0
    max_speed: float = 0.0
    fuel: float = 0.0
    cost: float = 0.0
    waiting_time: str = ""
    start_address: str = ""
    finish_address: str = ""
    is_finished: bool = False


@dataclass(slots=True)
class DriverAggregate:
    name: str
    vehicle_name: str
    vehicle_spz: str
    trips: int = 0
    total_distance: float = 0.0
    speed_sum: float = 0.0
    max_speed: float = 0.0
    speeding_events: int = 0  # weighted points, see aggregate_by_driver
    idle_minutes: int = 0
    total_fuel: float = 0.0
    total_cost: float = 0.0


@dataclass(slots=True)
class DriverStats:
    name: str
    vehicle_name: str
    vehicle_spz: str
    total_trips: int
    total_distance: float
    avg_speed: int
    max_speed: float
    speeding_events: int
    idle_minutes: int
    fuel_per_km: float
    total_fuel: float
    total_cost: float
    score: int


@dataclass(slots=True)
class VehicleHealth:
    vehicle_code: str
    vehicle_name: str
    vehicle_spz: str
    is_active: bool
    current_speed: float
    odometer: float
    last_seen: str
    total_trips: int
    total_distance: float
    avg_speed: float
    max_speed_recorded: float
    fuel_efficiency: float
    speeding_events: int  # plain count of trips over the limit
    health_score: int
    status: str  # good|warning|critical


@dataclass(slots=True)
class FleetHealthSummary:
    total_vehicles: int
    active_now: int
    good_health: int
    warning_health: int
    critical_health: int
    avg_health_score: float
    total_odometer: float
    avg_odometer: float


@dataclass(slots=True)
class FuelSummary:
    total_fuel: float
    total_cost: float
    total_distance: float
    avg_per_100km: float
    total_trips: int


@dataclass(slots=True)
class VehicleFuelRow:
    vehicle_code: str
    vehicle_name: str
    vehicle_spz: str
    trips: int = 0
    fuel: float = 0.0
    cost: float = 0.0
    distance: float = 0.0
    per_100km: float = 0.0


@dataclass(slots=True)
class DailyFuelPoint:
    date: str
    fuel: float
    cost: int


@dataclass(slots=True)
class VehicleDailyFuelPoint:
    date: str
    fuel: float
    distance: float
    trips: int


@dataclass(slots=True)
class VehicleEconomics:
    vehicle_code: str
    vehicle_name: str
    vehicle_spz: str
    branch_name: str
    total_trips: int
    total_distance: float
    total_fuel: float
    total_cost: float
    fuel_per_100km: float | None  # None when no trip reported fuel
    cost_per_km: float
    avg_speed: int
    max_speed: float
    drivers: list[str] = field(default_factory=list)
    has_fuel_data: bool = False


@dataclass(slots=True)
class FleetStatusCounts:
    active: int
    idle: int
    offline: int
    total: int


@dataclass(slots=True)
class VehicleAlert:
    vehicle_code: str
    vehicle_name: str
    message: str
    time: str
    severity: str  # high|medium|low
