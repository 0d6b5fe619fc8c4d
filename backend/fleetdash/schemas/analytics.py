from __future__ import annotations

from pydantic import BaseModel, Field


class DriverStatsOut(BaseModel):
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
    score: int = Field(ge=0, le=100)
    band: str


class DriverRankingResponse(BaseModel):
    date_from: str
    date_to: str
    drivers: list[DriverStatsOut] = Field(default_factory=list)


class VehicleHealthOut(BaseModel):
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
    speeding_events: int
    health_score: int = Field(ge=0, le=100)
    status: str


class FleetHealthSummaryOut(BaseModel):
    total_vehicles: int
    active_now: int
    good_health: int
    warning_health: int
    critical_health: int
    avg_health_score: float
    total_odometer: float
    avg_odometer: float


class FuelSummaryOut(BaseModel):
    total_fuel: float
    total_cost: float
    total_distance: float
    avg_per_100km: float
    total_trips: int


class VehicleFuelRowOut(BaseModel):
    vehicle_code: str
    vehicle_name: str
    vehicle_spz: str
    trips: int
    fuel: float
    cost: float
    distance: float
    per_100km: float


class DailyFuelPointOut(BaseModel):
    date: str
    fuel: float
    cost: int


class VehicleDailyFuelPointOut(BaseModel):
    date: str
    fuel: float
    distance: float
    trips: int


class VehicleEconomicsOut(BaseModel):
    vehicle_code: str
    vehicle_name: str
    vehicle_spz: str
    branch_name: str
    total_trips: int
    total_distance: float
    total_fuel: float
    total_cost: float
    fuel_per_100km: float | None = None
    cost_per_km: float
    avg_speed: int
    max_speed: float
    drivers: list[str] = Field(default_factory=list)
    has_fuel_data: bool
    daily: list[VehicleDailyFuelPointOut] = Field(default_factory=list)


class FleetStatusCountsOut(BaseModel):
    active: int
    idle: int
    offline: int
    total: int


class VehicleAlertOut(BaseModel):
    vehicle_code: str
    vehicle_name: str
    message: str
    time: str
    severity: str


class DashboardResponse(BaseModel):
    status: FleetStatusCountsOut
    alerts: list[VehicleAlertOut] = Field(default_factory=list)


class ActiveTripOut(BaseModel):
    vehicle_code: str
    driver_name: str
    start_time: str
    finish_time: str
    start_address: str
    finish_address: str
    total_distance: float
    average_speed: float
    max_speed: float
    is_finished: bool


class VehiclePositionOut(BaseModel):
    code: str
    name: str
    spz: str
    branch_name: str
    latitude: float | None = None
    longitude: float | None = None
    speed: float
    state: str
    odometer: float
    last_seen: str
