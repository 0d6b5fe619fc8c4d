from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any

from fleetdash.analytics.numbers import safe_num
from fleetdash.analytics.schemas import TripRecord, VehicleRecord


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _coord(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        num = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return num if math.isfinite(num) else None


def _nested_value(record: dict, key: str) -> float:
    raw = record.get(key)
    if isinstance(raw, dict):
        raw = raw.get("Value")
    return safe_num(raw)


def to_vehicle_record(record: dict) -> VehicleRecord:
    position = record.get("LastPosition") if isinstance(record.get("LastPosition"), dict) else {}
    return VehicleRecord(
        code=_text(record.get("Code")),
        name=_text(record.get("Name")),
        spz=_text(record.get("SPZ")),
        branch_name=_text(record.get("BranchName")),
        latitude=_coord(position.get("Latitude", record.get("Latitude"))),
        longitude=_coord(position.get("Longitude", record.get("Longitude"))),
        speed=safe_num(record.get("Speed")),
        is_active=bool(record.get("IsActive", False)),
        odometer=safe_num(record.get("Odometer")),
        last_position_timestamp=_text(record.get("LastPositionTimestamp")),
    )


def to_trip_record(record: dict, vehicle: VehicleRecord | None = None) -> TripRecord:
    return TripRecord(
        vehicle_code=vehicle.code if vehicle else _text(record.get("VehicleCode")),
        vehicle_name=vehicle.name if vehicle else _text(record.get("VehicleName")),
        vehicle_spz=vehicle.spz if vehicle else _text(record.get("VehicleSPZ")),
        driver_name=_text(record.get("DriverName")),
        start_time=_text(record.get("StartTime")),
        finish_time=_text(record.get("FinishTime")),
        total_distance=safe_num(record.get("TotalDistance")),
        average_speed=safe_num(record.get("AverageSpeed")),
        max_speed=safe_num(record.get("MaxSpeed")),
        fuel=_nested_value(record, "FuelConsumed"),
        cost=_nested_value(record, "TripCost"),
        waiting_time=_text(record.get("TripWaitingTime")),
        start_address=_text(record.get("StartAddress")),
        finish_address=_text(record.get("FinishAddress")),
        is_finished=bool(record.get("IsFinished", False)),
    )


def annotate_trips(vehicle: VehicleRecord, records: list[dict]) -> list[TripRecord]:
    return [to_trip_record(r, vehicle) for r in records if isinstance(r, dict)]


def _load_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def load_vehicles(path: Path) -> list[VehicleRecord]:
    payload = _load_json(path)
    if isinstance(payload, dict):
        payload = payload.get("vehicles", [])
    return [to_vehicle_record(v) for v in payload if isinstance(v, dict)]


def load_trips(path: Path, vehicles: list[VehicleRecord]) -> list[TripRecord]:
    """Trips file is either a flat list carrying VehicleCode or a {vehicle_code: [trips]} mapping."""
    payload = _load_json(path)
    by_code = {v.code: v for v in vehicles}
    trips: list[TripRecord] = []

    if isinstance(payload, dict):
        for code, records in payload.items():
            vehicle = by_code.get(str(code)) or VehicleRecord(code=str(code), name=str(code))
            trips.extend(annotate_trips(vehicle, records if isinstance(records, list) else []))
        return trips

    for record in payload:
        if not isinstance(record, dict):
            continue
        vehicle = by_code.get(_text(record.get("VehicleCode")))
        trips.append(to_trip_record(record, vehicle))
    return trips
