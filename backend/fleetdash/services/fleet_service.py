from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta

from fleetdash.analytics.io import annotate_trips, to_vehicle_record
from fleetdash.analytics.schemas import TripRecord, VehicleRecord
from fleetdash.errors import UpstreamError
from fleetdash.services.upstream import UpstreamClient

logger = logging.getLogger(__name__)

DEFAULT_RANGE_DAYS = 7


@dataclass
class FleetQuery:
    """Request-scoped selection: group, date range and optional vehicle subset."""

    group_code: str | None = None
    date_from: str | None = None  # YYYY-MM-DD or ISO datetime
    date_to: str | None = None
    vehicle_codes: list[str] = field(default_factory=list)

    def resolved_range(self, today: datetime | None = None) -> tuple[str, str]:
        today = today or datetime.now()
        start = _range_bound(self.date_from, time.min) or datetime.combine(
            (today - timedelta(days=DEFAULT_RANGE_DAYS - 1)).date(), time.min
        )
        end = _range_bound(self.date_to, time.max) or datetime.combine(today.date(), time.max)
        fmt = "%Y-%m-%dT%H:%M:%S"
        return start.strftime(fmt), end.strftime(fmt)


def _range_bound(value: str | None, day_edge: time) -> datetime | None:
    if not value:
        return None
    if len(value) == 10:
        return datetime.combine(datetime.strptime(value, "%Y-%m-%d").date(), day_edge)
    return datetime.fromisoformat(value)


@dataclass
class FleetSnapshot:
    vehicles: list[VehicleRecord]
    trips: list[TripRecord]


async def resolve_group(client: UpstreamClient, group_code: str | None) -> str:
    if group_code:
        return group_code
    groups = await client.get_groups()
    if not groups:
        raise UpstreamError("No fleet group available", status_code=404)
    return str(groups[0].get("Code", ""))


async def load_vehicles(client: UpstreamClient, query: FleetQuery) -> list[VehicleRecord]:
    group_code = await resolve_group(client, query.group_code)
    vehicles = [to_vehicle_record(v) for v in await client.get_vehicles(group_code) if isinstance(v, dict)]
    if query.vehicle_codes:
        wanted = set(query.vehicle_codes)
        vehicles = [v for v in vehicles if v.code in wanted]
    return vehicles


async def load_snapshot(client: UpstreamClient, query: FleetQuery, with_trips: bool = True) -> FleetSnapshot:
    vehicles = await load_vehicles(client, query)
    if not with_trips:
        return FleetSnapshot(vehicles=vehicles, trips=[])

    date_from, date_to = query.resolved_range()
    batches = await asyncio.gather(*(client.get_trips(v.code, date_from, date_to) for v in vehicles))

    trips: list[TripRecord] = []
    for vehicle, records in zip(vehicles, batches):
        trips.extend(annotate_trips(vehicle, records if isinstance(records, list) else []))

    logger.info("Loaded %d vehicles and %d trips for %s..%s", len(vehicles), len(trips), date_from, date_to)
    return FleetSnapshot(vehicles=vehicles, trips=trips)


async def load_vehicle(client: UpstreamClient, vehicle_code: str, query: FleetQuery) -> FleetSnapshot:
    raw = await client.get_vehicle(vehicle_code)
    if not isinstance(raw, dict) or not raw:
        raise UpstreamError(f"Vehicle {vehicle_code} not found", status_code=404)
    vehicle = to_vehicle_record(raw)
    date_from, date_to = query.resolved_range()
    records = await client.get_trips(vehicle.code or vehicle_code, date_from, date_to)
    return FleetSnapshot(vehicles=[vehicle], trips=annotate_trips(vehicle, records if isinstance(records, list) else []))
