from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from fleetdash.analytics.drivers import compute_all_driver_stats, driver_score_band, top_drivers
from fleetdash.analytics.economics import compute_vehicle_daily_fuel, compute_vehicle_economics
from fleetdash.analytics.fuel import compute_daily_fuel, compute_fuel_summary, compute_vehicle_fuel_rows
from fleetdash.analytics.health import compute_fleet_health_summary, compute_vehicle_health
from fleetdash.analytics.numbers import format_time_since
from fleetdash.analytics.schemas import DriverStats
from fleetdash.analytics.status import (
    classify,
    compute_fleet_status_counts,
    effective_speed,
    generate_alerts,
    pick_active_trip,
)
from fleetdash.db import get_db
from fleetdash.errors import InsightsError, UpstreamError
from fleetdash.schemas.analytics import (
    ActiveTripOut,
    DailyFuelPointOut,
    DashboardResponse,
    DriverRankingResponse,
    DriverStatsOut,
    FleetHealthSummaryOut,
    FleetStatusCountsOut,
    FuelSummaryOut,
    VehicleAlertOut,
    VehicleDailyFuelPointOut,
    VehicleEconomicsOut,
    VehicleFuelRowOut,
    VehicleHealthOut,
    VehiclePositionOut,
)
from fleetdash.schemas.insights import ChatRequest, ChatResponse, InsightRequest, InsightResponse
from fleetdash.services.fleet_service import FleetQuery, FleetSnapshot, load_snapshot, load_vehicle
from fleetdash.services.insights_service import (
    INSIGHT_MODULES,
    InsightsService,
    build_chat_context,
    build_insight_payload,
)
from fleetdash.services.proxy import relay
from fleetdash.services.upstream import UpstreamClient

router = APIRouter()


async def get_upstream():
    async with UpstreamClient() as client:
        yield client


def get_proxy_transport():
    return None


def get_insights_service() -> InsightsService:
    return InsightsService()


def fleet_query(
    group: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    vehicles: list[str] = Query(default=[]),
) -> FleetQuery:
    query = FleetQuery(group_code=group, date_from=date_from, date_to=date_to, vehicle_codes=vehicles)
    try:
        query.resolved_range()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid date range: {e}") from e
    return query


def _upstream_error(e: UpstreamError) -> HTTPException:
    if e.status_code == 404:
        return HTTPException(status_code=404, detail=str(e))
    return HTTPException(status_code=502, detail=str(e))


async def _snapshot(client: UpstreamClient, query: FleetQuery, with_trips: bool = True) -> FleetSnapshot:
    try:
        return await load_snapshot(client, query, with_trips=with_trips)
    except UpstreamError as e:
        raise _upstream_error(e) from e


def _driver_to_out(stats: DriverStats) -> DriverStatsOut:
    return DriverStatsOut(**asdict(stats), band=driver_score_band(stats.score))


@router.get("/dashboard", response_model=DashboardResponse)
async def dashboard(
    query: FleetQuery = Depends(fleet_query),
    client: UpstreamClient = Depends(get_upstream),
) -> DashboardResponse:
    snapshot = await _snapshot(client, query, with_trips=False)
    return DashboardResponse(
        status=FleetStatusCountsOut(**asdict(compute_fleet_status_counts(snapshot.vehicles))),
        alerts=[VehicleAlertOut(**asdict(a)) for a in generate_alerts(snapshot.vehicles)],
    )


@router.get("/drivers", response_model=DriverRankingResponse)
async def driver_ranking(
    query: FleetQuery = Depends(fleet_query),
    client: UpstreamClient = Depends(get_upstream),
) -> DriverRankingResponse:
    snapshot = await _snapshot(client, query)
    date_from, date_to = query.resolved_range()
    return DriverRankingResponse(
        date_from=date_from,
        date_to=date_to,
        drivers=[_driver_to_out(d) for d in compute_all_driver_stats(snapshot.trips)],
    )


@router.get("/drivers/top", response_model=list[DriverStatsOut])
async def driver_podium(
    limit: int = 3,
    query: FleetQuery = Depends(fleet_query),
    client: UpstreamClient = Depends(get_upstream),
) -> list[DriverStatsOut]:
    snapshot = await _snapshot(client, query)
    stats = compute_all_driver_stats(snapshot.trips)
    return [_driver_to_out(d) for d in top_drivers(stats, max(1, min(limit, 50)))]


@router.get("/health/vehicles", response_model=list[VehicleHealthOut])
async def vehicle_health(
    query: FleetQuery = Depends(fleet_query),
    client: UpstreamClient = Depends(get_upstream),
) -> list[VehicleHealthOut]:
    snapshot = await _snapshot(client, query)
    return [VehicleHealthOut(**asdict(h)) for h in compute_vehicle_health(snapshot.vehicles, snapshot.trips)]


@router.get("/health/summary", response_model=FleetHealthSummaryOut)
async def fleet_health_summary(
    query: FleetQuery = Depends(fleet_query),
    client: UpstreamClient = Depends(get_upstream),
) -> FleetHealthSummaryOut:
    snapshot = await _snapshot(client, query)
    health = compute_vehicle_health(snapshot.vehicles, snapshot.trips)
    return FleetHealthSummaryOut(**asdict(compute_fleet_health_summary(health)))


@router.get("/fuel/summary", response_model=FuelSummaryOut)
async def fuel_summary(
    query: FleetQuery = Depends(fleet_query),
    client: UpstreamClient = Depends(get_upstream),
) -> FuelSummaryOut:
    snapshot = await _snapshot(client, query)
    return FuelSummaryOut(**asdict(compute_fuel_summary(snapshot.trips)))


@router.get("/fuel/vehicles", response_model=list[VehicleFuelRowOut])
async def fuel_by_vehicle(
    query: FleetQuery = Depends(fleet_query),
    client: UpstreamClient = Depends(get_upstream),
) -> list[VehicleFuelRowOut]:
    snapshot = await _snapshot(client, query)
    return [VehicleFuelRowOut(**asdict(r)) for r in compute_vehicle_fuel_rows(snapshot.trips)]


@router.get("/fuel/daily", response_model=list[DailyFuelPointOut])
async def fuel_daily(
    query: FleetQuery = Depends(fleet_query),
    client: UpstreamClient = Depends(get_upstream),
) -> list[DailyFuelPointOut]:
    snapshot = await _snapshot(client, query)
    return [DailyFuelPointOut(**asdict(p)) for p in compute_daily_fuel(snapshot.trips)]


@router.get("/vehicles", response_model=list[VehiclePositionOut])
async def vehicle_positions(
    query: FleetQuery = Depends(fleet_query),
    client: UpstreamClient = Depends(get_upstream),
) -> list[VehiclePositionOut]:
    snapshot = await _snapshot(client, query, with_trips=False)
    return [
        VehiclePositionOut(
            code=v.code,
            name=v.name,
            spz=v.spz,
            branch_name=v.branch_name,
            latitude=v.latitude,
            longitude=v.longitude,
            speed=effective_speed(v),
            state=classify(v),
            odometer=v.odometer,
            last_seen=format_time_since(v.last_position_timestamp),
        )
        for v in snapshot.vehicles
    ]


async def _vehicle_snapshot(client: UpstreamClient, vehicle_code: str, query: FleetQuery) -> FleetSnapshot:
    try:
        return await load_vehicle(client, vehicle_code, query)
    except UpstreamError as e:
        raise _upstream_error(e) from e


@router.get("/vehicles/{vehicle_code}/economics", response_model=VehicleEconomicsOut)
async def vehicle_economics(
    vehicle_code: str,
    query: FleetQuery = Depends(fleet_query),
    client: UpstreamClient = Depends(get_upstream),
) -> VehicleEconomicsOut:
    snapshot = await _vehicle_snapshot(client, vehicle_code, query)
    economics = compute_vehicle_economics(snapshot.vehicles[0], snapshot.trips)
    return VehicleEconomicsOut(
        **asdict(economics),
        daily=[VehicleDailyFuelPointOut(**asdict(p)) for p in compute_vehicle_daily_fuel(snapshot.trips)],
    )


@router.get("/vehicles/{vehicle_code}/active-trip", response_model=ActiveTripOut | None)
async def vehicle_active_trip(
    vehicle_code: str,
    query: FleetQuery = Depends(fleet_query),
    client: UpstreamClient = Depends(get_upstream),
) -> ActiveTripOut | None:
    snapshot = await _vehicle_snapshot(client, vehicle_code, query)
    trip = pick_active_trip(snapshot.trips)
    if trip is None:
        return None
    return ActiveTripOut(
        vehicle_code=trip.vehicle_code,
        driver_name=trip.driver_name.strip(),
        start_time=trip.start_time,
        finish_time=trip.finish_time,
        start_address=trip.start_address,
        finish_address=trip.finish_address,
        total_distance=trip.total_distance,
        average_speed=trip.average_speed,
        max_speed=trip.max_speed,
        is_finished=trip.is_finished,
    )


@router.post("/insights/{module}", response_model=InsightResponse)
async def insights(
    module: str,
    body: InsightRequest | None = None,
    query: FleetQuery = Depends(fleet_query),
    client: UpstreamClient = Depends(get_upstream),
    service: InsightsService = Depends(get_insights_service),
    db: Session = Depends(get_db),
) -> InsightResponse:
    if module not in INSIGHT_MODULES:
        raise HTTPException(status_code=404, detail=f"Unknown insight module: {module}")

    snapshot = await _snapshot(client, query, with_trips=module != "dashboard")
    data = build_insight_payload(module, snapshot)
    locale = body.locale if body else "en"
    try:
        return await run_in_threadpool(service.get_insights, db, module, data, locale)
    except InsightsError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e


@router.post("/chat", response_model=ChatResponse)
async def chat(
    body: ChatRequest,
    query: FleetQuery = Depends(fleet_query),
    client: UpstreamClient = Depends(get_upstream),
    service: InsightsService = Depends(get_insights_service),
) -> ChatResponse:
    snapshot = await _snapshot(client, query)
    context = build_chat_context(snapshot)
    try:
        return await run_in_threadpool(service.chat, body.messages, context, body.locale)
    except InsightsError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e


@router.api_route("/v1/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"])
async def upstream_proxy(path: str, request: Request, transport=Depends(get_proxy_transport)) -> Response:
    body = await request.body()
    try:
        relayed = await relay(request.method, path, request.url.query, body or None, transport=transport)
    except UpstreamError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e
    return Response(content=relayed.content, status_code=relayed.status_code, headers=relayed.headers)
