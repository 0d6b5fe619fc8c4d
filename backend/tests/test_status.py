"""
Operational state, dashboard counts, alerts and active trip selection.
"""

import pytest

from fleetdash.analytics.numbers import format_time_since
from fleetdash.analytics.status import (
    classify,
    compute_fleet_status_counts,
    effective_speed,
    generate_alerts,
    pick_active_trip,
)


class TestClassifier:
    @pytest.mark.parametrize(
        "speed,active,state",
        [
            (50, True, "active"),
            (5, False, "active"),
            (0, True, "idle"),
            (0, False, "offline"),
            (float("nan"), True, "idle"),
            (float("inf"), False, "offline"),
            (-3, True, "idle"),
        ],
    )
    def test_classify(self, make_vehicle, speed, active, state):
        assert classify(make_vehicle(speed=speed, is_active=active)) == state

    def test_effective_speed(self, make_vehicle):
        assert effective_speed(make_vehicle(speed=42.5)) == 42.5
        assert effective_speed(make_vehicle(speed=float("nan"))) == 0

    def test_counts(self, make_vehicle):
        vehicles = [
            make_vehicle("A", speed=60),
            make_vehicle("B", speed=0),
            make_vehicle("C", speed=0, is_active=False),
            make_vehicle("D", speed=0, is_active=False),
        ]
        counts = compute_fleet_status_counts(vehicles)
        assert (counts.active, counts.idle, counts.offline, counts.total) == (1, 1, 2, 4)

    def test_counts_empty(self):
        counts = compute_fleet_status_counts([])
        assert (counts.active, counts.idle, counts.offline, counts.total) == (0, 0, 0, 0)


class TestAlerts:
    def test_speeding(self, make_vehicle, now):
        alerts = generate_alerts([make_vehicle(speed=130, last_position_timestamp="2024-01-10T11:55:00Z")], now=now)
        assert len(alerts) == 1
        assert alerts[0].severity == "high"
        assert alerts[0].message == "Speeding detected: 130 km/h"
        assert alerts[0].time == "5m ago"

    def test_speed_at_threshold_is_not_speeding(self, make_vehicle, now):
        assert generate_alerts([make_vehicle(speed=120, last_position_timestamp="2024-01-10T11:59:00Z")], now=now) == []

    def test_offline(self, make_vehicle, now):
        alerts = generate_alerts([make_vehicle(is_active=False)], now=now)
        assert [a.severity for a in alerts] == ["medium"]
        assert alerts[0].time == "1h ago"
        assert alerts[0].message == "Vehicle offline — check connection"

    def test_idle_after_two_hours(self, make_vehicle, now):
        alerts = generate_alerts([make_vehicle(last_position_timestamp="2024-01-10T09:00:00Z")], now=now)
        assert [a.severity for a in alerts] == ["low"]
        assert alerts[0].message == "Idle for 3+ hours"

    def test_fractional_speed_is_printed_as_given(self, make_vehicle, now):
        alerts = generate_alerts([make_vehicle(speed=123.4567)], now=now)
        assert alerts[0].message == "Speeding detected: 123.4567 km/h"

    def test_never_reported_vehicle_is_quiet(self, make_vehicle, now):
        vehicle = make_vehicle(last_position_timestamp="0001-01-01T00:00:00")
        assert generate_alerts([vehicle], now=now) == []

    def test_never_reported_offline_vehicle(self, make_vehicle, now):
        vehicle = make_vehicle(is_active=False, last_position_timestamp="0001-01-01T00:00:00")
        alerts = generate_alerts([vehicle], now=now)
        assert [(a.severity, a.time) for a in alerts] == [("medium", "unknown")]

    def test_recently_idle_is_quiet(self, make_vehicle, now):
        assert generate_alerts([make_vehicle(last_position_timestamp="2024-01-10T11:00:00Z")], now=now) == []

    def test_speeding_and_offline_on_one_vehicle(self, make_vehicle, now):
        alerts = generate_alerts([make_vehicle(speed=125.5, is_active=False)], now=now)
        assert [a.severity for a in alerts] == ["high", "medium"]
        assert alerts[0].message == "Speeding detected: 125.5 km/h"

    def test_truncated_in_vehicle_order(self, make_vehicle, now):
        vehicles = [make_vehicle(f"V{i}", is_active=False) for i in range(6)]
        vehicles.insert(5, make_vehicle("FAST", speed=150))
        alerts = generate_alerts(vehicles, now=now)
        assert [a.vehicle_code for a in alerts] == ["V0", "V1", "V2", "V3", "V4"]

    def test_empty_fleet(self, now):
        assert generate_alerts([], now=now) == []


class TestTimeSince:
    @pytest.mark.parametrize(
        "ts,text",
        [
            ("2024-01-10T11:30:00Z", "30m ago"),
            ("2024-01-10T09:00:00Z", "3h ago"),
            ("2024-01-08T10:00:00Z", "2d ago"),
            (None, "unknown"),
            ("0001-01-01T00:00:00", "unknown"),
            ("2024-01-10T12:30:00.1234567+0100", "29m ago"),
        ],
    )
    def test_format(self, now, ts, text):
        assert format_time_since(ts, now) == text


class TestActiveTrip:
    def test_first_unfinished(self, make_trip):
        trips = [make_trip(is_finished=True), make_trip(is_finished=False, driver_name="Bob"), make_trip()]
        assert pick_active_trip(trips).driver_name == "Bob"

    def test_falls_back_to_last(self, make_trip):
        trips = [make_trip(is_finished=True), make_trip(is_finished=True, driver_name="Last")]
        assert pick_active_trip(trips).driver_name == "Last"

    def test_no_trips(self):
        assert pick_active_trip([]) is None
