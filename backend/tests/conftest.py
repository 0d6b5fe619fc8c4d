import os
import tempfile
from datetime import datetime, timezone

os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite:///{os.path.join(tempfile.gettempdir(), f'fleetdash_test_{os.getpid()}.db')}",
)

import pytest

from fleetdash.analytics.schemas import TripRecord, VehicleRecord


NOW = datetime(2024, 1, 10, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_vehicle():
    """Factory for VehicleRecord with sensible defaults"""

    def _make(code="V1", **kwargs):
        values = {
            "name": f"Vehicle {code}",
            "spz": f"1A{code}",
            "speed": 0.0,
            "is_active": True,
            "odometer": 100_000.0,
            "last_position_timestamp": "2024-01-10T11:00:00Z",
        }
        values.update(kwargs)
        return VehicleRecord(code=code, **values)

    return _make


@pytest.fixture
def make_trip():
    """Factory for TripRecord attached to a vehicle code"""

    def _make(vehicle_code="V1", **kwargs):
        values = {
            "vehicle_name": f"Vehicle {vehicle_code}",
            "vehicle_spz": f"1A{vehicle_code}",
            "driver_name": "Anna",
            "start_time": "2024-01-01T08:00:00",
            "total_distance": 0.0,
            "average_speed": 50.0,
            "max_speed": 90.0,
        }
        values.update(kwargs)
        return TripRecord(vehicle_code=vehicle_code, **values)

    return _make
