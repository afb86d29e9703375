from typing import Any

import pytest
from loguru import logger

from tests.fakes import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def log_records():
    records: list[dict[str, Any]] = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)


@pytest.fixture
def facility_payload() -> list[dict[str, Any]]:
    return [
        {
            "id": "city",
            "name": "P-hus City",
            "lat": 59.3326,
            "lon": 18.0649,
            "capacity": 400,
            "tariffNote": "45 kr/h",
            "zoneCode": "A",
        },
        {
            "Id": "gallerian",
            "Name": "Gallerian",
            "position": {"Latitude": "59.3318", "Longitude": "18.0700"},
            "Capacity": 250,
        },
        {
            "facilityId": "far",
            "siteName": "Far away",
            "latitude": 59.40,
            "longitude": 18.20,
        },
    ]


@pytest.fixture
def availability_payload() -> list[dict[str, Any]]:
    return [
        {"id": "city", "freeSpaces": 12, "capacity": 410, "lastUpdated": "2024-05-01T10:00:00Z"},
        {"Id": "gallerian", "Vacant": "40", "UpdatedAt": "2024-05-01T10:01:00Z"},
    ]
