"""Shared fixtures for sensordash tests."""
from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

import pytest

from sensordash.cache import QueryCache
from sensordash.models import Reading
from sensordash.session import DashboardSession


def make_reading(ts: int, light_on: bool = False, **kwargs) -> Reading:
    values = {"temperature": 20.0, "humidity": 50.0, "luminosity": 10.0}
    values.update(kwargs)
    return Reading(timestamp=ts, light_on=light_on, **values)


class FakeGateway:
    """Async stand-in for GatewayClient that records calls and can hold fetches open."""

    def __init__(self, sensors: List[int], readings: Dict[int, List[Reading]]) -> None:
        self.sensors = sensors
        self.readings = readings
        self.calls: List[tuple] = []
        self.gates: Dict[int, asyncio.Event] = {}
        self.readings_error: Optional[Exception] = None
        self.light_error: Optional[Exception] = None
        self.light_response = None

    async def fetch_sensor_list(self) -> List[int]:
        self.calls.append(("sensors",))
        return list(self.sensors)

    async def fetch_readings(self, sensor_id: int, start=None, end=None) -> List[Reading]:
        self.calls.append(("readings", sensor_id))
        gate = self.gates.get(sensor_id)
        if gate is not None:
            await gate.wait()
        if self.readings_error is not None:
            raise self.readings_error
        return list(self.readings.get(sensor_id, []))

    async def fetch_latest_reading(self, sensor_id: int) -> Optional[Reading]:
        self.calls.append(("latest", sensor_id))
        history = self.readings.get(sensor_id)
        return history[-1] if history else None

    async def set_light_state(self, sensor_id: int, desired: bool):
        self.calls.append(("light", sensor_id, desired))
        if self.light_error is not None:
            raise self.light_error
        if self.light_response is not None:
            return self.light_response
        last = self.readings[sensor_id][-1]
        return last.model_copy(update={"timestamp": last.timestamp + 1, "light_on": desired})

    def light_calls(self) -> List[tuple]:
        return [c for c in self.calls if c[0] == "light"]


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway(
        sensors=[1, 2],
        readings={
            1: [make_reading(100, light_on=False)],
            2: [make_reading(50, light_on=True, temperature=25.0), make_reading(60, light_on=True, temperature=25.5)],
        },
    )


@pytest.fixture
def cache() -> QueryCache:
    return QueryCache(retry=0)


@pytest.fixture
def session(gateway, cache):
    s = DashboardSession(gateway, cache=cache)
    yield s
    s.close()
