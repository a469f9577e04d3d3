"""Tests for the light command dispatcher and reading-history helpers."""
import asyncio

import pytest

from sensordash.dispatcher import CommandDispatcher
from sensordash.errors import ConflictError, NetworkError, PreconditionError, ProtocolError
from sensordash.models import LightState, LightStatus, QueryStatus, latest_key, readings_key, sensors_key
from sensordash.readings import last_reading, light_status, merge_reading
from sensordash.selection import SelectionState

from .conftest import make_reading


@pytest.fixture
def selection():
    return SelectionState()


@pytest.fixture
def dispatcher(gateway, cache, selection):
    return CommandDispatcher(gateway, cache, selection)


async def _load(cache, gateway, sensor_id):
    return await cache.fetch(readings_key(sensor_id), lambda: gateway.fetch_readings(sensor_id))


class TestPreconditions:
    @pytest.mark.asyncio
    async def test_no_selection(self, dispatcher, gateway):
        with pytest.raises(PreconditionError):
            await dispatcher.toggle_light()
        assert gateway.light_calls() == []

    @pytest.mark.asyncio
    async def test_readings_not_loaded(self, dispatcher, gateway, selection):
        selection.select(1)
        with pytest.raises(PreconditionError):
            await dispatcher.toggle_light()
        assert gateway.light_calls() == []

    @pytest.mark.asyncio
    async def test_empty_history(self, dispatcher, gateway, cache, selection):
        gateway.readings[3] = []
        await _load(cache, gateway, 3)
        selection.select(3)
        with pytest.raises(PreconditionError):
            await dispatcher.toggle_light()
        assert gateway.light_calls() == []

    @pytest.mark.asyncio
    async def test_readings_in_error(self, dispatcher, gateway, cache, selection):
        gateway.readings_error = NetworkError("down")
        await _load(cache, gateway, 1)
        selection.select(1)
        with pytest.raises(PreconditionError):
            await dispatcher.toggle_light()


    @pytest.mark.asyncio
    async def test_readings_refetching(self, dispatcher, gateway, cache, selection):
        await _load(cache, gateway, 1)
        selection.select(1)
        cache.invalidate(readings_key(1))
        gateway.gates[1] = asyncio.Event()
        entry = cache.get_or_fetch(readings_key(1), lambda: gateway.fetch_readings(1))
        assert entry.status is QueryStatus.LOADING
        assert entry.data

        with pytest.raises(PreconditionError):
            await dispatcher.toggle_light()
        assert gateway.light_calls() == []

        gateway.gates[1].set()
        await cache.wait(readings_key(1))


class TestToggle:
    @pytest.mark.asyncio
    async def test_merges_acknowledged_reading(self, dispatcher, gateway, cache, selection):
        await _load(cache, gateway, 1)
        selection.select(1)

        reading = await dispatcher.toggle_light()

        assert gateway.light_calls() == [("light", 1, True)]
        assert reading.light_on is True
        entry = cache.get(readings_key(1))
        assert entry.status is QueryStatus.SUCCESS
        assert entry.is_stale is False
        assert [r.timestamp for r in entry.data] == [100, 101]
        assert light_status(entry.data) is LightStatus.ON

    @pytest.mark.asyncio
    async def test_same_timestamp_replaces(self, dispatcher, gateway, cache, selection):
        await _load(cache, gateway, 1)
        selection.select(1)
        gateway.light_response = make_reading(100, light_on=True)

        await dispatcher.toggle_light()

        data = cache.get(readings_key(1)).data
        assert len(data) == 1
        assert data[0].light_on is True

    @pytest.mark.asyncio
    async def test_desired_comes_from_last_reading(self, dispatcher, gateway, cache, selection):
        await _load(cache, gateway, 2)
        selection.select(2)

        await dispatcher.toggle_light()
        await dispatcher.toggle_light()

        assert gateway.light_calls() == [("light", 2, False), ("light", 2, True)]

    @pytest.mark.asyncio
    async def test_updates_cached_latest_reading(self, dispatcher, gateway, cache, selection):
        await _load(cache, gateway, 1)
        await cache.fetch(latest_key(1), lambda: gateway.fetch_latest_reading(1))
        selection.select(1)

        reading = await dispatcher.toggle_light()
        assert cache.get(latest_key(1)).data == reading

    @pytest.mark.asyncio
    async def test_older_acknowledgment_still_lands_last(self, dispatcher, gateway, cache, selection):
        await _load(cache, gateway, 1)
        selection.select(1)
        gateway.light_response = make_reading(99, light_on=True)

        reading = await dispatcher.toggle_light()

        data = cache.get(readings_key(1)).data
        assert reading.timestamp == 100
        assert [r.timestamp for r in data] == [100]
        assert data[-1].light_on is True
        assert light_status(data) is LightStatus.ON

    @pytest.mark.asyncio
    async def test_minimal_ack_records_state_and_refetches(self, dispatcher, gateway, cache, selection):
        await _load(cache, gateway, 1)
        selection.select(1)
        gateway.light_response = LightState(light_on=True)

        reading = await dispatcher.toggle_light()

        entry = cache.get(readings_key(1))
        assert reading.light_on is True
        assert reading.temperature == 20.0
        assert reading.timestamp >= 100
        assert light_status(entry.data) is LightStatus.ON
        assert entry.is_stale is True


class TestFailures:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [NetworkError("down"), ProtocolError("garbled")])
    async def test_failure_leaves_cache_untouched(self, dispatcher, gateway, cache, selection, error):
        await _load(cache, gateway, 1)
        selection.select(1)
        before = cache.get(readings_key(1))
        gateway.light_error = error

        with pytest.raises(type(error)):
            await dispatcher.toggle_light()

        after = cache.get(readings_key(1))
        assert after.model_dump_json() == before.model_dump_json()
        assert selection.selected_sensor == 1

    @pytest.mark.asyncio
    async def test_conflict_drops_sensor(self, dispatcher, gateway, cache, selection):
        await cache.fetch(sensors_key(), gateway.fetch_sensor_list)
        await _load(cache, gateway, 1)
        await cache.fetch(latest_key(1), lambda: gateway.fetch_latest_reading(1))
        selection.select(1)
        before = cache.get(readings_key(1)).data
        gateway.light_error = ConflictError("gone", status_code=404)

        with pytest.raises(ConflictError):
            await dispatcher.toggle_light()

        assert selection.selected_sensor is None
        entry = cache.get(readings_key(1))
        assert entry.is_stale is True
        assert entry.data == before
        assert cache.get(sensors_key()).is_stale is True
        assert cache.get(latest_key(1)).is_stale is True


class TestReadingHelpers:
    def test_last_reading(self):
        readings = [make_reading(1), make_reading(2, light_on=True)]
        assert last_reading(readings).timestamp == 2
        assert last_reading([]) is None
        assert last_reading(None) is None

    def test_light_status(self):
        assert light_status(None) is LightStatus.UNKNOWN
        assert light_status([make_reading(1, light_on=False)]) is LightStatus.OFF
        assert light_status([make_reading(1, light_on=True)]) is LightStatus.ON

    def test_merge_inserts_in_order(self):
        readings = [make_reading(10), make_reading(30)]
        merged = merge_reading(readings, make_reading(20))
        assert [r.timestamp for r in merged] == [10, 20, 30]
        # input is not modified
        assert [r.timestamp for r in readings] == [10, 30]

    def test_merge_replaces_latest_duplicate(self):
        readings = [make_reading(10, temperature=1.0), make_reading(10, temperature=2.0)]
        merged = merge_reading(readings, make_reading(10, temperature=3.0))
        assert [r.temperature for r in merged] == [1.0, 3.0]

    def test_merge_into_empty(self):
        assert [r.timestamp for r in merge_reading([], make_reading(5))] == [5]
