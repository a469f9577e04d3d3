from __future__ import annotations
import logging
import time
from typing import TYPE_CHECKING

from .cache import QueryCache
from .errors import ConflictError, PreconditionError
from .models import QueryStatus, Reading, latest_key, readings_key, sensors_key
from .readings import last_reading, merge_reading
from .selection import SelectionState

if TYPE_CHECKING:
    from .client import GatewayClient

logger = logging.getLogger(__name__)


class CommandDispatcher:
    """
    Applies light commands and reconciles the query cache with the Gateway.

    The cache is only written with what the Gateway acknowledged; nothing is
    changed optimistically, so a failed command leaves the cache as it was.
    """

    def __init__(self, client: "GatewayClient", cache: QueryCache, selection: SelectionState) -> None:
        self.client = client
        self.cache = cache
        self.selection = selection

    async def toggle_light(self) -> Reading:
        sensor_id = self.selection.selected_sensor
        if sensor_id is None:
            raise PreconditionError("no sensor selected")

        key = readings_key(sensor_id)
        entry = self.cache.get(key)
        if entry is None or entry.status is not QueryStatus.SUCCESS or not entry.data:
            raise PreconditionError(f"readings for sensor {sensor_id} are not loaded")

        desired = not last_reading(entry.data).light_on
        logger.info(f"Setting light of sensor {sensor_id} to {'on' if desired else 'off'}")

        try:
            ack = await self.client.set_light_state(sensor_id, desired)
        except ConflictError:
            logger.warning(f"Sensor {sensor_id} no longer exists, dropping it")
            self._forget(sensor_id)
            raise

        # the entry may have been refetched while the command was in flight
        current = self.cache.get(key)
        base = current.data if current is not None and current.data else entry.data

        if isinstance(ack, Reading):
            reading = ack
            last = last_reading(base)
            # the acknowledgment is the newest state; it must not land behind the history
            if reading.timestamp < last.timestamp:
                reading = reading.model_copy(update={"timestamp": last.timestamp})
            self.cache.set_data(key, merge_reading(base, reading))
            if self.cache.get(latest_key(sensor_id)) is not None:
                self.cache.set_data(latest_key(sensor_id), reading)
        else:
            # only the light value was acknowledged; keep the last measurements
            # and refetch the history on next access
            last = last_reading(base)
            reading = last.model_copy(
                update={
                    "timestamp": max(last.timestamp, int(time.time())),
                    "light_on": ack.light_on,
                    "sensor_id": sensor_id,
                }
            )
            self.cache.set_data(key, merge_reading(base, reading))
            self.cache.invalidate(key)
            if self.cache.get(latest_key(sensor_id)) is not None:
                self.cache.invalidate(latest_key(sensor_id))

        logger.info(f"Light of sensor {sensor_id} is now {'on' if reading.light_on else 'off'}")
        return reading

    def _forget(self, sensor_id: int) -> None:
        if self.selection.selected_sensor == sensor_id:
            self.selection.select(None)
        self.cache.invalidate_prefix("readings", sensor_id)
        self.cache.invalidate_prefix("latest", sensor_id)
        self.cache.invalidate(sensors_key())
