from __future__ import annotations
import logging
from typing import Callable, List, Optional

from .cache import QueryCache
from .client import GatewayClient
from .dispatcher import CommandDispatcher
from .errors import SensorDashError
from .models import (
    CommandResult,
    DashboardView,
    LightStatus,
    QueryEntry,
    Reading,
    latest_key,
    readings_key,
    sensors_key,
)
from .readings import last_reading, light_status
from .selection import SelectionState
from .view import project

logger = logging.getLogger(__name__)


class DashboardSession:
    """
    Owns the query cache, selection and command dispatcher of one session.

    A session is created explicitly and handed to whatever renders it; there
    is no process-wide instance. Listeners registered with subscribe() are
    called after any cache or selection change.
    """

    def __init__(
        self,
        client: GatewayClient,
        cache: Optional[QueryCache] = None,
        selection: Optional[SelectionState] = None,
    ) -> None:
        self.client = client
        self.cache = cache if cache is not None else QueryCache()
        self.selection = selection if selection is not None else SelectionState()
        self.dispatcher = CommandDispatcher(self.client, self.cache, self.selection)
        self.notice: Optional[str] = None
        self._listeners: List[Callable[[], None]] = []
        self._unsubscribe = [
            self.cache.subscribe(lambda key: self._changed()),
            self.selection.subscribe(lambda previous, current: self._changed()),
        ]

    # sensors

    def load_sensors(self) -> QueryEntry:
        return self.cache.get_or_fetch(sensors_key(), self.client.fetch_sensor_list)

    def refresh_sensors(self) -> QueryEntry:
        self.cache.invalidate(sensors_key())
        return self.load_sensors()

    @property
    def sensors(self) -> List[int]:
        entry = self.cache.get(sensors_key())
        return list(entry.data) if entry is not None and entry.data else []

    # selection

    @property
    def selected_sensor(self) -> Optional[int]:
        return self.selection.selected_sensor

    def select(self, sensor_id: Optional[int]) -> Optional[QueryEntry]:
        """
        Make sensor_id the active sensor and start loading its readings.

        Only the newly selected sensor is fetched. Its cached history stays
        visible while it is refetched.
        """
        if not self.selection.select(sensor_id):
            return self.readings_entry
        if sensor_id is None:
            return None
        self.cache.invalidate(readings_key(sensor_id))
        return self._load_readings(sensor_id)

    def refresh(self) -> Optional[QueryEntry]:
        sensor_id = self.selection.selected_sensor
        if sensor_id is None:
            return None
        self.cache.invalidate(readings_key(sensor_id))
        return self._load_readings(sensor_id)

    def load_latest(self) -> Optional[QueryEntry]:
        sensor_id = self.selection.selected_sensor
        if sensor_id is None:
            return None
        return self.cache.get_or_fetch(
            latest_key(sensor_id), lambda: self.client.fetch_latest_reading(sensor_id)
        )

    def _load_readings(self, sensor_id: int) -> QueryEntry:
        # the fetcher is bound to sensor_id so its result can only land on that key
        return self.cache.get_or_fetch(
            readings_key(sensor_id), lambda: self.client.fetch_readings(sensor_id)
        )

    # derived state

    @property
    def readings_entry(self) -> Optional[QueryEntry]:
        sensor_id = self.selection.selected_sensor
        if sensor_id is None:
            return None
        return self.cache.get(readings_key(sensor_id))

    @property
    def readings(self) -> List[Reading]:
        entry = self.readings_entry
        return list(entry.data) if entry is not None and entry.data else []

    @property
    def last_reading(self) -> Optional[Reading]:
        return last_reading(self.readings)

    @property
    def light_status(self) -> LightStatus:
        return light_status(self.readings)

    # commands

    async def toggle_light(self) -> CommandResult:
        """Toggle the selected sensor's light; failures become a notice, never an exception."""
        sensor_id = self.selection.selected_sensor
        desired = None
        if self.last_reading is not None:
            desired = not self.last_reading.light_on
        try:
            reading = await self.dispatcher.toggle_light()
        except SensorDashError as e:
            logger.warning(f"Light toggle failed: {type(e).__name__}: {e}")
            self.notice = str(e)
            self._changed()
            return CommandResult(
                ok=False,
                sensor_id=sensor_id,
                desired=desired,
                error=type(e).__name__,
                message=str(e),
            )
        return CommandResult(
            ok=True,
            sensor_id=sensor_id,
            desired=desired,
            reading=reading,
            message="light on" if reading.light_on else "light off",
        )

    def dismiss_notice(self) -> None:
        if self.notice is not None:
            self.notice = None
            self._changed()

    # view

    def view(self) -> DashboardView:
        return project(self.selection, self.cache, self.notice)

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def close(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._listeners.clear()
        self.cache.clear()

    def _changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("session listener failed")
