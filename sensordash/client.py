from __future__ import annotations
import asyncio
import logging
from typing import Any, Dict, List, Optional, Union

import requests
from pydantic import StrictInt, TypeAdapter, ValidationError

from .config import API_URL, HTTP_TIMEOUT
from .errors import ConflictError, NetworkError, ProtocolError
from .models import LightCommand, LightState, Reading

logger = logging.getLogger(__name__)

_SENSOR_LIST = TypeAdapter(List[StrictInt])
_READINGS = TypeAdapter(List[Reading])

# Status codes the Gateway uses to say a sensor is gone
_CONFLICT_STATUSES = (404, 409, 410)


class GatewayClient:
    """
    Thin client for the sensor Gateway REST API.

    Every public operation is a coroutine. The blocking HTTP call runs in a
    worker thread so the event loop keeps serving other work while a request
    is outstanding. No retries happen here; the query cache owns retry policy.
    """

    def __init__(
        self,
        base_url: str = API_URL,
        timeout: float = HTTP_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session if session is not None else requests.Session()
        self.headers = {"Content-Type": "application/json"}

    async def fetch_sensor_list(self) -> List[int]:
        payload = await self._call("GET", "/sensors")
        # the Gateway serialises an empty id list as null
        if payload is None:
            return []
        try:
            return _SENSOR_LIST.validate_python(payload)
        except ValidationError as e:
            raise ProtocolError(f"sensor list is not an array of integers: {e}") from e

    async def fetch_readings(
        self,
        sensor_id: int,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> List[Reading]:
        """
        Fetch the reading history of one sensor, oldest first.

        start/end are optional date bounds understood by the Gateway
        ("YYYY-MM-DD" or "YYYY-MM-DDTHH:MM:SS").
        """
        params: Dict[str, str] = {}
        if start is not None:
            params["start"] = start
        if end is not None:
            params["end"] = end
        payload = await self._call("GET", f"/sensors/{sensor_id}/readings", params=params or None)
        if payload is None:
            return []
        try:
            readings = _READINGS.validate_python(payload)
        except ValidationError as e:
            raise ProtocolError(f"invalid readings for sensor {sensor_id}: {e}") from e
        # stable sort keeps readings with equal timestamps in response order
        return sorted(readings, key=lambda r: r.timestamp)

    async def fetch_latest_reading(self, sensor_id: int) -> Optional[Reading]:
        payload = await self._call("GET", f"/sensors/{sensor_id}")
        if payload is None:
            return None
        try:
            reading = Reading.model_validate(payload)
        except ValidationError as e:
            raise ProtocolError(f"invalid latest reading for sensor {sensor_id}: {e}") from e
        # a sensor without data comes back as a zero-valued object
        if reading.timestamp == 0:
            return None
        return reading

    async def set_light_state(self, sensor_id: int, desired: bool) -> Union[Reading, LightState]:
        """
        Ask the Gateway to switch the light of a sensor.

        Returns the Reading reflecting the applied state, or a bare LightState
        when the Gateway only acknowledges the light value. An empty 2xx reply
        means the command was accepted as sent.
        """
        body = LightCommand(light_on=desired).model_dump(by_alias=True)
        payload = await self._call("POST", f"/sensors/{sensor_id}", json=body, command=True)
        if payload is None:
            return LightState(light_on=desired)
        if not isinstance(payload, dict):
            raise ProtocolError(f"light command for sensor {sensor_id} returned no acknowledgment")
        try:
            return Reading.model_validate(payload)
        except ValidationError:
            pass
        try:
            return LightState.model_validate(payload)
        except ValidationError as e:
            raise ProtocolError(f"invalid light acknowledgment for sensor {sensor_id}: {e}") from e

    async def _call(self, method: str, path: str, command: bool = False, **kwargs: Any) -> Any:
        return await asyncio.to_thread(self._request, method, path, command, **kwargs)

    def _request(self, method: str, path: str, command: bool = False, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url}")
        try:
            response = self.session.request(
                method, url, headers=self.headers, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            logger.warning(f"{method} {url} failed: {e}")
            raise NetworkError(f"{method} {path} failed: {e}") from e

        status = response.status_code
        if command and status in _CONFLICT_STATUSES:
            logger.warning(f"{method} {url} rejected with {status}")
            raise ConflictError(f"sensor for {path} no longer exists", status_code=status)
        if status >= 500:
            logger.warning(f"{method} {url} returned {status}")
            raise NetworkError(f"{method} {path} returned {status}", status_code=status)
        if not 200 <= status < 300:
            logger.warning(f"{method} {url} returned {status}")
            raise ProtocolError(f"{method} {path} returned {status}", status_code=status)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ProtocolError(f"{method} {path} returned a non-JSON body", status_code=status) from e
