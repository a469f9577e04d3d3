from __future__ import annotations
import logging
import random
import threading
import time
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional
from .models import Reading
from .config import SIM_SENSORS, SIM_HISTORY, SIM_INTERVAL

logger = logging.getLogger(__name__)

# Date formats accepted for readings range filters
DATE_FORMATS = ("%Y-%m-%d", "%Y-%m-%dT%H:%M:%S")
DEFAULT_START = "2000-01-01"
DEFAULT_END = "2100-01-01"


def parse_date(value: str) -> int:
    """Parse a range bound into unix seconds (UTC). Raises ValueError if no format matches."""
    for fmt in DATE_FORMATS:
        try:
            dt = datetime.strptime(value, fmt)
        except ValueError:
            continue
        return int(dt.replace(tzinfo=timezone.utc).timestamp())
    raise ValueError(f"invalid date: {value}")


class Simulator:
    """
    In-memory stand-in for the sensor Gateway.

    Each sensor has a reading history that grows by a random walk of its
    measurements. Light commands are applied immediately and reported as a
    new reading. Nothing is persisted.
    """

    def __init__(
        self,
        sensor_ids: Iterable[int] = SIM_SENSORS,
        history: int = SIM_HISTORY,
        interval: float = SIM_INTERVAL,
        seed: Optional[int] = None,
        now: Optional[float] = None,
    ) -> None:
        self.interval = interval
        self._rng = random.Random(seed)
        self._lock = threading.Lock()
        self._readings: Dict[int, List[Reading]] = {}
        self._feed: Optional[threading.Thread] = None
        self._stop = threading.Event()

        start = int(now if now is not None else time.time())
        for sid in sensor_ids:
            self._readings[sid] = []
            for i in range(history):
                ts = start - int((history - 1 - i) * interval)
                self._readings[sid].append(self._next_reading(sid, ts))

    # read

    def list_sensors(self) -> List[int]:
        with self._lock:
            return sorted(self._readings.keys())

    def latest(self, sensor_id: int) -> Optional[Reading]:
        with self._lock:
            history = self._readings.get(sensor_id)
            if not history:
                return None
            return history[-1]

    def readings(self, sensor_id: int, ts_from: int, ts_to: int) -> List[Reading]:
        with self._lock:
            return [
                r for r in self._readings.get(sensor_id, [])
                if ts_from <= r.timestamp <= ts_to
            ]

    # write

    def set_light(self, sensor_id: int, light_on: bool) -> Reading:
        with self._lock:
            if sensor_id not in self._readings:
                raise KeyError(sensor_id)
            history = self._readings[sensor_id]
            ts = int(time.time())
            if history:
                ts = max(ts, history[-1].timestamp + 1)
            reading = self._next_reading(sensor_id, ts, light_on=light_on)
            history.append(reading)
        logger.info(f"Sensor {sensor_id} light set to {'on' if light_on else 'off'}")
        return reading

    def tick(self, now: Optional[float] = None) -> None:
        """Record one new reading per sensor."""
        ts = int(now if now is not None else time.time())
        with self._lock:
            for sid, history in self._readings.items():
                t = max(ts, history[-1].timestamp + 1) if history else ts
                history.append(self._next_reading(sid, t))

    def add_sensor(self, sensor_id: int) -> None:
        with self._lock:
            self._readings.setdefault(sensor_id, [])

    def remove_sensor(self, sensor_id: int) -> bool:
        with self._lock:
            return self._readings.pop(sensor_id, None) is not None

    # background feed

    def start_feed(self) -> None:
        if self._feed is not None or self.interval <= 0:
            return
        self._stop.clear()

        def _loop() -> None:
            while not self._stop.wait(self.interval):
                self.tick()

        self._feed = threading.Thread(target=_loop, name="sensor-feed", daemon=True)
        self._feed.start()
        logger.info(f"Sensor feed started ({self.interval:.0f}s interval)")

    def stop_feed(self) -> None:
        if self._feed is None:
            return
        self._stop.set()
        self._feed.join(timeout=5)
        self._feed = None
        logger.info("Sensor feed stopped")

    def _next_reading(self, sensor_id: int, ts: int, light_on: Optional[bool] = None) -> Reading:
        # caller holds the lock (or is still constructing)
        history = self._readings.get(sensor_id) or []
        prev = history[-1] if history else None
        rng = self._rng
        if prev is None:
            temperature = rng.uniform(18.0, 26.0)
            humidity = rng.uniform(35.0, 60.0)
            luminosity = rng.uniform(50.0, 500.0)
            lit = False
        else:
            temperature = prev.temperature + rng.uniform(-0.5, 0.5)
            humidity = min(100.0, max(0.0, prev.humidity + rng.uniform(-2.0, 2.0)))
            luminosity = max(0.0, prev.luminosity + rng.uniform(-25.0, 25.0))
            lit = prev.light_on
        if light_on is not None:
            lit = light_on
        return Reading(
            sensor_id=sensor_id,
            timestamp=ts,
            temperature=round(temperature, 2),
            humidity=round(humidity, 2),
            luminosity=round(luminosity, 2),
            light_on=lit,
        )
