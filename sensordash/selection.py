from __future__ import annotations
import logging
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

SelectionListener = Callable[[Optional[int], Optional[int]], None]


class SelectionState:
    """Holds the single active sensor, or None when nothing is chosen."""

    def __init__(self, selected_sensor: Optional[int] = None) -> None:
        self._selected: Optional[int] = selected_sensor
        self._listeners: List[SelectionListener] = []

    @property
    def selected_sensor(self) -> Optional[int]:
        return self._selected

    def select(self, sensor_id: Optional[int]) -> bool:
        """Make sensor_id the active sensor. Returns False when it already was."""
        if sensor_id == self._selected:
            return False
        previous = self._selected
        self._selected = sensor_id
        logger.debug(f"selection changed {previous} -> {sensor_id}")
        for listener in list(self._listeners):
            try:
                listener(previous, sensor_id)
            except Exception:
                logger.exception("selection listener failed")
        return True

    def clear(self) -> bool:
        return self.select(None)

    def subscribe(self, listener: SelectionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
