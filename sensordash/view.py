"""
Projection of the session state into a render model.

project() is a pure function of the selection and the query cache; callers
re-invoke it after every change they are notified about.
"""
from __future__ import annotations
from typing import Optional

from .cache import QueryCache
from .models import (
    ChartSeries,
    DashboardView,
    LightControl,
    LightStatus,
    QueryStatus,
    SensorButton,
    readings_key,
    sensors_key,
)
from .readings import last_reading, light_status
from .selection import SelectionState

NO_SELECTION_MESSAGE = "Select a sensor to view data"


def project(selection: SelectionState, cache: QueryCache, notice: Optional[str] = None) -> DashboardView:
    selected = selection.selected_sensor
    view = DashboardView(selected_sensor=selected, notice=notice)

    sensors_entry = cache.get(sensors_key())
    if sensors_entry is not None:
        view.sensors_status = sensors_entry.status
        view.sensors = [
            SensorButton(id=sid, label=f"Sensor {sid}", selected=sid == selected)
            for sid in sensors_entry.data or []
        ]
        if sensors_entry.status is QueryStatus.ERROR:
            view.error = sensors_entry.error

    if selected is None:
        view.message = NO_SELECTION_MESSAGE
        return view

    entry = cache.get(readings_key(selected))
    if entry is None:
        view.message = "Loading..."
        return view

    view.readings_status = entry.status
    readings = entry.data
    if entry.status is QueryStatus.ERROR:
        view.error = entry.error
    if readings:
        view.chart = ChartSeries(
            timestamps=[r.timestamp for r in readings],
            temperature=[r.temperature for r in readings],
            humidity=[r.humidity for r in readings],
            luminosity=[r.luminosity for r in readings],
        )
        view.last_reading = last_reading(readings)
    elif entry.status is QueryStatus.LOADING:
        view.message = "Loading..."
    else:
        view.message = "No readings"

    status = light_status(readings)
    view.light = LightControl(
        status=status,
        enabled=entry.status is QueryStatus.SUCCESS and status is not LightStatus.UNKNOWN,
        label={
            LightStatus.ON: "Turn light off",
            LightStatus.OFF: "Turn light on",
        }.get(status, "Light unavailable"),
    )
    return view
