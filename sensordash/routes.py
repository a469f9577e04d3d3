from __future__ import annotations
from typing import List
from fastapi import APIRouter, HTTPException, Depends, Query
from .models import Reading, LightCommand, HealthResponse, ErrorResponse
from .simulator import Simulator, parse_date, DEFAULT_START, DEFAULT_END


router = APIRouter()
sim: Simulator | None = None


def get_simulator() -> Simulator:
    global sim
    if sim is None:
        sim = Simulator()
    return sim


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    tags=["Health"]
)
def health(simulator: Simulator = Depends(get_simulator)) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="ok", sensors=len(simulator.list_sensors()))


@router.get(
    "/sensors",
    response_model=List[int],
    summary="List sensor ids",
    description="Returns the identifiers of all sensors that reported data, ordered by id",
    tags=["Sensors"]
)
def list_sensors(simulator: Simulator = Depends(get_simulator)) -> List[int]:
    """Get all sensor ids."""
    return simulator.list_sensors()


@router.get(
    "/sensors/{sensor_id}",
    response_model=Reading,
    summary="Latest reading",
    description="Returns the most recent reading of a sensor, or a zero-valued reading when it has none",
    tags=["Sensors"]
)
def latest_reading(sensor_id: int, simulator: Simulator = Depends(get_simulator)) -> Reading:
    """Get the latest reading of a sensor."""
    reading = simulator.latest(sensor_id)
    if reading is None:
        return Reading(sensor_id=0, timestamp=0, temperature=0, humidity=0, luminosity=0, light_on=False)
    return reading


@router.get(
    "/sensors/{sensor_id}/readings",
    response_model=List[Reading],
    summary="Reading history",
    description="Readings of a sensor between start and end (YYYY-MM-DD or YYYY-MM-DDTHH:MM:SS)",
    responses={400: {"model": ErrorResponse, "description": "Invalid start or end date"}},
    tags=["Sensors"]
)
def list_readings(
    sensor_id: int,
    start: str = Query(default=DEFAULT_START, description="Start date"),
    end: str = Query(default=DEFAULT_END, description="End date"),
    simulator: Simulator = Depends(get_simulator),
) -> List[Reading]:
    """Get readings of a sensor within a date range."""
    try:
        ts_from = parse_date(start)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid start date")
    try:
        ts_to = parse_date(end)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid end date")
    return simulator.readings(sensor_id, ts_from, ts_to)


@router.post(
    "/sensors/{sensor_id}",
    response_model=Reading,
    summary="Set light state",
    description="Switch the light of a sensor and return the reading reflecting the applied state",
    responses={404: {"model": ErrorResponse, "description": "Sensor not found"}},
    tags=["Commands"]
)
def set_light(
    sensor_id: int, body: LightCommand, simulator: Simulator = Depends(get_simulator)
) -> Reading:
    """Set the light state of a sensor."""
    try:
        return simulator.set_light(sensor_id, body.light_on)
    except KeyError:
        raise HTTPException(status_code=404, detail="sensor not found")
