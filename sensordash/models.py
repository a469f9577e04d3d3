from __future__ import annotations
from enum import Enum
from typing import Any, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, StrictBool

QueryKey = Tuple[Any, ...]


def sensors_key() -> QueryKey:
    return ("sensors",)


def readings_key(sensor_id: int) -> QueryKey:
    return ("readings", sensor_id)


def latest_key(sensor_id: int) -> QueryKey:
    return ("latest", sensor_id)


class Reading(BaseModel):
    """Reading is one sample reported by a sensor."""
    model_config = ConfigDict(populate_by_name=True)

    timestamp: int = Field(description="Unix timestamp in seconds")
    temperature: float = Field(description="Temperature in degrees Celsius")
    humidity: float = Field(description="Relative humidity in percent")
    luminosity: float = Field(description="Ambient light level")
    light_on: StrictBool = Field(alias="lightOn", description="Whether the actuated light is on")
    sensor_id: Optional[int] = Field(default=None, alias="id", description="Owning sensor, when the Gateway sends it")


class LightState(BaseModel):
    """Minimal acknowledgment of a light command when no full reading is returned."""
    model_config = ConfigDict(populate_by_name=True)

    light_on: StrictBool = Field(alias="lightOn")


class LightCommand(BaseModel):
    """Request body for a light state change."""
    model_config = ConfigDict(populate_by_name=True)

    light_on: StrictBool = Field(alias="lightOn", description="Desired light state")


class QueryStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class LightStatus(str, Enum):
    UNKNOWN = "unknown"
    ON = "on"
    OFF = "off"


class QueryEntry(BaseModel):
    """Cached state of a single query, keyed by its identity."""
    key: QueryKey
    status: QueryStatus = QueryStatus.IDLE
    data: Any = None
    error: Optional[str] = None
    fetched_at: Optional[float] = Field(default=None, description="Unix timestamp of the last successful fetch or local write")
    is_stale: bool = True


class CommandResult(BaseModel):
    """Result of a light command issued from a session."""
    ok: bool = Field(description="Whether the Gateway applied the command")
    sensor_id: Optional[int] = Field(default=None, description="Sensor the command targeted")
    desired: Optional[bool] = Field(default=None, description="Light state that was requested")
    reading: Optional[Reading] = Field(default=None, description="Reading merged into the cache")
    error: Optional[str] = Field(default=None, description="Error class name when the command failed")
    message: str = Field(default="", description="Status message describing the result")


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(description="Service status (always 'ok' if service is running)")
    sensors: int = Field(description="Number of simulated sensors")


class ErrorResponse(BaseModel):
    """Standard error response format."""
    detail: str = Field(description="Error message describing what went wrong")


class SensorButton(BaseModel):
    id: int
    label: str
    selected: bool = False


class ChartSeries(BaseModel):
    timestamps: List[int] = Field(default_factory=list)
    temperature: List[float] = Field(default_factory=list)
    humidity: List[float] = Field(default_factory=list)
    luminosity: List[float] = Field(default_factory=list)


class LightControl(BaseModel):
    status: LightStatus = LightStatus.UNKNOWN
    enabled: bool = False
    label: str = ""


class DashboardView(BaseModel):
    """Render model projected from the selection and the query cache."""
    sensors: List[SensorButton] = Field(default_factory=list)
    sensors_status: QueryStatus = QueryStatus.IDLE
    selected_sensor: Optional[int] = None
    readings_status: QueryStatus = QueryStatus.IDLE
    chart: Optional[ChartSeries] = None
    last_reading: Optional[Reading] = None
    light: LightControl = Field(default_factory=LightControl)
    message: str = ""
    error: Optional[str] = None
    notice: Optional[str] = None
