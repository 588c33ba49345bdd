from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import yaml


ROOT_DIR = Path(__file__).resolve().parents[1]
CONFIG_PATH = ROOT_DIR / "config.yaml"

DEFAULT_FEED_URL = "https://api-endpoint.mta.info/Dataservice/mtagtfsfeeds/nyct%2Fgtfs-nqrw"
DEFAULT_NORTH_STOP = "R17N"
DEFAULT_SOUTH_STOP = "R17S"
DEFAULT_MAX_ARRIVALS = 5

OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"
HOURLY_FIELDS: Tuple[str, ...] = (
    "temperature_2m",
    "precipitation",
    "visibility",
    "is_day",
    "weather_code",
)
CURRENT_FIELDS: Tuple[str, ...] = (
    "temperature_2m",
    "precipitation",
    "weather_code",
    "rain",
    "showers",
    "snowfall",
    "is_day",
)
DAILY_FIELDS: Tuple[str, ...] = (
    "temperature_2m_max",
    "temperature_2m_min",
    "weather_code",
)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8787

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StopPair:
    north: str = DEFAULT_NORTH_STOP
    south: str = DEFAULT_SOUTH_STOP


@dataclass(frozen=True)
class WeatherQuery:
    base_url: str = OPEN_METEO_URL
    latitude: float = 40.7506
    longitude: float = -73.9935
    timezone: str = "America/New_York"
    forecast_days: int = 3
    temperature_unit: str = "fahrenheit"
    wind_speed_unit: str = "mph"
    precipitation_unit: str = "inch"
    hourly: Tuple[str, ...] = HOURLY_FIELDS
    current: Tuple[str, ...] = CURRENT_FIELDS
    daily: Tuple[str, ...] = DAILY_FIELDS

    def url(self) -> str:
        params = [
            ("latitude", self.latitude),
            ("longitude", self.longitude),
            ("daily", ",".join(self.daily)),
            ("hourly", ",".join(self.hourly)),
            ("current", ",".join(self.current)),
            ("timezone", self.timezone),
            ("forecast_days", self.forecast_days),
            ("wind_speed_unit", self.wind_speed_unit),
            ("temperature_unit", self.temperature_unit),
            ("precipitation_unit", self.precipitation_unit),
        ]
        return f"{self.base_url}?{urlencode(params, safe=',')}"


@dataclass(frozen=True)
class AppConfig:
    feed_url: str = DEFAULT_FEED_URL
    stops: StopPair = field(default_factory=StopPair)
    max_arrivals: int = DEFAULT_MAX_ARRIVALS
    weather: WeatherQuery = field(default_factory=WeatherQuery)
    timeout_seconds: Optional[float] = None
    api_key: Optional[str] = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    @property
    def weather_url(self) -> str:
        return self.weather.url()


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"Config section '{name}' must be a mapping.")
    return value


def _require_str(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Config value '{name}' must be a non-empty string.")
    return value.strip()


def _require_int(value: Any, name: str, minimum: int = 0) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Config value '{name}' must be an integer.") from exc
    if number < minimum:
        raise ValueError(f"Config value '{name}' must be >= {minimum}.")
    return number


def _require_float(value: Any, name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Config value '{name}' must be a number.") from exc


def _field_list(value: Any, name: str, fallback: Tuple[str, ...]) -> Tuple[str, ...]:
    if value is None:
        return fallback
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list):
        raise ValueError(f"Config value '{name}' must be a list or comma separated string.")
    fields = tuple(str(item).strip() for item in value if str(item).strip())
    if not fields:
        raise ValueError(f"Config value '{name}' cannot be empty.")
    return fields


def _parse_weather(section: Dict[str, Any]) -> WeatherQuery:
    defaults = WeatherQuery()
    return WeatherQuery(
        base_url=_require_str(section.get("base_url", defaults.base_url), "weather.base_url"),
        latitude=_require_float(section.get("latitude", defaults.latitude), "weather.latitude"),
        longitude=_require_float(section.get("longitude", defaults.longitude), "weather.longitude"),
        timezone=_require_str(section.get("timezone", defaults.timezone), "weather.timezone"),
        forecast_days=_require_int(
            section.get("forecast_days", defaults.forecast_days), "weather.forecast_days", minimum=1
        ),
        temperature_unit=_require_str(
            section.get("temperature_unit", defaults.temperature_unit), "weather.temperature_unit"
        ),
        wind_speed_unit=_require_str(
            section.get("wind_speed_unit", defaults.wind_speed_unit), "weather.wind_speed_unit"
        ),
        precipitation_unit=_require_str(
            section.get("precipitation_unit", defaults.precipitation_unit),
            "weather.precipitation_unit",
        ),
        hourly=_field_list(section.get("hourly"), "weather.hourly", defaults.hourly),
        current=_field_list(section.get("current"), "weather.current", defaults.current),
        daily=_field_list(section.get("daily"), "weather.daily", defaults.daily),
    )


def parse_config(data: Dict[str, Any], environ: Optional[Dict[str, str]] = None) -> AppConfig:
    """Build an AppConfig from a config.yaml mapping plus environment overrides."""

    env = os.environ if environ is None else environ

    mta = _section(data, "mta")
    stops = mta.get("stops", {}) or {}
    if not isinstance(stops, dict):
        raise ValueError("Config section 'mta.stops' must be a mapping.")
    http = _section(data, "http")
    server = _section(data, "server")

    timeout = http.get("timeout_seconds")
    timeout_seconds = None if timeout is None else _require_float(timeout, "http.timeout_seconds")
    if timeout_seconds is not None and timeout_seconds <= 0:
        raise ValueError("Config value 'http.timeout_seconds' must be positive.")

    api_key = env.get("MTA_API_KEY") or None

    return AppConfig(
        feed_url=_require_str(mta.get("feed_url", DEFAULT_FEED_URL), "mta.feed_url"),
        stops=StopPair(
            north=_require_str(stops.get("north", DEFAULT_NORTH_STOP), "mta.stops.north"),
            south=_require_str(stops.get("south", DEFAULT_SOUTH_STOP), "mta.stops.south"),
        ),
        max_arrivals=_require_int(
            mta.get("max_arrivals", DEFAULT_MAX_ARRIVALS), "mta.max_arrivals", minimum=1
        ),
        weather=_parse_weather(_section(data, "weather")),
        timeout_seconds=timeout_seconds,
        api_key=api_key,
        host=_require_str(env.get("HOST") or server.get("host", DEFAULT_HOST), "server.host"),
        port=_require_int(env.get("PORT") or server.get("port", DEFAULT_PORT), "server.port", minimum=1),
    )


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    if config_path is None:
        override = os.environ.get("MTA_PROXY_CONFIG")
        config_path = Path(override) if override else CONFIG_PATH
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    logger.info("Loading config from %s", config_path)
    with config_path.open() as handle:
        data = yaml.safe_load(handle)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("Config root must be a mapping.")
    return parse_config(data)
