from __future__ import annotations

import logging
import sys
from typing import Any, Dict, List, Mapping, Optional, Sequence, TypedDict, Union

import requests

from mta_proxy.config import AppConfig, load_config
from mta_proxy.errors import ProxyError, StructuralError, UpstreamUnavailable
from mta_proxy.series import find_index, round_half_away, select


logger = logging.getLogger(__name__)

Number = Union[int, float]

HOURLY_KEYS = ("time", "temperature_2m", "precipitation", "visibility", "is_day", "weather_code")
CURRENT_KEYS = ("time", "temperature_2m", "weather_code", "precipitation", "rain", "snowfall")


class CurrentConditions(TypedDict):
    temp: Optional[int]
    code: Optional[Number]
    prec: Optional[Number]
    rain: Optional[Number]
    snow: Optional[Number]


class HourlyConditions(TypedDict):
    temp: Optional[int]
    prec: Optional[Number]
    visib: Optional[int]
    day: Optional[Number]
    code: Optional[Number]


class WeatherSnapshot(TypedDict):
    startIndex: int
    current: CurrentConditions
    hourly: List[HourlyConditions]


def fetch_forecast(config: AppConfig) -> Dict[str, Any]:
    url = config.weather_url
    response = requests.get(url, timeout=config.timeout_seconds)
    if not response.ok:
        logger.error("Weather API returned HTTP %s.", response.status_code)
        raise UpstreamUnavailable("Weather", response.status_code, url)
    try:
        payload = response.json()
    except ValueError as exc:
        raise StructuralError("Weather response was not valid JSON.") from exc
    if not isinstance(payload, dict):
        raise StructuralError("Weather response root must be an object.")
    return payload


def current_hour_label(label: str) -> str:
    """Truncate an ISO ``YYYY-MM-DDTHH:MM`` label to the top of its hour."""

    if not isinstance(label, str) or len(label) < 13:
        raise StructuralError(f"Unrecognized current time label: {label!r}")
    return label[:13] + ":00"


def _require_mapping(payload: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = payload.get(name)
    if not isinstance(value, dict):
        raise StructuralError(f"Weather response missing '{name}' object.")
    return value


def _hourly_columns(hourly: Mapping[str, Any]) -> Dict[str, Sequence[Any]]:
    columns: Dict[str, Sequence[Any]] = {}
    for key in HOURLY_KEYS:
        column = hourly.get(key)
        if not isinstance(column, list):
            raise StructuralError(f"Weather response missing hourly.{key} list.")
        columns[key] = column

    expected = len(columns["time"])
    for key, column in columns.items():
        if len(column) != expected:
            raise StructuralError(
                f"Weather hourly.{key} has {len(column)} entries, expected {expected}."
            )
    return columns


def _rounded(value: Any, field: str) -> Optional[int]:
    try:
        return round_half_away(value)
    except (TypeError, ValueError) as exc:
        raise StructuralError(f"Weather {field} value {value!r} is not numeric.") from exc


def _current_conditions(current: Mapping[str, Any]) -> CurrentConditions:
    missing = [key for key in CURRENT_KEYS if key not in current]
    if missing:
        raise StructuralError(f"Weather response missing current fields: {', '.join(missing)}.")
    return CurrentConditions(
        temp=_rounded(current["temperature_2m"], "current.temperature_2m"),
        code=current["weather_code"],
        prec=current["precipitation"],
        rain=current["rain"],
        snow=current["snowfall"],
    )


def align_forecast(payload: Mapping[str, Any]) -> WeatherSnapshot:
    current = _require_mapping(payload, "current")
    columns = _hourly_columns(_require_mapping(payload, "hourly"))

    start_index = find_index(columns["time"], current_hour_label(current.get("time")))
    sliced = {key: select(column, start=start_index) for key, column in columns.items()}

    hourly = [
        HourlyConditions(
            temp=_rounded(temp, "hourly.temperature_2m"),
            prec=prec,
            visib=_rounded(visib, "hourly.visibility"),
            day=day,
            code=code,
        )
        for temp, prec, visib, day, code in zip(
            sliced["temperature_2m"],
            sliced["precipitation"],
            sliced["visibility"],
            sliced["is_day"],
            sliced["weather_code"],
        )
    ]

    return WeatherSnapshot(
        startIndex=start_index,
        current=_current_conditions(current),
        hourly=hourly,
    )


def fetch_weather(config: AppConfig) -> WeatherSnapshot:
    snapshot = align_forecast(fetch_forecast(config))
    logger.info(
        "Weather: %s hourly entries from index %s",
        len(snapshot["hourly"]),
        snapshot["startIndex"],
    )
    return snapshot


def _render_output(snapshot: WeatherSnapshot, hours: int = 6) -> str:
    current = snapshot["current"]
    output_lines = [
        f"Now: {current['temp']}° code {current['code']} precip {current['prec']}",
        f"Hourly from index {snapshot['startIndex']}:",
    ]
    for offset, hour in enumerate(snapshot["hourly"][:hours]):
        output_lines.append(
            f"  +{offset}h  {hour['temp']}°  precip {hour['prec']}  "
            f"visibility {hour['visib']}  code {hour['code']}"
        )
    return "\n".join(output_lines)


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    try:
        config = load_config()
    except (OSError, ValueError) as exc:
        logger.error("Failed to load config: %s", exc)
        return 1

    try:
        snapshot = fetch_weather(config)
    except (ProxyError, requests.RequestException) as exc:
        logger.error("Failed to fetch weather: %s", exc)
        return 1

    print(_render_output(snapshot))
    return 0


if __name__ == "__main__":
    sys.exit(main())
