"""
Current weather integration.

Geocodes a place name with Nominatim (OpenStreetMap), then reads the current
conditions and today's forecast from Open-Meteo. Neither API needs a key.
"""

from typing import Any

import httpx
from pydantic import Field

from pathways.config.logging import get_logger
from pathways.tools.base import IntegrationStatus, ToolDescriptor, ToolOutput, ToolParams

logger = get_logger(__name__)

NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"
USER_AGENT = "Pathways/0.1 (weather integration)"
DEFAULT_LOCATION = "Greenwich, London"
KELVIN_OFFSET = 273.15

UNIT_SUFFIXES: dict[str, str] = {
    "metric": "°C",
    "imperial": "°F",
    "fahrenheit": "°F",
    "kelvin": "K",
    "scientific": "K",
}

# WMO weather interpretation codes: code -> (day, night)
WMO_CODES: dict[int, tuple[str, str]] = {
    0: ("sunny", "clear"),
    1: ("mainly sunny", "mainly clear"),
    2: ("partly cloudy", "partly cloudy"),
    3: ("cloudy", "cloudy"),
    45: ("foggy", "foggy"),
    48: ("rime fog", "rime fog"),
    51: ("light drizzle", "light drizzle"),
    53: ("drizzle", "drizzle"),
    55: ("heavy drizzle", "heavy drizzle"),
    56: ("light freezing drizzle", "light freezing drizzle"),
    57: ("freezing drizzle", "freezing drizzle"),
    61: ("light rain", "light rain"),
    63: ("rain", "rain"),
    65: ("heavy rain", "heavy rain"),
    66: ("light freezing rain", "light freezing rain"),
    67: ("freezing rain", "freezing rain"),
    71: ("light snow", "light snow"),
    73: ("snow", "snow"),
    75: ("heavy snow", "heavy snow"),
    77: ("snow grains", "snow grains"),
    80: ("light showers", "light showers"),
    81: ("showers", "showers"),
    82: ("heavy showers", "heavy showers"),
    85: ("light snow showers", "light snow showers"),
    86: ("snow showers", "snow showers"),
    95: ("thunderstorms", "thunderstorms"),
    96: ("light thunderstorms with hail", "light thunderstorms with hail"),
    99: ("thunderstorms with hail", "thunderstorms with hail"),
}


class CurrentWeatherParams(ToolParams):
    location: str = Field(
        default=DEFAULT_LOCATION,
        description=f"The location to get the weather for. By default, this is set to {DEFAULT_LOCATION}.",
    )
    units: str = Field(
        default="metric",
        description=(
            "The units to use for the temperature (metric, imperial, or scientific). "
            "By default, this is set to metric."
        ),
    )


def resolve_units(units: str | None) -> str:
    """Pick the first known unit system mentioned in units; metric otherwise."""
    wanted = (units or "").lower()
    return next((u for u in UNIT_SUFFIXES if u in wanted), "metric")


def describe(code: Any, is_day: bool) -> str | None:
    """Human description of a WMO weather code."""
    try:
        names = WMO_CODES.get(int(code))
    except (TypeError, ValueError):
        return None
    if names is None:
        return None
    return names[0] if is_day else names[1]


def _format_temperature(value: Any, units: str) -> str:
    if not isinstance(value, (int, float)):
        return "<unknown>"
    if units in ("kelvin", "scientific"):
        value = value + KELVIN_OFFSET
    return f"{round(value, 1):g}{UNIT_SUFFIXES[units]}"


def _first(values: Any) -> Any:
    return values[0] if isinstance(values, list) and values else None


async def _geocode(client: httpx.AsyncClient, location: str) -> dict[str, Any] | None:
    try:
        response = await client.get(
            NOMINATIM_URL,
            params={"q": location, "format": "jsonv2", "addressdetails": 1, "limit": 1},
        )
        response.raise_for_status()
        places = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(f"Geocoding '{location}' failed: {e}")
        return None
    return places[0] if isinstance(places, list) and places else None


async def _forecast(client: httpx.AsyncClient, place: dict[str, Any], units: str) -> dict[str, Any]:
    params: dict[str, Any] = {
        "latitude": place.get("lat"),
        "longitude": place.get("lon"),
        "current": "temperature_2m,is_day,weather_code",
        "daily": "weather_code,temperature_2m_max,temperature_2m_min",
        "timezone": "auto",
        "forecast_days": 1,
    }
    if units in ("imperial", "fahrenheit"):
        params["temperature_unit"] = "fahrenheit"

    try:
        response = await client.get(OPEN_METEO_URL, params=params)
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(f"Forecast lookup failed: {e}")
        return {}
    return data if isinstance(data, dict) else {}


async def current_weather(args: dict[str, Any]) -> ToolOutput:
    """Describe the current weather and today's forecast for a location."""
    location = args.get("location") or DEFAULT_LOCATION
    units = resolve_units(args.get("units"))

    async with httpx.AsyncClient(timeout=10.0, headers={"User-Agent": USER_AGENT}) as client:
        place = await _geocode(client, location)
        if place is None:
            return ToolOutput(
                status=IntegrationStatus.FAILED,
                content=f"The weather in {location} is unknown",
            )
        weather = await _forecast(client, place, units)

    current = weather.get("current") or {}
    daily = weather.get("daily") or {}
    is_day = current.get("is_day") == 1

    now = describe(current.get("weather_code"), is_day) or "<unknown>"
    today = describe(_first(daily.get("weather_code")), is_day) or "<unknown>"
    temperature = _format_temperature(current.get("temperature_2m"), units)
    high = _format_temperature(_first(daily.get("temperature_2m_max")), units)
    low = _format_temperature(_first(daily.get("temperature_2m_min")), units)

    name = place.get("display_name") or location
    return ToolOutput(
        content=(
            f"The weather in {name} is currently {temperature} and {now}.\n\n"
            f"Today, the weather is expected to be {today}, with a high of {high} and a low of {low}."
        ),
        metadata={"latitude": place.get("lat"), "longitude": place.get("lon"), "units": units},
    )


CURRENT_WEATHER = ToolDescriptor(
    name="current_weather",
    description="Get the weather for a given location",
    params_model=CurrentWeatherParams,
    func=current_weather,
)
