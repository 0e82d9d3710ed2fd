import asyncio
import logging
from typing import Any

import httpx

from cache import ResultCache
from config import OPENWEATHER_BASE_URL
from errors import InvalidQueryError, UpstreamError
from geocoding import GeoResolver
from models import CurrentConditions, ForecastDay, Location, NormalizedWeather

MAX_FORECAST_DAYS = 5

logger = logging.getLogger(__name__)


def _first_description(payload: dict[str, Any]) -> str:
    weather = payload.get("weather") or []
    if not weather:
        return ""
    return weather[0].get("description") or ""


def normalize_current(payload: dict[str, Any]) -> CurrentConditions:
    main = payload.get("main") or {}
    return CurrentConditions(
        description=_first_description(payload),
        temp=main.get("temp"),
        feels_like=main.get("feels_like"),
        humidity=main.get("humidity"),
        wind_speed=(payload.get("wind") or {}).get("speed"),
        clouds=(payload.get("clouds") or {}).get("all"),
        dt=payload.get("dt"),
    )


def normalize_forecast(payload: dict[str, Any]) -> list[ForecastDay]:
    """Collapse 3-hour entries to one per calendar day.

    The first entry seen for a date wins; upstream lists are chronological,
    so that is the earliest reading of the day.
    """
    days: dict[str, ForecastDay] = {}
    for item in payload.get("list") or []:
        dt_txt = item.get("dt_txt")
        if not isinstance(dt_txt, str) or not dt_txt:
            continue
        day = dt_txt.split(" ")[0]
        if day in days:
            continue
        days[day] = ForecastDay(
            day=day,
            temp=(item.get("main") or {}).get("temp"),
            pop=item.get("pop"),
            description=_first_description(item),
        )
        if len(days) == MAX_FORECAST_DAYS:
            break
    return list(days.values())


def normalize_weather(
    location: Location, current: dict[str, Any], forecast: dict[str, Any]
) -> NormalizedWeather:
    return NormalizedWeather(
        location=location,
        current=normalize_current(current),
        forecast=normalize_forecast(forecast),
    )


class WeatherFetcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        base_url: str = OPENWEATHER_BASE_URL,
        timeout: float = 10.0,
    ):
        self._client = client
        self._api_key = api_key
        self.current_url = f"{base_url}/data/2.5/weather"
        self.forecast_url = f"{base_url}/data/2.5/forecast"
        self._timeout = timeout

    async def _get_json(self, url: str, params: dict[str, Any]) -> dict[str, Any]:
        response = await self._client.get(url, params=params, timeout=self._timeout)
        response.raise_for_status()
        return response.json()

    async def fetch(self, location: Location) -> NormalizedWeather:
        params = {
            "lat": location.lat,
            "lon": location.lon,
            "units": "metric",
            "appid": self._api_key,
        }

        # Both readings are required; the first failure fails the whole fetch.
        try:
            current, forecast = await asyncio.gather(
                self._get_json(self.current_url, params),
                self._get_json(self.forecast_url, params),
            )
        except httpx.TimeoutException as exc:
            logger.error("Weather fetch timed out for %s", location.name)
            raise UpstreamError("weather fetch timed out") from exc
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Weather HTTP error %s from %s",
                exc.response.status_code,
                exc.request.url.path,
            )
            raise UpstreamError("weather fetch failed") from exc
        except httpx.RequestError as exc:
            logger.error("Weather service unreachable for %s: %s", location.name, exc)
            raise UpstreamError("weather fetch failed") from exc

        return normalize_weather(location, current, forecast)


class WeatherService:
    """City name in, cached NormalizedWeather out."""

    def __init__(self, resolver: GeoResolver, fetcher: WeatherFetcher, cache: ResultCache):
        self.resolver = resolver
        self.fetcher = fetcher
        self.cache = cache

    async def get_weather(self, city: str) -> NormalizedWeather:
        city = (city or "").strip()
        if not city:
            raise InvalidQueryError("city is required")

        cached = self.cache.get(city)
        if cached is not None:
            logger.info("Cache hit: city=%r", city)
            return cached

        logger.info("Cache miss: city=%r", city)
        location = await self.resolver.resolve(city)
        weather = await self.fetcher.fetch(location)
        self.cache.put(city, weather)
        return weather
