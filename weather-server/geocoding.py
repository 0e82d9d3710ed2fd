import logging

import httpx

from config import OPENWEATHER_BASE_URL
from errors import LocationNotFoundError, UpstreamError
from models import Location

logger = logging.getLogger(__name__)


class GeoResolver:
    """Resolves a free-text city name through the OpenWeatherMap geocoding API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        base_url: str = OPENWEATHER_BASE_URL,
        timeout: float = 10.0,
    ):
        self._client = client
        self._api_key = api_key
        self.url = f"{base_url}/geo/1.0/direct"
        self._timeout = timeout

    async def resolve(self, city: str) -> Location:
        params = {"q": city, "limit": 1, "appid": self._api_key}

        try:
            response = await self._client.get(self.url, params=params, timeout=self._timeout)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.error("Geocoding timed out for city=%r", city)
            raise UpstreamError("geocoding timed out") from exc
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Geocoding HTTP error %s for city=%r", exc.response.status_code, city
            )
            raise UpstreamError("geocoding failed") from exc
        except httpx.RequestError as exc:
            logger.error("Geocoding unreachable for city=%r: %s", city, exc)
            raise UpstreamError("geocoding failed") from exc

        matches = response.json()
        if not matches:
            logger.warning("City not found: %r", city)
            raise LocationNotFoundError("City not found")

        match = matches[0]
        return Location(
            name=match.get("name", ""),
            state=match.get("state") or "",
            country=match.get("country", ""),
            lat=match["lat"],
            lon=match["lon"],
        )
