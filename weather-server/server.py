import json
import logging
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from advice import AdviceGenerator, make_chat_client
from cache import ResultCache
from config import Settings
from errors import InvalidQueryError, LocationNotFoundError, UpstreamError
from geocoding import GeoResolver
from models import AdviceResponse, HealthResponse, NormalizedWeather
from weather import WeatherFetcher, WeatherService

WEATHER_SERVER_ERROR = "Server error fetching weather"

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = Settings.from_env()

_weather_service: WeatherService | None = None
_advice_generator: AdviceGenerator | None = None


def build_weather_service(settings: Settings, client: httpx.AsyncClient) -> WeatherService:
    return WeatherService(
        resolver=GeoResolver(
            client,
            settings.weather_api_key,
            base_url=settings.weather_base_url,
            timeout=settings.upstream_timeout,
        ),
        fetcher=WeatherFetcher(
            client,
            settings.weather_api_key,
            base_url=settings.weather_base_url,
            timeout=settings.upstream_timeout,
        ),
        cache=ResultCache(ttl_seconds=settings.cache_ttl),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _weather_service, _advice_generator

    if not settings.weather_api_key:
        logger.warning(
            "WEATHER_API_KEY is not set. "
            "Upstream weather calls will fail until the key is configured."
        )

    http_client = httpx.AsyncClient()
    chat_client = make_chat_client(settings)
    _weather_service = build_weather_service(settings, http_client)
    _advice_generator = AdviceGenerator(settings, chat_client)
    logger.info(
        "Weather advisor ready: llm_configured=%s, offline_advice_only=%s",
        settings.llm_configured,
        settings.offline_advice_only,
    )
    yield
    await http_client.aclose()
    if chat_client is not None:
        await chat_client.close()
    logger.info("Upstream clients closed.")


app = FastAPI(
    title="Weather Advisor",
    description="Normalized OpenWeatherMap data and short weather tips for a city.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Custom exception handlers ────────────────────────────────────────────────

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Routing errors (unknown path, wrong method) as {"error": "..."} instead of {"detail": ...}."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=exc.headers,
    )


# ── Endpoints ────────────────────────────────────────────────────────────────

@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(
        status="ok",
        weather_api_key_configured=bool(settings.weather_api_key),
        llm_configured=settings.llm_configured,
        offline_advice_only=settings.offline_advice_only,
    )


@app.get("/api/weather", response_model=NormalizedWeather, response_model_exclude_none=True)
async def get_weather(city: str = Query("")):
    logger.info("Incoming GET /api/weather: city=%r", city)

    if _weather_service is None:
        logger.error("Weather service not initialized")
        return JSONResponse(status_code=500, content={"error": WEATHER_SERVER_ERROR})

    try:
        return await _weather_service.get_weather(city)
    except InvalidQueryError as exc:
        return JSONResponse(status_code=400, content={"error": str(exc)})
    except LocationNotFoundError as exc:
        return JSONResponse(status_code=404, content={"error": str(exc)})
    except UpstreamError as exc:
        logger.error("UpstreamError in /api/weather: %s", exc)
        return JSONResponse(status_code=500, content={"error": WEATHER_SERVER_ERROR})
    except Exception:
        logger.error("Unexpected exception in /api/weather", exc_info=True)
        return JSONResponse(status_code=500, content={"error": WEATHER_SERVER_ERROR})


@app.post("/api/ai-advice", response_model=AdviceResponse)
async def ai_advice(request: Request) -> AdviceResponse:
    # The body is read by hand: a malformed payload must still get advice.
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Advice request body is not valid JSON")
        payload = None

    if _advice_generator is None:
        generator = AdviceGenerator(Settings(offline_advice_only=True))
    else:
        generator = _advice_generator

    result = await generator.generate(payload if payload is not None else {})
    return AdviceResponse(advice=result.as_text(), tips=result.tips, source=result.source)


if __name__ == "__main__":
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=settings.port,
        reload=False,
    )
