from typing import Literal

from pydantic import BaseModel, ConfigDict


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    state: str = ""
    country: str = ""
    lat: float
    lon: float


class CurrentConditions(BaseModel):
    """Instantaneous reading. Numeric fields are None when upstream omits them."""
    description: str = ""
    temp: float | None = None
    feels_like: float | None = None
    humidity: float | None = None
    wind_speed: float | None = None
    clouds: float | None = None
    dt: int | None = None


class ForecastDay(BaseModel):
    day: str
    temp: float | None = None
    pop: float | None = None
    description: str = ""


class NormalizedWeather(BaseModel):
    location: Location
    current: CurrentConditions
    forecast: list[ForecastDay] = []


AdviceSource = Literal["rules", "llm", "fallback"]


class AdviceResult(BaseModel):
    tips: list[str]
    source: AdviceSource

    def as_text(self) -> str:
        return "\n".join(f"- {tip}" for tip in self.tips)


class AdviceResponse(BaseModel):
    advice: str
    tips: list[str]
    source: AdviceSource


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    status: str
    weather_api_key_configured: bool
    llm_configured: bool
    offline_advice_only: bool
