import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

# Load .env from project root (one level above weather-server/)
load_dotenv(dotenv_path=Path(__file__).parent.parent / ".env")

OPENWEATHER_BASE_URL = "https://api.openweathermap.org"
CACHE_TTL_SECONDS = 5 * 60


class Settings(BaseModel):
    """Startup configuration. A missing ``openai_api_key`` selects the rule engine."""

    weather_api_key: str = ""
    openai_api_key: str | None = None
    offline_advice_only: bool = False
    openai_model: str = "gpt-3.5-turbo"
    openai_base_url: str | None = None
    weather_base_url: str = OPENWEATHER_BASE_URL
    upstream_timeout: float = 10.0
    cache_ttl: float = CACHE_TTL_SECONDS
    port: int = 3000

    @property
    def llm_configured(self) -> bool:
        return bool(self.openai_api_key)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            weather_api_key=os.getenv("WEATHER_API_KEY", ""),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            offline_advice_only=os.getenv("USE_MOCK_AI", "").lower() == "true",
            openai_model=os.getenv("OPENAI_MODEL", "gpt-3.5-turbo"),
            openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
            weather_base_url=os.getenv("WEATHER_BASE_URL", OPENWEATHER_BASE_URL),
            upstream_timeout=float(os.getenv("UPSTREAM_TIMEOUT", "10.0")),
            port=int(os.getenv("PORT", "3000")),
        )
