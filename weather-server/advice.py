import logging
import math
import re
from collections.abc import Mapping
from typing import Any

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel

from config import Settings
from models import AdviceResult
from prompts import SYSTEM_PROMPT, build_advice_prompt, round_half_up

MAX_TIPS = 4
LLM_TEMPERATURE = 0.6
LLM_MAX_TOKENS = 150

HEAT_TIP = "It's hot; wear light cotton and drink plenty of water."
COOL_TIP = "Cool weather; wear a light jacket or sweater."
PLEASANT_TIP = "Pleasant temperature; ideal for outdoor tasks."
HUMIDITY_TIP = "High humidity; choose breathable clothes and stay hydrated."
WIND_TIP = "Breezy; secure loose items and avoid lightweight umbrellas."
UMBRELLA_TIP = "Carry an umbrella; showers expected."
AIR_QUALITY_TIP = "Air quality might be low; consider a mask if sensitive."
CLEAR_SKIES_TIP = "Clear skies; good day for a walk or outing."
DEFAULT_TIP = "Plan your day with basic precautions."
FALLBACK_TIP = "Weather looks manageable; stay safe and carry water."

_LIST_MARKER = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")

logger = logging.getLogger(__name__)


def make_chat_client(settings: Settings) -> AsyncOpenAI | None:
    if not settings.llm_configured:
        return None
    return AsyncOpenAI(api_key=settings.openai_api_key, base_url=settings.openai_base_url)


def _to_number(value: Any) -> float:
    """Coerce to float; anything missing or unparseable becomes NaN."""
    if value is None or isinstance(value, bool):
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def _rain_probability(forecast: list[Any]) -> int:
    if not forecast:
        return 0
    first = forecast[0]
    pop = _to_number(first.get("pop")) if isinstance(first, Mapping) else math.nan
    if math.isnan(pop):
        pop = 0.0
    return round_half_up(pop * 100)


def rule_based_tips(payload: Mapping[str, Any]) -> list[str]:
    """Deterministic advice from thresholds on the current reading.

    Tips are collected in a fixed priority order and truncated to MAX_TIPS.
    NaN never satisfies a comparison, so missing readings trigger nothing.
    """
    current = payload.get("current") or {}
    forecast = payload.get("forecast") or []

    temp = _to_number(current.get("temp"))
    feels_like = _to_number(current.get("feels_like"))
    humidity = _to_number(current.get("humidity"))
    wind_speed = _to_number(current.get("wind_speed"))
    description = str(current.get("description") or "").lower()
    rain_chance = _rain_probability(forecast)

    tips = []
    if not math.isnan(temp):
        if temp >= 32 or feels_like >= 34:
            tips.append(HEAT_TIP)
        elif temp <= 15:
            tips.append(COOL_TIP)
        else:
            tips.append(PLEASANT_TIP)
    if humidity >= 70:
        tips.append(HUMIDITY_TIP)
    if wind_speed >= 8:
        tips.append(WIND_TIP)
    if "rain" in description or rain_chance >= 40:
        tips.append(UMBRELLA_TIP)
    if "haze" in description or "smoke" in description:
        tips.append(AIR_QUALITY_TIP)
    if "clear" in description:
        tips.append(CLEAR_SKIES_TIP)

    return (tips or [DEFAULT_TIP])[:MAX_TIPS]


def parse_tips(text: str) -> list[str]:
    tips = []
    for line in text.splitlines():
        tip = _LIST_MARKER.sub("", line).strip()
        if tip:
            tips.append(tip)
    return tips[:MAX_TIPS]


def _as_payload(weather: Any) -> dict[str, Any]:
    if isinstance(weather, BaseModel):
        return weather.model_dump()
    if isinstance(weather, Mapping):
        return dict(weather)
    raise TypeError(f"expected a weather object, got {type(weather).__name__}")


class AdviceGenerator:
    """Produces 1-4 advisory tips; never raises.

    Order of preference: the rule engine when offline mode is forced, then
    the chat completion when a client is configured, then the rule engine,
    then a single fixed tip if anything above blows up.
    """

    def __init__(
        self,
        settings: Settings,
        chat_client: AsyncOpenAI | None = None,
    ):
        self.offline_only = settings.offline_advice_only
        self.model = settings.openai_model
        self.timeout = settings.upstream_timeout
        self._chat_client = chat_client

    async def generate(self, weather: Any) -> AdviceResult:
        try:
            payload = _as_payload(weather)

            if self.offline_only:
                logger.info("Offline advice mode: using rule-based tips")
                return AdviceResult(tips=rule_based_tips(payload), source="rules")

            if self._chat_client is None:
                logger.warning("OpenAI key missing. Falling back to rule-based tips.")
                return AdviceResult(tips=rule_based_tips(payload), source="rules")

            tips = await self._llm_tips(payload)
            if tips:
                return AdviceResult(tips=tips, source="llm")

            logger.warning("No usable LLM advice. Falling back to rule-based tips.")
            return AdviceResult(tips=rule_based_tips(payload), source="rules")
        except Exception:
            logger.error("Advice generation failed; returning fallback tip", exc_info=True)
            return AdviceResult(tips=[FALLBACK_TIP], source="fallback")

    async def _llm_tips(self, payload: dict[str, Any]) -> list[str] | None:
        prompt = build_advice_prompt(
            payload.get("location") or {},
            payload.get("current") or {},
            payload.get("forecast") or [],
        )

        try:
            response = await self._chat_client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=LLM_TEMPERATURE,
                max_tokens=LLM_MAX_TOKENS,
                timeout=self.timeout,
            )
        except openai.APIStatusError as exc:
            logger.error("OpenAI error %s: %s", exc.status_code, exc.message)
            return None
        except openai.APIError as exc:
            logger.error("OpenAI call failed: %s", exc)
            return None

        if not response.choices:
            return None
        content = response.choices[0].message.content
        if not content or not content.strip():
            return None
        return parse_tips(content) or None
