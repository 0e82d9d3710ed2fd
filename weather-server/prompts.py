import math
from typing import Any

SYSTEM_PROMPT = "You write crisp, friendly weather tips."

ADVICE_PROMPT = """You are a concise weather coach. Based on the data below, give 3-4 short, practical tips.
Each tip under 18 words, one tip per line. Mix safety, clothing, commute, and health \
(hydration/sunscreen/etc.) if relevant.
Avoid repeating numbers shown. No apologies or disclaimers.

LOCATION: {location}
CURRENT: {current}
FORECAST: {forecast}
"""


def _value(value: Any) -> str:
    return "n/a" if value is None else str(value)


def round_half_up(value: float) -> int:
    """Round halves toward +inf, like JavaScript's Math.round."""
    return math.floor(value + 0.5)


def _rounded(value: Any) -> str:
    try:
        return str(round_half_up(float(value)))
    except (TypeError, ValueError, OverflowError):
        return "n/a"


def _percent(value: Any) -> int:
    try:
        return round_half_up(float(value or 0) * 100)
    except (TypeError, ValueError, OverflowError):
        return 0


def build_advice_prompt(
    location: dict[str, Any], current: dict[str, Any], forecast: list[dict[str, Any]]
) -> str:
    location_line = f"{location.get('name') or 'Unknown'}, {location.get('country') or ''}"
    current_line = (
        f"{_value(current.get('temp'))}°C, "
        f"feels like {_value(current.get('feels_like'))}°C, "
        f"{current.get('description') or ''}, "
        f"humidity {_value(current.get('humidity'))}%, "
        f"wind {_value(current.get('wind_speed'))} m/s"
    )
    forecast_line = " | ".join(
        f"{day.get('day')}: {day.get('description') or ''}, "
        f"{_rounded(day.get('temp'))}°C, POP {_percent(day.get('pop'))}%"
        for day in forecast
    )
    return ADVICE_PROMPT.format(
        location=location_line,
        current=current_line,
        forecast=forecast_line,
    )
