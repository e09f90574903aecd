from __future__ import annotations

import re
from typing import Iterable, Literal

TextSignal = Literal[
    "contains_numeric_fragment",
    "contains_date_or_time_fragment",
    "contains_weather_or_news_fragment",
    "contains_headline_like_text",
    "contains_pipe_separator",
]

TEXT_SIGNALS: tuple[str, ...] = (
    "contains_numeric_fragment",
    "contains_date_or_time_fragment",
    "contains_weather_or_news_fragment",
    "contains_headline_like_text",
    "contains_pipe_separator",
)

# English and Dutch news/weather/live vocabulary
DYNAMIC_KEYWORDS = frozenset(
    {
        "weather",
        "winterweer",
        "winter",
        "storm",
        "sneeuw",
        "rain",
        "regen",
        "temperatuur",
        "temperature",
        "breaking",
        "liveblog",
        "update",
        "live",
        "video",
        "vandaag",
        "today",
        "gisteren",
        "yesterday",
    }
)

_NUMERIC_PATTERN = re.compile(r"\b\d{2,}\b")
_DATE_OR_TIME_PATTERNS = (
    re.compile(r"\b\d{1,2}[:.]\d{2}\b"),
    re.compile(r"\b\d{4}-\d{2}-\d{2}\b"),
    re.compile(r"\b\d{1,2}[/-]\d{1,2}(?:[/-]\d{2,4})?\b"),
)
_WORD_SPLIT_PATTERN = re.compile(r"[^a-z0-9]+")

HEADLINE_MIN_LENGTH = 30
HEADLINE_MIN_WORDS = 5


def split_words(value: str) -> list[str]:
    return [word for word in _WORD_SPLIT_PATTERN.split(value.lower()) if word]


def has_dynamic_keyword(value: str) -> bool:
    return any(word in DYNAMIC_KEYWORDS for word in split_words(value))


def is_headline_like(value: str) -> bool:
    text = value.strip()
    if len(text) < HEADLINE_MIN_LENGTH:
        return False
    if len(text.split()) < HEADLINE_MIN_WORDS:
        return False
    return bool(re.search(r"[A-Z]", text)) and bool(re.search(r"[a-z]", text))


def detect_dynamic_signals(value: str) -> frozenset[str]:
    normalized = value.strip().lower()
    if not normalized:
        return frozenset()

    signals: set[str] = set()
    if _NUMERIC_PATTERN.search(normalized):
        signals.add("contains_numeric_fragment")
    if any(pattern.search(normalized) for pattern in _DATE_OR_TIME_PATTERNS):
        signals.add("contains_date_or_time_fragment")
    if has_dynamic_keyword(normalized):
        signals.add("contains_weather_or_news_fragment")
    if is_headline_like(value):
        signals.add("contains_headline_like_text")
    if "|" in normalized:
        signals.add("contains_pipe_separator")
    return frozenset(signals)


def order_signals(signals: Iterable[str], order: tuple[str, ...] = TEXT_SIGNALS) -> tuple[str, ...]:
    unique = set(signals)
    ranked = [signal for signal in order if signal in unique]
    ranked.extend(sorted(unique.difference(order)))
    return tuple(ranked)


def is_volatile_text(value: str) -> bool:
    """Two independent signal categories, or any volatile keyword."""
    signals = detect_dynamic_signals(value)
    return len(signals) >= 2 or "contains_weather_or_news_fragment" in signals
