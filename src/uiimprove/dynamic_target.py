from __future__ import annotations

from dataclasses import dataclass
import re

from .dynamic_signals import TEXT_SIGNALS, detect_dynamic_signals, order_signals
from .locator_expression import LocatorExpression, try_parse_locator_expression
from .models import Step, Target

TARGET_SIGNALS: tuple[str, ...] = (
    "exact_true",
    "long_text",
    *TEXT_SIGNALS,
    "unsupported_expression_shape",
    "navigate_context",
)

LONG_TEXT_MIN_LENGTH = 48
NAVIGATION_LIKE_REASON = "navigation-like dynamic click target"

_TEXT_ARG_METHODS = {"get_by_text", "get_by_label", "get_by_placeholder", "get_by_title"}
_TEXT_OPTIONS = ("name", "has_text")
_NAVIGATION_LIKE_ACTIONS = {"click", "press", "hover"}
_NAVIGATION_SIGNALS = {
    "exact_true",
    "contains_headline_like_text",
    "contains_weather_or_news_fragment",
    "contains_pipe_separator",
    "contains_date_or_time_fragment",
}

_EXACT_TRUE_PATTERN = re.compile(r"\bexact\s*=\s*True\b")
_EXPRESSION_FRAGMENT_PATTERNS = (
    re.compile(r"\bname\s*=\s*['\"]([^'\"]+)['\"]"),
    re.compile(r"get_by_(?:text|label|placeholder|title)\(\s*['\"]([^'\"]+)['\"]"),
    re.compile(r"text\s*=\s*['\"]([^'\"]+)['\"]"),
)
_ROLE_LINK_PATTERN = re.compile(r"get_by_role\(\s*['\"]link['\"]")
_CONTENT_CARD_PATTERN = re.compile(
    r"headline|teaser|article|story|content[-_ ]?card|breaking[-_ ]?push|hero[-_ ]?card",
    re.IGNORECASE,
)
_RUNTIME_NAME_PATTERN = re.compile(r"name=(?:\"([^\"]+)\"|'([^']+)')")
_RUNTIME_ROLE_NAME_PATTERN = re.compile(r"name=(?:\"([^\"]+)\"|'([^']+)'|([^\s\]]+))")
_RUNTIME_QUOTED_TEXT_PATTERN = re.compile(r"text\s*=\s*['\"]([^'\"]+)['\"]")
_RUNTIME_BARE_TEXT_PATTERN = re.compile(r"text\s*=\s*([^'\"\]\n][^\n]*?)(?=\s*>>|\s*\]|$)")
_QUOTED_STRING_PATTERN = re.compile(r"['\"]([^'\"]{4,})['\"]")


@dataclass(frozen=True, slots=True)
class TargetDynamics:
    is_dynamic: bool
    signals: tuple[str, ...]


def assess_target_dynamics(target: Target) -> TargetDynamics:
    signals = detect_target_dynamic_signals(target)
    return TargetDynamics(bool(signals), signals)


def detect_target_dynamic_signals(target: Target) -> tuple[str, ...]:
    signals: set[str] = set()
    if _EXACT_TRUE_PATTERN.search(target.value):
        signals.add("exact_true")
    for fragment in extract_target_text_fragments(target):
        text = fragment.strip()
        if not text:
            continue
        if len(text) >= LONG_TEXT_MIN_LENGTH:
            signals.add("long_text")
        signals.update(detect_dynamic_signals(text))
    return order_signals(signals, TARGET_SIGNALS)


def extract_target_text_fragments(target: Target) -> list[str]:
    if target.kind == "locator_expression":
        return extract_expression_text_fragments(target.value)
    if target.kind in {"playwright_selector", "internal"}:
        return extract_runtime_selector_text_fragments(target.value)
    return []


def extract_expression_text_fragments(value: str) -> list[str]:
    expression = try_parse_locator_expression(value)
    if expression is None:
        fragments = [match.group(1) for pattern in _EXPRESSION_FRAGMENT_PATTERNS for match in pattern.finditer(value)]
        return _unique(fragments)
    return _unique(_collect_expression_fragments(expression))


def _collect_expression_fragments(expression: LocatorExpression) -> list[str]:
    fragments: list[str] = []
    for call in expression.calls:
        for option in _TEXT_OPTIONS:
            option_value = call.option(option)
            if isinstance(option_value, str) and option_value:
                fragments.append(option_value)
        if call.name in _TEXT_ARG_METHODS and isinstance(call.first_arg, str) and call.first_arg:
            fragments.append(call.first_arg)
    for nested in expression.nested():
        fragments.extend(_collect_expression_fragments(nested))
    return fragments


def extract_runtime_selector_text_fragments(value: str) -> list[str]:
    fragments: list[str] = []

    engine, separator, raw_body = value.partition("=")
    body = raw_body.strip()
    if separator and engine.strip():
        engine_name = engine.strip().lower()
        if engine_name == "text":
            text_body = _unquote(body) or _read_unquoted_body(body)
            if text_body:
                fragments.append(text_body)
        if engine_name == "internal:role":
            match = _RUNTIME_ROLE_NAME_PATTERN.search(body)
            if match:
                name = (match.group(1) or match.group(2) or match.group(3) or "").strip()
                if name:
                    fragments.append(name)

    for match in _RUNTIME_NAME_PATTERN.finditer(value):
        fragments.append(match.group(1) or match.group(2))
    for match in _RUNTIME_QUOTED_TEXT_PATTERN.finditer(value):
        fragments.append(match.group(1))
    for match in _RUNTIME_BARE_TEXT_PATTERN.finditer(value):
        raw = match.group(1).strip()
        if raw:
            fragments.append(raw)
    for match in _QUOTED_STRING_PATTERN.finditer(value):
        fragments.append(match.group(1))

    return _unique(fragments)


def is_role_link_target(target: Target) -> bool:
    if target.kind != "locator_expression":
        return False
    expression = try_parse_locator_expression(target.value)
    if expression is None:
        return bool(_ROLE_LINK_PATTERN.search(target.value))
    return any(call.name == "get_by_role" and call.first_arg == "link" for call in expression.calls)


def classify_navigation_like_interaction(step: Step, target: Target) -> str | None:
    if step.action not in _NAVIGATION_LIKE_ACTIONS:
        return None

    fragments = extract_target_text_fragments(target)
    if any(_CONTENT_CARD_PATTERN.search(text) for text in fragments):
        return NAVIGATION_LIKE_REASON
    if target.kind in {"css", "xpath"} and _CONTENT_CARD_PATTERN.search(target.value):
        return NAVIGATION_LIKE_REASON

    signals = set(detect_target_dynamic_signals(target))
    navigation_like = any(len(text) >= LONG_TEXT_MIN_LENGTH for text in fragments) or bool(
        signals & _NAVIGATION_SIGNALS
    )
    if is_role_link_target(target) and navigation_like:
        return NAVIGATION_LIKE_REASON
    return None


def _unquote(value: str) -> str | None:
    if len(value) < 2 or value[0] not in {"'", '"'} or value[-1] != value[0]:
        return None
    inner = value[1:-1]
    if not inner:
        return None
    return (
        inner.replace("\\'", "'")
        .replace('\\"', '"')
        .replace("\\n", "\n")
        .replace("\\\\", "\\")
    )


def _read_unquoted_body(value: str) -> str | None:
    segment = re.split(r"\s*>>\s*", value.strip(), maxsplit=1)[0].strip()
    return segment or None


def _unique(values: list[str]) -> list[str]:
    return list(dict.fromkeys(value for value in values if value))
