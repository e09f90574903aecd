from __future__ import annotations

from dataclasses import dataclass
import re

from .dynamic_signals import DYNAMIC_KEYWORDS, detect_dynamic_signals, is_volatile_text, order_signals
from .dynamic_target import LONG_TEXT_MIN_LENGTH, TARGET_SIGNALS, extract_expression_text_fragments
from .locator_expression import (
    LocatorCall,
    LocatorExpression,
    RegexArg,
    format_locator_expression,
    try_parse_locator_expression,
)
from .models import Diagnostic, Target, TargetCandidate

REPAIRABLE_ROOT_METHODS = ("get_by_role", "get_by_text", "get_by_label", "get_by_placeholder", "get_by_title")
STABLE_STOPWORDS = frozenset(
    {"the", "and", "with", "voor", "van", "het", "een", "de", "in", "op", "naar", "about", "this", "that", "from"}
)
MAX_PREFIX_WORDS = 4

_EXACT_TRUE_PATTERN = re.compile(r"\bexact\s*=\s*True\b")
_TOKEN_SPLIT_PATTERN = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True, slots=True)
class RepairableExpression:
    method: str
    query_text: str
    exact: bool
    role: str | None = None
    suffix: LocatorCall | None = None


@dataclass(frozen=True, slots=True)
class LocatorRepairAnalysis:
    candidates: list[TargetCandidate]
    diagnostics: list[Diagnostic]
    dynamic_target: bool = False
    dynamic_signals: tuple[str, ...] = ()


def analyze_locator_repair(target: Target, step_number: int) -> LocatorRepairAnalysis:
    if target.kind != "locator_expression":
        return LocatorRepairAnalysis([], [])

    parsed = parse_repairable_expression(target.value)
    if parsed is None:
        if not _looks_brittle(target.value):
            return LocatorRepairAnalysis([], [])
        diagnostic = Diagnostic(
            "selector_target_flagged_volatile",
            "info",
            f"Step {step_number}: selector flagged as volatile but could not be rewritten "
            "because expression shape is unsupported.",
        )
        return LocatorRepairAnalysis([], [diagnostic], True, ("unsupported_expression_shape",))

    long_text = len(parsed.query_text) >= LONG_TEXT_MIN_LENGTH
    if not is_volatile_text(parsed.query_text) and not (parsed.exact and long_text):
        return LocatorRepairAnalysis([], [])

    raw_signals = set(detect_dynamic_signals(parsed.query_text))
    if parsed.exact:
        raw_signals.add("exact_true")
    if long_text:
        raw_signals.add("long_text")
    signals = order_signals(raw_signals, TARGET_SIGNALS)

    diagnostics = [
        Diagnostic(
            "selector_target_flagged_volatile",
            "info",
            f"Step {step_number}: selector flagged as volatile ({', '.join(signals)}). Trying repair variants.",
        )
    ]
    candidate_signals = tuple(signal for signal in signals if signal != "exact_true")
    candidates: list[TargetCandidate] = []
    seen: set[tuple[str, str, str, tuple[str, ...]]] = set()

    def push(expression: LocatorExpression, reason_code: str) -> None:
        repaired = Target(
            value=format_locator_expression(expression),
            kind="locator_expression",
            source="manual",
            frame_path=target.frame_path,
        )
        if repaired.key() in seen or repaired.value == target.value:
            return
        seen.add(repaired.key())
        candidates.append(
            TargetCandidate(
                id=f"repair-{len(candidates) + 1}",
                target=repaired,
                source="derived",
                reason_codes=(reason_code,),
                dynamic_signals=candidate_signals,
            )
        )

    if parsed.exact:
        push(build_repair_expression(parsed, parsed.query_text), "locator_repair_remove_exact")

    prefix = build_stable_prefix(parsed.query_text)
    if prefix:
        pattern = RegexArg("^" + " ".join(re.escape(word) for word in prefix.split()), ignore_case=True)
        push(build_repair_expression(parsed, pattern), "locator_repair_regex")

    return LocatorRepairAnalysis(candidates, diagnostics, True, signals)


def parse_repairable_expression(value: str) -> RepairableExpression | None:
    expression = try_parse_locator_expression(value)
    if expression is None or not 1 <= len(expression.calls) <= 2:
        return None

    root = expression.root
    suffix = expression.calls[1] if len(expression.calls) == 2 else None
    if suffix is not None and suffix.name not in {"first", "last", "nth"}:
        return None
    if root.name not in REPAIRABLE_ROOT_METHODS or root.is_property:
        return None

    options = dict(root.kwargs)
    exact = options.pop("exact", False)
    if not isinstance(exact, bool):
        return None

    if root.name == "get_by_role":
        name = options.pop("name", None)
        if len(root.args) != 1 or not isinstance(root.first_arg, str) or options:
            return None
        if not isinstance(name, str) or not name:
            return None
        return RepairableExpression(root.name, name, exact, role=root.first_arg, suffix=suffix)

    if len(root.args) != 1 or not isinstance(root.first_arg, str) or not root.first_arg or options:
        return None
    return RepairableExpression(root.name, root.first_arg, exact, suffix=suffix)


def build_repair_expression(parsed: RepairableExpression, query: str | RegexArg) -> LocatorExpression:
    if parsed.method == "get_by_role":
        root = LocatorCall("get_by_role", (parsed.role,), (("name", query),))
    else:
        root = LocatorCall(parsed.method, (query,))
    calls = (root,) if parsed.suffix is None else (root, parsed.suffix)
    return LocatorExpression(calls)


def build_stable_prefix(value: str) -> str | None:
    words: list[str] = []
    for word in value.split():
        if _is_volatile_word(word) or len(words) >= MAX_PREFIX_WORDS:
            break
        words.append(word)

    has_anchor_token = any(
        len(token) >= 3 and token not in STABLE_STOPWORDS
        for word in words
        for token in _TOKEN_SPLIT_PATTERN.split(word.lower())
    )
    if not has_anchor_token:
        return None
    return " ".join(words)


def _is_volatile_word(word: str) -> bool:
    if "|" in word or any(char.isdigit() for char in word):
        return True
    return any(token in DYNAMIC_KEYWORDS for token in _TOKEN_SPLIT_PATTERN.split(word.lower()) if token)


def _looks_brittle(value: str) -> bool:
    fragments = extract_expression_text_fragments(value)
    if any(is_volatile_text(fragment) for fragment in fragments):
        return True
    exact = bool(_EXACT_TRUE_PATTERN.search(value))
    return exact and any(len(fragment) >= LONG_TEXT_MIN_LENGTH for fragment in fragments)
