from __future__ import annotations

from dataclasses import replace
from typing import Sequence

from .dynamic_signals import detect_dynamic_signals, order_signals
from .locator_expression import try_parse_locator_expression
from .models import AssertionCandidate
from .policy import SnapshotCandidateVolumeCap

HIGH_SIGNAL_ROLES = frozenset({"heading", "alert", "status"})

STABILITY_FLAG_ORDER: tuple[str, ...] = (
    "navigate_context",
    "long_text",
    "contains_numeric_fragment",
    "contains_date_or_time_fragment",
    "contains_weather_or_news_fragment",
    "contains_headline_like_text",
    "contains_pipe_separator",
)


def assess_assertion_candidate_stability(candidate: AssertionCandidate) -> AssertionCandidate:
    score = candidate.confidence
    flags: list[str] = []
    step = candidate.candidate

    if candidate.after_action == "navigate":
        score -= 0.18
        flags.append("navigate_context")

    if candidate.candidate_source == "snapshot_native":
        score -= 0.04

    if step.action in {"assertValue", "assertChecked"}:
        score += 0.08

    if step.action == "assertText":
        text = (step.text or "").strip()
        if 4 <= len(text) <= 48:
            score += 0.05
        elif len(text) > 90:
            score -= 0.08
            flags.append("long_text")

        if step.target is not None and _target_role(step.target.value) in HIGH_SIGNAL_ROLES:
            score += 0.08

        volatility = detect_dynamic_signals(text)
        flags.extend(volatility)
        if volatility:
            score -= 0.22

    if step.action == "assertVisible" and candidate.candidate_source == "snapshot_native":
        score -= 0.06

    return replace(
        candidate,
        stability_score=min(1.0, max(0.0, round(score, 3))),
        volatility_flags=order_signals(flags, STABILITY_FLAG_ORDER),
    )


def should_filter_volatile_snapshot_text(candidate: AssertionCandidate, hard_filter_flags: frozenset[str]) -> bool:
    return (
        candidate.candidate_source == "snapshot_native"
        and candidate.candidate.action == "assertText"
        and any(flag in hard_filter_flags for flag in candidate.volatility_flags)
    )


def clamp_snapshot_candidate_volume(
    candidates: Sequence[AssertionCandidate],
    cap: SnapshotCandidateVolumeCap,
) -> set[int]:
    by_step: dict[int, list[int]] = {}
    for position, candidate in enumerate(candidates):
        if candidate.candidate_source != "snapshot_native":
            continue
        by_step.setdefault(candidate.index, []).append(position)

    capped: set[int] = set()
    for positions in by_step.values():
        limit = cap.for_action(candidates[positions[0]].after_action)
        ranked = sorted(
            positions,
            key=lambda position: (
                -_stability_or_confidence(candidates[position]),
                -candidates[position].confidence,
            ),
        )
        capped.update(ranked[limit:])
    return capped


def _stability_or_confidence(candidate: AssertionCandidate) -> float:
    return candidate.confidence if candidate.stability_score is None else candidate.stability_score


def _target_role(value: str) -> str | None:
    expression = try_parse_locator_expression(value)
    if expression is None:
        return None
    accessor = expression.accessor()
    if accessor is None or accessor.name != "get_by_role" or not isinstance(accessor.first_arg, str):
        return None
    return accessor.first_arg
