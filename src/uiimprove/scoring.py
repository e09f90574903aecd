from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from typing import TYPE_CHECKING, Sequence

from .locator_expression import POSITIONAL_MEMBERS, try_parse_locator_expression
from .locator_runtime import resolve_locator
from .models import Target, TargetCandidate, TargetCandidateScore

if TYPE_CHECKING:
    from playwright.sync_api import Page

logger = logging.getLogger("uiimprove.improve")

DEFAULT_SCORING_TIMEOUT_MS = 1200
ADOPT_THRESHOLD = 0.15
SCORE_TIE_EPSILON = 0.001
MAX_FALLBACK_TARGETS = 2
MIN_FALLBACK_SCORE = 0.5

ACCESSOR_SCORES: dict[str, float] = {
    "get_by_role": 0.9,
    "get_by_test_id": 0.9,
    "get_by_label": 0.8,
    "get_by_placeholder": 0.8,
    "get_by_text": 0.7,
    "get_by_alt_text": 0.7,
    "get_by_title": 0.7,
}
DEFAULT_ACCESSOR_SCORE = 0.5
POSITIONAL_PENALTY = -0.15
FILTER_PENALTY = -0.05

KIND_SCORES: dict[str, float] = {
    "playwright_selector": 0.75,
    "css": 0.45,
    "xpath": 0.35,
    "internal": 0.2,
    "unknown": 0.1,
}
UNSUPPORTED_EXPRESSION_SCORE = 0.1

# lower sorts first on equal scores
CANDIDATE_SOURCE_PRIORITY: dict[str, int] = {"current": 0, "derived": 1}

_QUOTED_PATTERN = re.compile(r"'(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\"")
_ROOT_CALL_PATTERN = re.compile(r"^\s*(?:page\.)?([a-z_]+)\(")
_POSITIONAL_PATTERNS = tuple(re.compile(rf"\.{name}\b") for name in POSITIONAL_MEMBERS)
_FILTER_PATTERN = re.compile(r"\.filter\(")


@dataclass(frozen=True, slots=True)
class TargetSelection:
    current: TargetCandidateScore
    selected: TargetCandidateScore
    improve_opportunity: bool
    tie_repair: bool
    adopt: bool
    recommended_target: Target
    confidence_delta: float
    reason_codes: tuple[str, ...]

    @property
    def selected_is_repair(self) -> bool:
        return any(code.startswith("locator_repair_") for code in self.selected.reason_codes)


def score_locator_expression(value: str) -> float:
    expression = try_parse_locator_expression(value)
    if expression is None:
        return _score_expression_text(value)

    accessor = expression.accessor()
    score = ACCESSOR_SCORES.get(accessor.name, DEFAULT_ACCESSOR_SCORE) if accessor else DEFAULT_ACCESSOR_SCORE
    members = expression.members()
    score += POSITIONAL_PENALTY * sum(1 for name in members if name in POSITIONAL_MEMBERS)
    score += FILTER_PENALTY * members.count("filter")
    return _round2(score)


def _score_expression_text(value: str) -> float:
    stripped = _QUOTED_PATTERN.sub("''", value)
    match = _ROOT_CALL_PATTERN.match(stripped)
    score = ACCESSOR_SCORES.get(match.group(1), DEFAULT_ACCESSOR_SCORE) if match else DEFAULT_ACCESSOR_SCORE
    score += POSITIONAL_PENALTY * sum(len(pattern.findall(stripped)) for pattern in _POSITIONAL_PATTERNS)
    score += FILTER_PENALTY * len(_FILTER_PATTERN.findall(stripped))
    return _round2(score)


def target_base_score(target: Target) -> float:
    if target.kind == "locator_expression":
        if try_parse_locator_expression(target.value) is None:
            return UNSUPPORTED_EXPRESSION_SCORE
        return score_locator_expression(target.value)
    return KIND_SCORES.get(target.kind, KIND_SCORES["unknown"])


def score_target_candidates(
    page: Page | None,
    candidates: Sequence[TargetCandidate],
    timeout_ms: int = DEFAULT_SCORING_TIMEOUT_MS,
) -> list[TargetCandidateScore]:
    scored = [_score_candidate(page, candidate, timeout_ms) for candidate in candidates]
    order = {id(item): position for position, item in enumerate(scored)}
    return sorted(
        scored,
        key=lambda item: (
            -item.score,
            CANDIDATE_SOURCE_PRIORITY.get(item.candidate.source, len(CANDIDATE_SOURCE_PRIORITY)),
            order[id(item)],
        ),
    )


def _score_candidate(page: Page | None, candidate: TargetCandidate, timeout_ms: int) -> TargetCandidateScore:
    base = target_base_score(candidate.target)
    if page is None:
        return TargetCandidateScore(
            candidate=candidate,
            score=round(base, 3),
            base_score=base,
            reason_codes=(*candidate.reason_codes, "runtime_unavailable"),
        )

    try:
        locator = resolve_locator(page, candidate.target)
        match_count = locator.count()
        visible = match_count > 0 and locator.first.is_visible(timeout=timeout_ms)
    except Exception as exc:
        logger.info("Candidate %s could not be resolved: %s", candidate.id, exc)
        return TargetCandidateScore(
            candidate=candidate,
            score=round(base * 0.5, 3),
            base_score=base,
            runtime_checked=True,
            reason_codes=(*candidate.reason_codes, "runtime_resolution_failed"),
        )

    uniqueness = 1.0 if match_count == 1 else 0.0 if match_count == 0 else 0.3
    visibility = 1.0 if visible else 0.0
    reasons = list(candidate.reason_codes)
    if match_count == 0:
        reasons.append("no_matches")
    if match_count > 1:
        reasons.append("multiple_matches")
    if match_count == 1:
        reasons.append("unique_match")
    if visible:
        reasons.append("visible_match")

    return TargetCandidateScore(
        candidate=candidate,
        score=round(base * 0.5 + uniqueness * 0.35 + visibility * 0.15, 3),
        base_score=base,
        uniqueness_score=uniqueness,
        visibility_score=visibility,
        match_count=match_count,
        runtime_checked=True,
        reason_codes=tuple(reasons),
    )


def should_adopt_candidate(
    current: TargetCandidateScore,
    suggested: TargetCandidateScore,
    threshold: float = ADOPT_THRESHOLD,
) -> bool:
    if suggested.candidate.target.value == current.candidate.target.value:
        return False
    # float noise must not hide an exact threshold gain
    return round(suggested.score - current.score, 6) >= threshold


def select_target_candidate(
    scored: Sequence[TargetCandidateScore],
    current_target: Target,
    *,
    apply_selectors: bool,
) -> TargetSelection | None:
    if not scored:
        return None
    current = next((item for item in scored if item.candidate.source == "current"), scored[0])
    best = scored[0]

    improve_opportunity = should_adopt_candidate(current, best)
    current_dynamic = bool(current.candidate.dynamic_signals) or "dynamic_target" in current.reason_codes

    tie_candidate = None
    if not improve_opportunity and current_dynamic:
        tie_candidate = next(
            (
                item
                for item in scored
                if item.candidate.target.value != current.candidate.target.value
                and any(code.startswith("locator_repair_") for code in item.reason_codes)
                and abs(item.score - current.score) <= SCORE_TIE_EPSILON
                and item.match_count == 1
            ),
            None,
        )

    selected = tie_candidate or best
    adopt = (improve_opportunity or tie_candidate is not None) and (
        not apply_selectors or selected.match_count == 1
    )
    reason_codes = tuple(dict.fromkeys((*current.reason_codes, *selected.reason_codes)))
    return TargetSelection(
        current=current,
        selected=selected,
        improve_opportunity=improve_opportunity,
        tie_repair=tie_candidate is not None,
        adopt=adopt,
        recommended_target=selected.candidate.target if adopt else current_target,
        confidence_delta=round(selected.score - current.score, 3),
        reason_codes=reason_codes,
    )


def collect_fallback_targets(scored: Sequence[TargetCandidateScore], selected: TargetCandidateScore) -> tuple[Target, ...]:
    selected_value = selected.candidate.target.value
    fallbacks: list[Target] = []
    for item in scored:
        if len(fallbacks) >= MAX_FALLBACK_TARGETS:
            break
        if item.candidate.target.value == selected_value:
            continue
        if item.match_count != 1 or item.score < MIN_FALLBACK_SCORE:
            continue
        target = item.candidate.target
        fallbacks.append(
            Target(value=target.value, kind=target.kind, source=target.source, frame_path=target.frame_path)
        )
    return tuple(fallbacks)


def _round2(value: float) -> float:
    return round(min(1.0, max(0.0, value)), 2)
