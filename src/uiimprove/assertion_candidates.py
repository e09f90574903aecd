from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from .dynamic_target import classify_navigation_like_interaction
from .models import AssertionCandidate, Step, StepFinding, StepIndexMap, Target

COVERAGE_FALLBACK_CONFIDENCE = 0.76

_SOURCE_RANK = {"snapshot_native": 2, "deterministic": 1}


@dataclass(frozen=True, slots=True)
class DeterministicSkip:
    index: int
    action: str
    reason: str


@dataclass(frozen=True, slots=True)
class DeterministicCandidates:
    candidates: list[AssertionCandidate]
    skipped: list[DeterministicSkip]


def build_assertion_candidates(
    steps: Sequence[Step],
    findings: Iterable[StepFinding],
    index_map: StepIndexMap | None = None,
) -> DeterministicCandidates:
    by_index = {finding.index: finding for finding in findings}
    index_map = index_map or StepIndexMap.identity(len(steps))

    candidates: list[AssertionCandidate] = []
    skipped: list[DeterministicSkip] = []

    for runtime_index, step in enumerate(steps):
        if step.action == "navigate" or step.target is None:
            continue

        index = index_map.original_index(runtime_index)
        finding = by_index.get(index)
        target = finding.recommended_target if finding else step.target
        confidence = _clamp01(finding.recommended_score) if finding else 0.5

        if step.action == "fill":
            candidates.append(
                AssertionCandidate(
                    index=index,
                    after_action=step.action,
                    candidate=Step(action="assertValue", target=target, value=step.text),
                    confidence=max(0.7, confidence),
                    rationale="Filled input values are stable candidates for value assertions.",
                    candidate_source="deterministic",
                )
            )
        elif step.action == "select":
            candidates.append(
                AssertionCandidate(
                    index=index,
                    after_action=step.action,
                    candidate=Step(action="assertValue", target=target, value=step.value),
                    confidence=max(0.7, confidence),
                    rationale="Selected options can be validated with an assertValue step.",
                    candidate_source="deterministic",
                )
            )
        elif step.action in {"check", "uncheck"}:
            candidates.append(
                AssertionCandidate(
                    index=index,
                    after_action=step.action,
                    candidate=Step(action="assertChecked", target=target, checked=step.action == "check"),
                    confidence=max(0.75, confidence),
                    rationale="Check state transitions map directly to assertChecked.",
                    candidate_source="deterministic",
                )
            )
        elif step.action in {"click", "press", "hover"}:
            reason = classify_navigation_like_interaction(step, target)
            if reason:
                skipped.append(DeterministicSkip(index, step.action, reason))
                continue
            candidates.append(
                AssertionCandidate(
                    index=index,
                    after_action=step.action,
                    candidate=Step(action="assertVisible", target=target),
                    confidence=COVERAGE_FALLBACK_CONFIDENCE,
                    rationale="Coverage fallback: verify interacted element remains visible after action.",
                    candidate_source="deterministic",
                    coverage_fallback=True,
                )
            )

    return DeterministicCandidates(candidates, skipped)


def dedupe_assertion_candidates(candidates: Iterable[AssertionCandidate]) -> list[AssertionCandidate]:
    selected: dict[tuple[object, ...], tuple[int, AssertionCandidate]] = {}
    for position, candidate in enumerate(candidates):
        key = assertion_candidate_key(candidate)
        existing = selected.get(key)
        if existing is None or _is_preferred(candidate, existing[1]):
            selected[key] = (position, candidate)
    return [candidate for _position, candidate in sorted(selected.values(), key=lambda item: item[0])]


def assertion_candidate_key(candidate: AssertionCandidate) -> tuple[object, ...]:
    step = candidate.candidate
    if step.action == "assertUrl":
        target_key = f"assertUrl:{step.url}"
    elif step.action == "assertTitle":
        target_key = f"assertTitle:{step.title}"
    elif step.target is not None:
        target_key = normalize_target_key(step.target)
    else:
        target_key = ""
    checked = str(step.expected_checked).lower() if step.action == "assertChecked" else ""
    return (candidate.index, step.action, target_key, step.text or "", step.value or "", checked)


def normalize_target_key(target: Target) -> str:
    return "|".join((target.kind, target.value.strip().lower(), ">".join(target.frame_path)))


def source_rank(source: str) -> int:
    return _SOURCE_RANK.get(source, 0)


def _is_preferred(candidate: AssertionCandidate, existing: AssertionCandidate) -> bool:
    if candidate.coverage_fallback != existing.coverage_fallback:
        return not candidate.coverage_fallback
    if candidate.confidence != existing.confidence:
        return candidate.confidence > existing.confidence
    return source_rank(candidate.candidate_source) > source_rank(existing.candidate_source)


def _clamp01(value: float) -> float:
    return min(1.0, max(0.0, value))
