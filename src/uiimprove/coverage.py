from __future__ import annotations

from dataclasses import dataclass, replace
import re
from typing import Sequence

from .models import AssertionCandidate, Step, StepIndexMap, Target, is_assertion_action

FALLBACK_CONFIDENCE = 0.55

_EXPRESSION_KINDS = {"locator_expression", "playwright_selector"}


@dataclass(frozen=True, slots=True)
class CoveragePlan:
    candidates: list[AssertionCandidate]
    required_candidate_indexes: list[int]
    fallback_candidate_indexes: list[int]


def plan_assertion_coverage(
    steps: Sequence[Step],
    index_map: StepIndexMap,
    candidates: Sequence[AssertionCandidate],
) -> CoveragePlan:
    planned = list(candidates)
    by_source: dict[int, list[int]] = {}
    for position, candidate in enumerate(planned):
        by_source.setdefault(candidate.index, []).append(position)

    required: list[int] = []
    fallbacks: list[int] = []

    for runtime_index, step in enumerate(steps):
        if step.action == "navigate":
            continue

        source_index = index_map.original_index(runtime_index)
        positions = by_source.setdefault(source_index, [])
        primary = _choose_primary(step, planned, positions)
        if primary is not None:
            required.append(primary)
            continue

        planned.append(_fallback_candidate(step, source_index))
        position = len(planned) - 1
        positions.append(position)
        required.append(position)
        fallbacks.append(position)

    return CoveragePlan(planned, required, fallbacks)


def _choose_primary(step: Step, candidates: list[AssertionCandidate], positions: list[int]) -> int | None:
    if not positions:
        return None

    def find(predicate) -> int | None:
        for position in positions:
            if predicate(candidates[position].candidate):
                return position
        return None

    if step.action == "fill":
        found = find(lambda item: item.action == "assertValue" and item.value == step.text and _same_target(item, step))
        if found is not None:
            return found

    if step.action == "select":
        found = find(lambda item: item.action == "assertValue" and item.value == step.value and _same_target(item, step))
        if found is not None:
            return found

    if step.action in {"check", "uncheck"}:
        expected = step.action == "check"
        found = find(
            lambda item: item.action == "assertChecked"
            and item.expected_checked == expected
            and _same_target(item, step)
        )
        if found is not None:
            return found

    if step.action in {"click", "press", "hover"}:
        for predicate in (
            lambda item: item.action == "assertText" and not _same_target(item, step),
            lambda item: item.action == "assertVisible" and not _same_target(item, step),
            lambda item: item.action == "assertVisible",
        ):
            found = find(predicate)
            if found is not None:
                return found

    return None


def _fallback_candidate(step: Step, source_index: int) -> AssertionCandidate:
    if is_assertion_action(step.action):
        return AssertionCandidate(
            index=source_index,
            after_action=step.action,
            candidate=replace(step, optional=False),
            confidence=FALLBACK_CONFIDENCE,
            rationale="Coverage fallback for assertion step; existing assertion semantics are preserved.",
            candidate_source="deterministic",
        )
    return AssertionCandidate(
        index=source_index,
        after_action=step.action,
        candidate=Step(action="assertVisible", target=step.target),
        confidence=FALLBACK_CONFIDENCE,
        rationale="Fallback coverage assertion to guarantee at least one post-action check for this step.",
        candidate_source="deterministic",
    )


def _same_target(candidate: Step, step: Step) -> bool:
    if candidate.target is None or step.target is None:
        return False
    return are_equivalent_targets(candidate.target, step.target)


def are_equivalent_targets(left: Target, right: Target) -> bool:
    return (
        left.kind == right.kind
        and normalize_target_value(left) == normalize_target_value(right)
        and left.frame_path == right.frame_path
    )


def normalize_target_value(target: Target) -> str:
    normalized = re.sub(r"\s+", " ", target.value.strip())
    if target.kind in _EXPRESSION_KINDS:
        normalized = normalized.replace('"', "'")
        normalized = re.sub(r"\(\s+", "(", normalized)
        normalized = re.sub(r"\s+\)", ")", normalized)
        normalized = re.sub(r"\s*,\s*", ", ", normalized)
    return normalized
