from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence

from .models import AssertionApplyStatus, AssertionCandidate
from .policy import AssertionPolicyConfig

ASSERTION_APPLY_MIN_CONFIDENCE = 0.75

RELIABLE_VISIBLE_POLICY_MESSAGE = (
    "Skipped by policy: reliable mode only auto-applies snapshot assertVisible candidates when stable structural."
)

_SOURCE_PRIORITY = {"deterministic": 0, "snapshot_native": 1}


@dataclass(frozen=True, slots=True)
class CandidateRef:
    """A candidate plus its position in the pass-wide candidate list."""

    position: int
    candidate: AssertionCandidate


@dataclass(frozen=True, slots=True)
class ApplyOutcome:
    position: int
    status: AssertionApplyStatus
    message: str | None = None


@dataclass(frozen=True, slots=True)
class ApplySelection:
    selected: list[CandidateRef] = field(default_factory=list)
    skipped_low_confidence: list[ApplyOutcome] = field(default_factory=list)
    skipped_policy: list[ApplyOutcome] = field(default_factory=list)


def select_candidates_for_apply(
    candidates: Sequence[AssertionCandidate],
    policy: AssertionPolicyConfig,
    *,
    min_confidence: float = ASSERTION_APPLY_MIN_CONFIDENCE,
    forced_policy_messages: Mapping[int, str] | None = None,
    use_stability_score: bool = True,
) -> ApplySelection:
    forced = forced_policy_messages or {}
    selection = ApplySelection()

    for position, candidate in enumerate(candidates):
        forced_message = forced.get(position)
        if forced_message:
            selection.skipped_policy.append(ApplyOutcome(position, "skipped_policy", forced_message))
            continue

        if not is_auto_apply_allowed(candidate, policy):
            selection.skipped_policy.append(ApplyOutcome(position, "skipped_policy", RELIABLE_VISIBLE_POLICY_MESSAGE))
            continue

        threshold = apply_threshold(candidate, policy, min_confidence)
        value = candidate.confidence
        if use_stability_score and candidate.stability_score is not None:
            value = candidate.stability_score

        if value >= threshold:
            selection.selected.append(CandidateRef(position, candidate))
            continue

        selection.skipped_low_confidence.append(
            ApplyOutcome(
                position,
                "skipped_low_confidence",
                f"Candidate score {value:.3f} is below threshold {threshold:.3f}.",
            )
        )

    return selection


def apply_threshold(candidate: AssertionCandidate, policy: AssertionPolicyConfig, min_confidence: float) -> float:
    if candidate.candidate_source == "snapshot_native" and candidate.candidate.action == "assertText":
        return policy.snapshot_text_min_score
    return min_confidence


def is_auto_apply_allowed(candidate: AssertionCandidate, policy: AssertionPolicyConfig) -> bool:
    if candidate.candidate_source != "snapshot_native" or candidate.candidate.action != "assertVisible":
        return True
    if policy.allow_snapshot_visible == "runtime_validated":
        return True
    return candidate.stable_structural


def candidate_source_priority(source: str) -> int:
    return _SOURCE_PRIORITY.get(source, 2)


def candidate_ref_sort_key(ref: CandidateRef, policy: AssertionPolicyConfig) -> tuple[float, ...]:
    candidate = ref.candidate
    fallback = 1 if candidate.coverage_fallback else 0
    # among fallbacks the source decides before any score
    fallback_source = candidate_source_priority(candidate.candidate_source) if fallback else 0
    score = candidate.confidence if candidate.stability_score is None else candidate.stability_score
    return (
        fallback,
        fallback_source,
        -score,
        -candidate.confidence,
        policy.action_priority(candidate.candidate.action),
        candidate_source_priority(candidate.candidate_source),
        ref.position,
    )


def rank_candidate_refs(refs: Sequence[CandidateRef], policy: AssertionPolicyConfig) -> list[CandidateRef]:
    return sorted(refs, key=lambda ref: candidate_ref_sort_key(ref, policy))
