from __future__ import annotations

from dataclasses import dataclass, field, replace
import logging
from typing import TYPE_CHECKING, Literal, Sequence

from .assertion_candidates import build_assertion_candidates, dedupe_assertion_candidates
from .assertion_selection import ApplyOutcome, CandidateRef, select_candidates_for_apply
from .assertion_validation import insert_applied_assertions, validate_candidates_against_runtime
from .coverage import plan_assertion_coverage
from .inventory_candidates import augment_with_inventory
from .models import AssertionCandidate, Diagnostic, Step, StepFinding, StepIndexMap, StepSnapshot
from .policy import AssertionPolicyConfig, resolve_assertion_policy
from .snapshot_candidates import build_snapshot_assertion_candidates
from .stability import (
    assess_assertion_candidate_stability,
    clamp_snapshot_candidate_volume,
    should_filter_volatile_snapshot_text,
)
from .step_executor import DEFAULT_NETWORK_IDLE_TIMEOUT_MS, DEFAULT_RUNTIME_TIMEOUT_MS

if TYPE_CHECKING:
    from playwright.sync_api import Page

logger = logging.getLogger("uiimprove.improve")

AssertionsMode = Literal["none", "candidates"]
AssertionSource = Literal["deterministic", "snapshot-native"]

ASSERTIONS_MODES: tuple[str, ...] = ("none", "candidates")
ASSERTION_SOURCES: tuple[str, ...] = ("deterministic", "snapshot-native")

CAP_REACHED_MESSAGE = "Skipped by policy: snapshot candidate cap reached for this source step."
FALLBACK_SUPPRESSED_MESSAGE = (
    "Skipped by policy: coverage fallback suppressed because stronger candidate exists for this step."
)
VOLATILE_REPORT_ONLY_MESSAGE = "Skipped by policy: volatile snapshot text candidate is report-only."


@dataclass(slots=True)
class AssertionPassResult:
    steps: list[Step]
    candidates: list[AssertionCandidate] = field(default_factory=list)
    applied: int = 0
    skipped: int = 0
    filtered_volatile: int = 0
    coverage_fallbacks: int = 0
    inventory_steps_evaluated: int = 0
    inventory_candidates_added: int = 0
    inventory_gap_steps_filled: int = 0


def run_assertion_pass(
    steps: Sequence[Step],
    findings: Sequence[StepFinding],
    index_map: StepIndexMap,
    snapshots: Sequence[StepSnapshot],
    diagnostics: list[Diagnostic],
    *,
    assertions: AssertionsMode = "candidates",
    assertion_source: AssertionSource = "snapshot-native",
    policy: AssertionPolicyConfig | None = None,
    apply_assertions: bool = False,
    page: Page | None = None,
    base_url: str | None = None,
    runtime_timeout_ms: int = DEFAULT_RUNTIME_TIMEOUT_MS,
    network_idle_timeout_ms: int = DEFAULT_NETWORK_IDLE_TIMEOUT_MS,
) -> AssertionPassResult:
    result = AssertionPassResult(steps=list(steps))
    if assertions == "none":
        return result
    policy = policy or resolve_assertion_policy()

    deterministic = build_assertion_candidates(steps, findings, index_map)
    for skip in deterministic.skipped:
        diagnostics.append(
            Diagnostic(
                "assertion_candidate_skipped_navigation_like",
                "info",
                f"Step {skip.index + 1}: no coverage assertion proposed for {skip.action} ({skip.reason}).",
            )
        )
    candidates = deterministic.candidates

    if assertion_source == "snapshot-native":
        if not snapshots:
            diagnostics.append(
                Diagnostic(
                    "assertion_source_snapshot_native_empty",
                    "warn",
                    "snapshot-native assertion source did not produce usable step snapshots; "
                    "falling back to deterministic candidates.",
                )
            )
        else:
            snapshot_candidates = [
                replace(candidate, index=index_map.original_index(candidate.index))
                for candidate in build_snapshot_assertion_candidates(snapshots)
            ]
            candidates = dedupe_assertion_candidates([*candidates, *snapshot_candidates])

            inventory = augment_with_inventory(candidates, steps, index_map, snapshots)
            candidates = inventory.candidates
            result.inventory_steps_evaluated = inventory.steps_evaluated
            result.inventory_candidates_added = inventory.candidates_added
            result.inventory_gap_steps_filled = inventory.gap_steps_filled

    plan = plan_assertion_coverage(steps, index_map, candidates)
    fallback_positions = set(plan.fallback_candidate_indexes)
    result.coverage_fallbacks = len(fallback_positions)
    candidates = [
        assess_assertion_candidate_stability(
            replace(candidate, coverage_fallback=True) if position in fallback_positions else candidate
        )
        for position, candidate in enumerate(plan.candidates)
    ]
    capped = clamp_snapshot_candidate_volume(candidates, policy.snapshot_candidate_volume_cap)

    result.candidates = [replace(candidate, apply_status="not_requested") for candidate in candidates]
    if not apply_assertions or page is None:
        return result

    forced = {position: CAP_REACHED_MESSAGE for position in sorted(capped)}
    stronger_steps = {candidate.index for candidate in candidates if not candidate.coverage_fallback}
    for position, candidate in enumerate(candidates):
        if candidate.coverage_fallback and candidate.index in stronger_steps:
            forced.setdefault(position, FALLBACK_SUPPRESSED_MESSAGE)

    for position, candidate in enumerate(candidates):
        if not should_filter_volatile_snapshot_text(candidate, policy.hard_filter_volatility_flags):
            continue
        result.filtered_volatile += 1
        forced.setdefault(position, VOLATILE_REPORT_ONLY_MESSAGE)
        diagnostics.append(
            Diagnostic(
                "assertion_candidate_filtered_volatile",
                "info",
                f"Assertion candidate {position + 1} (step {candidate.index + 1}) was marked volatile "
                "and skipped for auto-apply.",
            )
        )

    selection = select_candidates_for_apply(candidates, policy, forced_policy_messages=forced)
    runtime_refs: list[CandidateRef] = []
    unmapped: list[ApplyOutcome] = []
    for ref in selection.selected:
        runtime_index = index_map.runtime_index(ref.candidate.index)
        if runtime_index is None:
            unmapped.append(
                ApplyOutcome(
                    ref.position,
                    "skipped_runtime_failure",
                    f"Candidate source step {ref.candidate.index + 1} could not be mapped to runtime replay index.",
                )
            )
            continue
        runtime_refs.append(CandidateRef(ref.position, replace(ref.candidate, index=runtime_index)))

    validated = validate_candidates_against_runtime(
        page,
        result.steps,
        runtime_refs,
        policy,
        timeout_ms=runtime_timeout_ms,
        base_url=base_url,
        network_idle_timeout_ms=network_idle_timeout_ms,
    )

    outcomes: dict[int, ApplyOutcome] = {}
    for outcome in [*selection.skipped_low_confidence, *selection.skipped_policy, *unmapped, *validated]:
        outcomes[outcome.position] = outcome
        if outcome.status == "applied":
            result.applied += 1
            continue
        result.skipped += 1
        if outcome.status == "skipped_runtime_failure":
            diagnostics.append(
                Diagnostic(
                    "assertion_apply_runtime_failure",
                    "warn",
                    f"Assertion candidate {outcome.position + 1} skipped: "
                    f"{outcome.message or 'runtime validation failed'}",
                )
            )

    insertions: list[tuple[int, Step]] = []
    for outcome in validated:
        if outcome.status != "applied":
            continue
        candidate = candidates[outcome.position]
        runtime_index = index_map.runtime_index(candidate.index)
        if runtime_index is not None:
            insertions.append((runtime_index, candidate.candidate))
    result.steps = insert_applied_assertions(result.steps, insertions)

    result.candidates = [
        _with_outcome(candidate, outcomes.get(position)) for position, candidate in enumerate(candidates)
    ]
    logger.info("Assertion pass applied %s and skipped %s candidate(s)", result.applied, result.skipped)
    return result


def _with_outcome(candidate: AssertionCandidate, outcome: ApplyOutcome | None) -> AssertionCandidate:
    if outcome is None:
        return replace(candidate, apply_status="not_requested")
    return replace(candidate, apply_status=outcome.status, apply_message=outcome.message)
