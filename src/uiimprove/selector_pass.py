from __future__ import annotations

from dataclasses import dataclass, field, replace
import logging
from typing import TYPE_CHECKING, Sequence

from .dynamic_target import assess_target_dynamics
from .locator_repair import analyze_locator_repair
from .models import Diagnostic, Step, StepFinding, StepIndexMap, StepSnapshot, TargetCandidate
from .overlays import DEFAULT_OVERLAY_TIMEOUT_MS, dismiss_overlays
from .runtime_checks import error_message
from .scoring import (
    DEFAULT_SCORING_TIMEOUT_MS,
    TargetSelection,
    collect_fallback_targets,
    score_target_candidates,
    select_target_candidate,
)
from .selector_candidates import (
    generate_aria_target_candidates,
    generate_target_candidates,
    merge_target_candidates,
)
from .step_executor import (
    DEFAULT_NETWORK_IDLE_TIMEOUT_MS,
    DEFAULT_RUNTIME_TIMEOUT_MS,
    capture_page_snapshot,
    execute_step,
    read_page_title,
    read_page_url,
    wait_for_network_idle,
)

if TYPE_CHECKING:
    from playwright.sync_api import Page

    from .models import TargetCandidateScore

logger = logging.getLogger("uiimprove.improve")


@dataclass(slots=True)
class SelectorPassResult:
    steps: list[Step]
    findings: list[StepFinding] = field(default_factory=list)
    snapshots: list[StepSnapshot] = field(default_factory=list)
    failed_step_indexes: list[int] = field(default_factory=list)
    repair_candidates: int = 0
    repairs_applied: int = 0
    repairs_adopted_on_tie: int = 0


@dataclass(frozen=True, slots=True)
class CollectedCandidates:
    candidates: list[TargetCandidate]
    repair_candidates_added: int = 0


def run_selector_pass(
    steps: Sequence[Step],
    index_map: StepIndexMap,
    diagnostics: list[Diagnostic],
    *,
    page: Page | None = None,
    base_url: str | None = None,
    apply_selectors: bool = False,
    capture_snapshots: bool = False,
    runtime_timeout_ms: int = DEFAULT_RUNTIME_TIMEOUT_MS,
    scoring_timeout_ms: int = DEFAULT_SCORING_TIMEOUT_MS,
    network_idle_timeout_ms: int = DEFAULT_NETWORK_IDLE_TIMEOUT_MS,
) -> SelectorPassResult:
    result = SelectorPassResult(steps=list(steps))

    for index, step in enumerate(steps):
        original_index = index_map.original_index(index)
        step_number = original_index + 1

        if step.action != "navigate" and step.target is not None:
            collected = collect_candidates_for_step(step, step_number, diagnostics, page, scoring_timeout_ms)
            result.repair_candidates += collected.repair_candidates_added

            scored = score_target_candidates(page, collected.candidates, scoring_timeout_ms)
            selection = select_target_candidate(scored, step.target, apply_selectors=apply_selectors)
            if selection is None:
                diagnostics.append(
                    Diagnostic(
                        "candidate_scoring_unavailable",
                        "warn",
                        f"Step {step_number}: no selector candidates were available for scoring.",
                    )
                )
            else:
                result.findings.append(
                    StepFinding(
                        index=original_index,
                        action=step.action,
                        changed=selection.adopt,
                        old_target=step.target,
                        recommended_target=selection.recommended_target,
                        old_score=selection.current.score,
                        recommended_score=selection.selected.score,
                        confidence_delta=selection.confidence_delta,
                        reason_codes=selection.reason_codes,
                    )
                )
                if apply_selectors:
                    _apply_selection(result, index, step_number, selection, scored, diagnostics)

        if page is None:
            continue
        _replay_step(
            page,
            result,
            index,
            step,
            step_number,
            diagnostics,
            base_url=base_url,
            capture_snapshots=capture_snapshots,
            runtime_timeout_ms=runtime_timeout_ms,
            scoring_timeout_ms=scoring_timeout_ms,
            network_idle_timeout_ms=network_idle_timeout_ms,
        )

    logger.info(
        "Selector pass finished: %s finding(s), %s snapshot(s), %s failed step(s)",
        len(result.findings),
        len(result.snapshots),
        len(result.failed_step_indexes),
    )
    return result


def collect_candidates_for_step(
    step: Step,
    step_number: int,
    diagnostics: list[Diagnostic],
    page: Page | None = None,
    scoring_timeout_ms: int = DEFAULT_SCORING_TIMEOUT_MS,
) -> CollectedCandidates:
    target = step.target
    if target is None:
        return CollectedCandidates([])

    candidates = generate_target_candidates(target)

    repair = analyze_locator_repair(target, step_number)
    diagnostics.extend(repair.diagnostics)
    signals = tuple(dict.fromkeys((*assess_target_dynamics(target).signals, *repair.dynamic_signals)))
    if signals:
        candidates = [
            replace(candidate, dynamic_signals=signals) if candidate.source == "current" else candidate
            for candidate in candidates
        ]

    added = merge_target_candidates(candidates, repair.candidates)

    if page is not None:
        aria_candidates, aria_diagnostics = generate_aria_target_candidates(
            page, target, [candidate.target.value for candidate in candidates], scoring_timeout_ms
        )
        merge_target_candidates(candidates, aria_candidates)
        diagnostics.extend(aria_diagnostics)

    return CollectedCandidates(candidates, added)


def _apply_selection(
    result: SelectorPassResult,
    index: int,
    step_number: int,
    selection: TargetSelection,
    scored: Sequence[TargetCandidateScore],
    diagnostics: list[Diagnostic],
) -> None:
    if not selection.adopt:
        if selection.improve_opportunity:
            diagnostics.append(
                Diagnostic(
                    "apply_requires_runtime_unique_match",
                    "warn",
                    f"Step {step_number}: skipped apply because candidate did not have a unique runtime match.",
                )
            )
        return

    if selection.selected_is_repair:
        if selection.tie_repair:
            result.repairs_adopted_on_tie += 1
            diagnostics.append(
                Diagnostic(
                    "selector_repair_adopted_on_tie_for_dynamic_target",
                    "info",
                    f"Step {step_number}: adopted dynamic selector repair candidate on score tie.",
                )
            )
        result.repairs_applied += 1
        diagnostics.append(
            Diagnostic(
                "selector_repair_applied",
                "info",
                f"Step {step_number}: applied selector repair candidate "
                f"({', '.join(selection.selected.reason_codes)}).",
            )
        )

    fallbacks = collect_fallback_targets(scored, selection.selected)
    step = result.steps[index]
    result.steps[index] = replace(step, target=replace(selection.recommended_target, fallbacks=fallbacks))


def _replay_step(
    page: Page,
    result: SelectorPassResult,
    index: int,
    original_step: Step,
    step_number: int,
    diagnostics: list[Diagnostic],
    *,
    base_url: str | None,
    capture_snapshots: bool,
    runtime_timeout_ms: int,
    scoring_timeout_ms: int,
    network_idle_timeout_ms: int,
) -> None:
    pre_snapshot = pre_url = pre_title = None
    if capture_snapshots:
        pre_snapshot = capture_page_snapshot(page, scoring_timeout_ms)
        pre_url = read_page_url(page)
        pre_title = read_page_title(page)

    dismiss_overlays(page, min(runtime_timeout_ms, DEFAULT_OVERLAY_TIMEOUT_MS))
    try:
        execute_step(page, result.steps[index], timeout_ms=runtime_timeout_ms, base_url=base_url, mode="analysis")
    except Exception as exc:
        logger.warning("Step %s failed during selector replay: %s", step_number, exc)
        result.failed_step_indexes.append(index)
        diagnostics.append(
            Diagnostic(
                "runtime_step_execution_failed",
                "warn",
                f"Runtime execution failed at step {step_number}; continuing with best-effort analysis. "
                f"{error_message(exc)}",
            )
        )
        # failed steps get no snapshot
        return

    if not capture_snapshots:
        return

    if wait_for_network_idle(page, network_idle_timeout_ms):
        diagnostics.append(
            Diagnostic(
                "runtime_network_idle_wait_timed_out",
                "warn",
                f"Runtime network idle wait timed out at step {step_number}; capturing best-effort snapshot state.",
            )
        )

    if pre_snapshot is None:
        return
    post_snapshot = capture_page_snapshot(page, scoring_timeout_ms)
    if not post_snapshot:
        return
    result.snapshots.append(
        StepSnapshot(
            index=index,
            step=original_step,
            pre_snapshot=pre_snapshot,
            post_snapshot=post_snapshot,
            pre_url=pre_url,
            post_url=read_page_url(page),
            pre_title=pre_title,
            post_title=read_page_title(page),
        )
    )
