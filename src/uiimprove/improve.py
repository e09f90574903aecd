from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, fields, replace
import logging
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Sequence

from playwright.sync_api import sync_playwright

from .assertion_pass import (
    ASSERTION_SOURCES,
    ASSERTIONS_MODES,
    AssertionPassResult,
    AssertionSource,
    AssertionsMode,
    run_assertion_pass,
)
from .errors import UserError, chromium_not_installed_error
from .failure_classifier import classify_runtime_failing_step
from .inventory_candidates import COVERAGE_ACTIONS
from .models import (
    AssertionCandidate,
    Diagnostic,
    ImproveReport,
    ImproveSummary,
    Step,
    StepFinding,
    StepIndexMap,
    StepSnapshot,
    Target,
)
from .policy import DEFAULT_ASSERTION_POLICY, AssertionPolicyName, resolve_assertion_policy
from .runtime_checks import is_missing_browser_error
from .scoring import DEFAULT_SCORING_TIMEOUT_MS
from .selector_pass import SelectorPassResult, run_selector_pass
from .step_executor import DEFAULT_NETWORK_IDLE_TIMEOUT_MS, DEFAULT_RUNTIME_TIMEOUT_MS

if TYPE_CHECKING:
    from playwright.sync_api import Page

logger = logging.getLogger("uiimprove.improve")

FALLBACK_TARGET_KINDS = frozenset({"css", "xpath", "internal", "unknown"})

_TIMEOUT_OPTIONS = ("runtime_timeout_ms", "scoring_timeout_ms", "network_idle_timeout_ms")
_BOOL_OPTIONS = ("apply_selectors", "apply_assertions")


@dataclass(frozen=True, slots=True)
class ImproveOptions:
    apply_selectors: bool = False
    apply_assertions: bool = False
    assertions: AssertionsMode = "candidates"
    assertion_source: AssertionSource = "snapshot-native"
    assertion_policy: AssertionPolicyName = DEFAULT_ASSERTION_POLICY
    base_url: str | None = None
    runtime_timeout_ms: int = DEFAULT_RUNTIME_TIMEOUT_MS
    scoring_timeout_ms: int = DEFAULT_SCORING_TIMEOUT_MS
    network_idle_timeout_ms: int = DEFAULT_NETWORK_IDLE_TIMEOUT_MS

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> ImproveOptions:
        known = [item.name for item in fields(cls)]
        unknown = sorted(key for key in values if key not in known)
        if unknown:
            raise UserError(
                f"Unknown improve option(s): {', '.join(unknown)}",
                f"Supported options: {', '.join(known)}",
            )

        assertions = values.get("assertions", "candidates")
        if assertions not in ASSERTIONS_MODES:
            raise UserError(
                f"Invalid assertions mode: {assertions}",
                "Set assertions to 'none' or 'candidates'.",
            )
        source = values.get("assertion_source", "snapshot-native")
        if source not in ASSERTION_SOURCES:
            raise UserError(
                f"Invalid assertion source: {source}",
                "Set assertion_source to 'deterministic' or 'snapshot-native'.",
            )
        policy = resolve_assertion_policy(values.get("assertion_policy"))

        for name in _BOOL_OPTIONS:
            if name in values and not isinstance(values[name], bool):
                raise UserError(f"Option {name} must be true or false, got {values[name]!r}")
        for name in _TIMEOUT_OPTIONS:
            value = values.get(name)
            if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value <= 0):
                raise UserError(f"Option {name} must be a positive number of milliseconds, got {value!r}")

        base_url = values.get("base_url")
        return cls(
            apply_selectors=values.get("apply_selectors", False),
            apply_assertions=values.get("apply_assertions", False),
            assertions=assertions,
            assertion_source=source,
            assertion_policy=policy.name,
            base_url=str(base_url) if base_url else None,
            runtime_timeout_ms=values.get("runtime_timeout_ms") or DEFAULT_RUNTIME_TIMEOUT_MS,
            scoring_timeout_ms=values.get("scoring_timeout_ms") or DEFAULT_SCORING_TIMEOUT_MS,
            network_idle_timeout_ms=values.get("network_idle_timeout_ms") or DEFAULT_NETWORK_IDLE_TIMEOUT_MS,
        )

    @property
    def wants_write(self) -> bool:
        return self.apply_selectors or self.apply_assertions


@dataclass(frozen=True, slots=True)
class ImproveResult:
    steps: list[Step]
    report: ImproveReport


@dataclass(frozen=True, slots=True)
class _Disposition:
    steps: list[Step]
    index_map: StepIndexMap
    snapshots: list[StepSnapshot]
    findings: list[StepFinding]
    removed: int = 0
    optionalized: int = 0


def improve_steps(
    steps: Sequence[Step],
    options: ImproveOptions | None = None,
    *,
    page: Page | None = None,
    test_file: str | None = None,
) -> ImproveResult:
    """Improve selectors and propose assertions for a recorded step list.

    Without ``page`` only static analysis runs: candidates are scored without a
    live match count and nothing is validated or applied.
    """
    options = options or ImproveOptions()
    diagnostics: list[Diagnostic] = []

    if options.apply_assertions and options.assertions == "none":
        diagnostics.append(
            Diagnostic(
                "apply_assertions_disabled",
                "warn",
                "apply_assertions was requested but assertions mode is 'none'; downgrading to apply_assertions=False.",
            )
        )
        options = replace(options, apply_assertions=False)
    policy = resolve_assertion_policy(options.assertion_policy)

    if page is None and options.wants_write:
        diagnostics.append(
            Diagnostic(
                "runtime_validation_unavailable",
                "warn",
                "No live page was provided; selector and assertion changes are reported but not applied.",
            )
        )

    index_map = StepIndexMap.identity(len(steps))
    capture_snapshots = (
        page is not None and options.assertions == "candidates" and options.assertion_source == "snapshot-native"
    )
    logger.info("Improving %s step(s) with %s policy", len(steps), policy.name)

    selector_pass = run_selector_pass(
        steps,
        index_map,
        diagnostics,
        page=page,
        base_url=options.base_url,
        apply_selectors=options.apply_selectors,
        capture_snapshots=capture_snapshots,
        runtime_timeout_ms=options.runtime_timeout_ms,
        scoring_timeout_ms=options.scoring_timeout_ms,
        network_idle_timeout_ms=options.network_idle_timeout_ms,
    )
    disposition = _dispose_failing_steps(selector_pass, index_map, diagnostics, options.wants_write)

    assertion_pass = run_assertion_pass(
        disposition.steps,
        disposition.findings,
        disposition.index_map,
        disposition.snapshots,
        diagnostics,
        assertions=options.assertions,
        assertion_source=options.assertion_source,
        policy=policy,
        apply_assertions=options.apply_assertions,
        page=page,
        base_url=options.base_url,
        runtime_timeout_ms=options.runtime_timeout_ms,
        network_idle_timeout_ms=options.network_idle_timeout_ms,
    )

    summary = build_improve_summary(
        disposition.findings,
        assertion_pass,
        diagnostics,
        coverage=build_assertion_coverage_summary(disposition.steps, disposition.index_map, assertion_pass.candidates),
        counters=_build_counters(selector_pass, disposition, assertion_pass),
    )
    report = ImproveReport(
        provider_used="playwright" if page is not None else "none",
        summary=summary,
        step_findings=tuple(disposition.findings),
        assertion_candidates=tuple(assertion_pass.candidates),
        diagnostics=tuple(diagnostics),
        test_file=test_file,
    )
    return ImproveResult(steps=assertion_pass.steps, report=report)


def improve_with_browser(
    steps: Sequence[Step],
    options: ImproveOptions | None = None,
    *,
    test_file: str | None = None,
    headless: bool = True,
) -> ImproveResult:
    with sync_playwright() as playwright:
        try:
            browser = playwright.chromium.launch(headless=headless)
        except Exception as exc:
            if is_missing_browser_error(exc):
                raise chromium_not_installed_error() from exc
            raise
        try:
            page = browser.new_context().new_page()
            return improve_steps(steps, options, page=page, test_file=test_file)
        finally:
            browser.close()


def _dispose_failing_steps(
    selector_pass: SelectorPassResult,
    index_map: StepIndexMap,
    diagnostics: list[Diagnostic],
    wants_write: bool,
) -> _Disposition:
    steps = list(selector_pass.steps)
    if not wants_write or not selector_pass.failed_step_indexes:
        return _Disposition(steps, index_map, list(selector_pass.snapshots), list(selector_pass.findings))

    removed: list[int] = []
    optionalized = 0
    for index in selector_pass.failed_step_indexes:
        step = steps[index]
        step_number = index_map.original_index(index) + 1
        classification = classify_runtime_failing_step(step)
        if classification.disposition == "remove":
            removed.append(index)
            diagnostics.append(
                Diagnostic(
                    "runtime_failing_step_removed",
                    "info",
                    f"Step {step_number}: removed because it failed at runtime ({classification.reason}).",
                )
            )
            continue
        optionalized += 1
        steps[index] = replace(step, optional=True)
        diagnostics.append(
            Diagnostic(
                "runtime_failing_step_optionalized",
                "info",
                f"Step {step_number}: marked optional because it failed at runtime ({classification.reason}).",
            )
        )

    if not removed:
        return _Disposition(
            steps, index_map, list(selector_pass.snapshots), list(selector_pass.findings), optionalized=optionalized
        )

    removed_set = set(removed)
    removed_originals = {index_map.original_index(index) for index in removed}
    snapshots = [
        replace(snapshot, index=snapshot.index - sum(1 for item in removed if item < snapshot.index))
        for snapshot in selector_pass.snapshots
        if snapshot.index not in removed_set
    ]
    return _Disposition(
        steps=[step for index, step in enumerate(steps) if index not in removed_set],
        index_map=index_map.without(removed),
        snapshots=snapshots,
        findings=[finding for finding in selector_pass.findings if finding.index not in removed_originals],
        removed=len(removed),
        optionalized=optionalized,
    )


def is_fallback_target(target: Target) -> bool:
    return target.kind in FALLBACK_TARGET_KINDS


def build_improve_summary(
    findings: Sequence[StepFinding],
    assertion_pass: AssertionPassResult,
    diagnostics: Sequence[Diagnostic],
    *,
    coverage: dict[str, float] | None = None,
    counters: dict[str, int] | None = None,
) -> ImproveSummary:
    candidates = assertion_pass.candidates
    return ImproveSummary(
        unchanged=sum(1 for item in findings if not item.changed),
        improved=sum(1 for item in findings if item.changed),
        fallback=sum(1 for item in findings if is_fallback_target(item.recommended_target)),
        warnings=sum(1 for item in diagnostics if item.level != "info"),
        assertion_candidates=len(candidates),
        applied_assertions=assertion_pass.applied,
        skipped_assertions=assertion_pass.skipped,
        apply_status_counts=_count(candidate.apply_status for candidate in candidates),
        candidate_source_counts=_count(candidate.candidate_source for candidate in candidates),
        assertion_coverage=coverage or {},
        assertion_fallback=build_assertion_fallback_summary(candidates),
        counters=counters or {},
    )


def build_assertion_coverage_summary(
    steps: Sequence[Step],
    index_map: StepIndexMap,
    candidates: Iterable[AssertionCandidate],
) -> dict[str, float]:
    covered = {
        index_map.original_index(runtime_index)
        for runtime_index, step in enumerate(steps)
        if step.action in COVERAGE_ACTIONS
    }
    with_candidates: set[int] = set()
    with_applied: set[int] = set()
    for candidate in candidates:
        if candidate.index not in covered:
            continue
        with_candidates.add(candidate.index)
        if candidate.apply_status == "applied":
            with_applied.add(candidate.index)

    total = len(covered)
    return {
        "total": total,
        "withCandidates": len(with_candidates),
        "withApplied": len(with_applied),
        "candidateRate": _rate(len(with_candidates), total),
        "appliedRate": _rate(len(with_applied), total),
    }


def build_assertion_fallback_summary(candidates: Iterable[AssertionCandidate]) -> dict[str, int]:
    applied = 0
    fallback_steps: set[int] = set()
    stronger_steps: set[int] = set()
    for candidate in candidates:
        if candidate.apply_status != "applied":
            continue
        if candidate.coverage_fallback:
            applied += 1
            fallback_steps.add(candidate.index)
        else:
            stronger_steps.add(candidate.index)
    return {
        "applied": applied,
        "appliedOnlySteps": len(fallback_steps - stronger_steps),
        "appliedWithNonFallbackSteps": len(fallback_steps & stronger_steps),
    }


def _build_counters(
    selector_pass: SelectorPassResult,
    disposition: _Disposition,
    assertion_pass: AssertionPassResult,
) -> dict[str, int]:
    return {
        "selectorRepairCandidates": selector_pass.repair_candidates,
        "selectorRepairsApplied": selector_pass.repairs_applied,
        "selectorRepairsAdoptedOnTie": selector_pass.repairs_adopted_on_tie,
        "runtimeFailingStepsRemoved": disposition.removed,
        "runtimeFailingStepsOptionalized": disposition.optionalized,
        "assertionCandidatesFilteredVolatile": assertion_pass.filtered_volatile,
        "assertionCoverageFallbacks": assertion_pass.coverage_fallbacks,
        "assertionInventoryStepsEvaluated": assertion_pass.inventory_steps_evaluated,
        "assertionInventoryCandidatesAdded": assertion_pass.inventory_candidates_added,
        "assertionInventoryGapStepsFilled": assertion_pass.inventory_gap_steps_filled,
    }


def _count(values: Iterable[str | None]) -> dict[str, int]:
    return dict(Counter(value for value in values if value))


def _rate(value: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(value / total, 3)
