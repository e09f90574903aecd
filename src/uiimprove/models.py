from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Literal

from .errors import ValidationError

TargetKind = Literal["locator_expression", "playwright_selector", "css", "xpath", "internal", "unknown"]
TargetSource = Literal["manual", "codegen-jsonl", "codegen-fallback"]
StepAction = Literal[
    "navigate",
    "click",
    "fill",
    "press",
    "check",
    "uncheck",
    "hover",
    "select",
    "assertVisible",
    "assertText",
    "assertValue",
    "assertChecked",
    "assertEnabled",
    "assertUrl",
    "assertTitle",
]
AssertionCandidateSource = Literal["deterministic", "snapshot_native", "snapshot_cli"]
AssertionApplyStatus = Literal[
    "applied",
    "skipped_low_confidence",
    "skipped_runtime_failure",
    "skipped_existing",
    "skipped_policy",
    "not_requested",
]
DiagnosticLevel = Literal["info", "warn", "error"]
CandidateOrigin = Literal["current", "derived"]

TARGET_KINDS: tuple[str, ...] = ("locator_expression", "playwright_selector", "css", "xpath", "internal", "unknown")
INTERACTION_ACTIONS = ("click", "fill", "press", "check", "uncheck", "hover", "select")
ASSERTION_ACTIONS = (
    "assertVisible",
    "assertText",
    "assertValue",
    "assertChecked",
    "assertEnabled",
    "assertUrl",
    "assertTitle",
)
STEP_ACTIONS: tuple[str, ...] = ("navigate", *INTERACTION_ACTIONS, *ASSERTION_ACTIONS)
TARGETLESS_ACTIONS = {"navigate", "assertUrl", "assertTitle"}

# field that must be present (besides target) for each action
_REQUIRED_STEP_FIELDS: dict[str, tuple[str, ...]] = {
    "navigate": ("url",),
    "fill": ("text",),
    "press": ("key",),
    "select": ("value",),
    "assertText": ("text",),
    "assertValue": ("value",),
    "assertUrl": ("url",),
    "assertTitle": ("title",),
}


def _compact(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None and value != []}


@dataclass(frozen=True, slots=True)
class Target:
    value: str
    kind: TargetKind
    source: TargetSource = "manual"
    frame_path: tuple[str, ...] = ()
    fallbacks: tuple[Target, ...] = ()

    def key(self) -> tuple[str, str, str, tuple[str, ...]]:
        return (self.value, self.kind, self.source, self.frame_path)

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "value": self.value,
                "kind": self.kind,
                "source": self.source,
                "framePath": list(self.frame_path),
                "fallbacks": [item.to_dict() for item in self.fallbacks],
            }
        )


@dataclass(frozen=True, slots=True)
class Step:
    action: StepAction
    target: Target | None = None
    url: str | None = None
    text: str | None = None
    value: str | None = None
    key: str | None = None
    title: str | None = None
    checked: bool | None = None
    enabled: bool | None = None
    description: str | None = None
    timeout_ms: int | None = None
    optional: bool = False

    def __post_init__(self) -> None:
        issues: list[str] = []
        if self.action not in STEP_ACTIONS:
            issues.append(f"unknown action '{self.action}'")
        elif self.action not in TARGETLESS_ACTIONS and self.target is None:
            issues.append(f"{self.action} requires a target")
        for name in _REQUIRED_STEP_FIELDS.get(self.action, ()):
            if getattr(self, name) is None:
                issues.append(f"{self.action} requires '{name}'")
        if issues:
            raise ValidationError("Invalid step.", issues)

    @property
    def expected_checked(self) -> bool:
        return True if self.checked is None else self.checked

    @property
    def expected_enabled(self) -> bool:
        return True if self.enabled is None else self.enabled

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "action": self.action,
                "target": self.target.to_dict() if self.target else None,
                "url": self.url,
                "text": self.text,
                "value": self.value,
                "key": self.key,
                "title": self.title,
                "checked": self.checked if self.action == "assertChecked" else None,
                "enabled": self.enabled if self.action == "assertEnabled" else None,
                "description": self.description,
                "timeout": self.timeout_ms,
                "optional": self.optional or None,
            }
        )


def is_assertion_action(action: str) -> bool:
    return action in ASSERTION_ACTIONS


@dataclass(frozen=True, slots=True)
class StepIndexMap:
    """Original step index for every runtime position of the current step list."""

    originals: tuple[int, ...]

    @classmethod
    def identity(cls, size: int) -> StepIndexMap:
        return cls(tuple(range(size)))

    def __len__(self) -> int:
        return len(self.originals)

    def original_index(self, runtime_index: int) -> int:
        if 0 <= runtime_index < len(self.originals):
            return self.originals[runtime_index]
        return runtime_index

    def runtime_index(self, original_index: int) -> int | None:
        for runtime_index, original in enumerate(self.originals):
            if original == original_index:
                return runtime_index
        return None

    def without(self, runtime_indexes: Iterable[int]) -> StepIndexMap:
        removed = set(runtime_indexes)
        return StepIndexMap(tuple(item for index, item in enumerate(self.originals) if index not in removed))


@dataclass(frozen=True, slots=True)
class StepSnapshot:
    index: int
    step: Step
    pre_snapshot: str
    post_snapshot: str
    pre_url: str | None = None
    post_url: str | None = None
    pre_title: str | None = None
    post_title: str | None = None


@dataclass(frozen=True, slots=True)
class Diagnostic:
    code: str
    level: DiagnosticLevel
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "level": self.level, "message": self.message}


@dataclass(frozen=True, slots=True)
class TargetCandidate:
    id: str
    target: Target
    source: CandidateOrigin
    reason_codes: tuple[str, ...]
    dynamic_signals: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class TargetCandidateScore:
    candidate: TargetCandidate
    score: float
    base_score: float
    uniqueness_score: float = 0.0
    visibility_score: float = 0.0
    match_count: int | None = None
    runtime_checked: bool = False
    reason_codes: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class AssertionCandidate:
    index: int
    after_action: StepAction
    candidate: Step
    confidence: float
    rationale: str
    candidate_source: AssertionCandidateSource
    coverage_fallback: bool = False
    stable_structural: bool = False
    stability_score: float | None = None
    volatility_flags: tuple[str, ...] = ()
    apply_status: AssertionApplyStatus | None = None
    apply_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "index": self.index,
                "afterAction": self.after_action,
                "candidate": self.candidate.to_dict(),
                "confidence": self.confidence,
                "rationale": self.rationale,
                "candidateSource": self.candidate_source,
                "coverageFallback": self.coverage_fallback or None,
                "stableStructural": self.stable_structural or None,
                "stabilityScore": self.stability_score,
                "volatilityFlags": list(self.volatility_flags),
                "applyStatus": self.apply_status,
                "applyMessage": self.apply_message,
            }
        )


@dataclass(frozen=True, slots=True)
class StepFinding:
    index: int
    action: StepAction
    changed: bool
    old_target: Target
    recommended_target: Target
    old_score: float
    recommended_score: float
    confidence_delta: float
    reason_codes: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "action": self.action,
            "changed": self.changed,
            "oldTarget": self.old_target.to_dict(),
            "recommendedTarget": self.recommended_target.to_dict(),
            "oldScore": self.old_score,
            "recommendedScore": self.recommended_score,
            "confidenceDelta": self.confidence_delta,
            "reasonCodes": list(self.reason_codes),
        }


@dataclass(frozen=True, slots=True)
class ImproveSummary:
    unchanged: int
    improved: int
    fallback: int
    warnings: int
    assertion_candidates: int
    applied_assertions: int
    skipped_assertions: int
    apply_status_counts: dict[str, int] = field(default_factory=dict)
    candidate_source_counts: dict[str, int] = field(default_factory=dict)
    assertion_coverage: dict[str, float] = field(default_factory=dict)
    assertion_fallback: dict[str, int] = field(default_factory=dict)
    counters: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "unchanged": self.unchanged,
            "improved": self.improved,
            "fallback": self.fallback,
            "warnings": self.warnings,
            "assertionCandidates": self.assertion_candidates,
            "appliedAssertions": self.applied_assertions,
            "skippedAssertions": self.skipped_assertions,
            "assertionApplyStatusCounts": dict(self.apply_status_counts),
            "assertionCandidateSourceCounts": dict(self.candidate_source_counts),
            "assertionCoverage": dict(self.assertion_coverage),
            "assertionFallback": dict(self.assertion_fallback),
            "counters": dict(self.counters),
        }


@dataclass(frozen=True, slots=True)
class ImproveReport:
    provider_used: Literal["playwright", "none"]
    summary: ImproveSummary
    step_findings: tuple[StepFinding, ...]
    assertion_candidates: tuple[AssertionCandidate, ...]
    diagnostics: tuple[Diagnostic, ...]
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    test_file: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.test_file:
            payload["testFile"] = self.test_file
        payload.update(
            {
                "generatedAt": self.generated_at.isoformat(),
                "providerUsed": self.provider_used,
                "summary": self.summary.to_dict(),
                "stepFindings": [item.to_dict() for item in self.step_findings],
                "assertionCandidates": [item.to_dict() for item in self.assertion_candidates],
                "diagnostics": [item.to_dict() for item in self.diagnostics],
            }
        )
        return payload
