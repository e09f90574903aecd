from datetime import datetime, timezone

import pytest

from uiimprove.errors import ValidationError
from uiimprove.models import (
    Diagnostic,
    ImproveReport,
    ImproveSummary,
    Step,
    StepIndexMap,
    Target,
)


def test_step_requires_target_for_interactions() -> None:
    with pytest.raises(ValidationError) as excinfo:
        Step(action="click")
    assert excinfo.value.issues == ["click requires a target"]


def test_step_requires_action_payload() -> None:
    with pytest.raises(ValidationError) as excinfo:
        Step(action="fill", target=Target(value="#name", kind="css"))
    assert excinfo.value.issues == ["fill requires 'text'"]
    assert "fill requires 'text'" in str(excinfo.value)


def test_unknown_action_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Step(action="drag", target=Target(value="#a", kind="css"))  # type: ignore[arg-type]


def test_expected_checked_and_enabled_default_to_true() -> None:
    target = Target(value="#agree", kind="css")
    assert Step(action="assertChecked", target=target).expected_checked
    assert not Step(action="assertChecked", target=target, checked=False).expected_checked
    assert Step(action="assertEnabled", target=target).expected_enabled


def test_step_to_dict_drops_empty_fields() -> None:
    step = Step(
        action="click",
        target=Target(value="#save", kind="css", frame_path=("#app",)),
        optional=True,
    )
    assert step.to_dict() == {
        "action": "click",
        "target": {"value": "#save", "kind": "css", "source": "manual", "framePath": ["#app"]},
        "optional": True,
    }


def test_step_index_map_tracks_removed_steps() -> None:
    index_map = StepIndexMap.identity(4).without([1])
    assert index_map.originals == (0, 2, 3)
    assert len(index_map) == 3
    assert index_map.original_index(1) == 2
    assert index_map.runtime_index(3) == 2
    assert index_map.runtime_index(1) is None
    assert index_map.original_index(9) == 9

    shrunk = index_map.without([0])
    assert shrunk.originals == (2, 3)


def test_report_to_dict_uses_camel_case_keys() -> None:
    summary = ImproveSummary(
        unchanged=1,
        improved=0,
        fallback=0,
        warnings=1,
        assertion_candidates=0,
        applied_assertions=0,
        skipped_assertions=0,
    )
    report = ImproveReport(
        provider_used="none",
        summary=summary,
        step_findings=(),
        assertion_candidates=(),
        diagnostics=(Diagnostic("runtime_validation_unavailable", "warn", "no page"),),
        generated_at=datetime(2026, 1, 2, tzinfo=timezone.utc),
        test_file="tests/login.yaml",
    )
    payload = report.to_dict()

    assert list(payload) == [
        "testFile",
        "generatedAt",
        "providerUsed",
        "summary",
        "stepFindings",
        "assertionCandidates",
        "diagnostics",
    ]
    assert payload["generatedAt"] == "2026-01-02T00:00:00+00:00"
    assert payload["summary"]["assertionCandidates"] == 0
    assert payload["diagnostics"] == [{"code": "runtime_validation_unavailable", "level": "warn", "message": "no page"}]
