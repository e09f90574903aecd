from uiimprove.assertion_candidates import (
    COVERAGE_FALLBACK_CONFIDENCE,
    build_assertion_candidates,
    dedupe_assertion_candidates,
)
from uiimprove.coverage import FALLBACK_CONFIDENCE, are_equivalent_targets, plan_assertion_coverage
from uiimprove.inventory_candidates import augment_with_inventory
from uiimprove.models import AssertionCandidate, Step, StepFinding, StepIndexMap, StepSnapshot, Target

NAME_INPUT = Target(value="get_by_label('Name')", kind="locator_expression")
SAVE_BUTTON = Target(value="get_by_role('button', name='Save')", kind="locator_expression")
HEADLINE_LINK = Target(
    value="get_by_role('link', name='Tientallen vluchten op Schiphol uit voorzorg geschrapt vanwege winterweer', exact=True)",
    kind="locator_expression",
)
NAVIGATE = Step(action="navigate", url="https://example.test/")


def _candidate(index: int, step: Step, confidence: float = 0.8, **extra) -> AssertionCandidate:
    return AssertionCandidate(
        index=index,
        after_action="click",
        candidate=step,
        confidence=confidence,
        rationale="test",
        candidate_source=extra.pop("candidate_source", "deterministic"),
        **extra,
    )


def test_fill_proposes_value_assertion() -> None:
    steps = [NAVIGATE, Step(action="fill", target=NAME_INPUT, text="Alice")]
    result = build_assertion_candidates(steps, [])

    assert len(result.candidates) == 1
    candidate = result.candidates[0]
    assert candidate.index == 1
    assert candidate.candidate.action == "assertValue"
    assert candidate.candidate.value == "Alice"
    assert candidate.candidate.target == NAME_INPUT
    assert candidate.confidence >= 0.7
    assert candidate.candidate_source == "deterministic"


def test_candidates_use_recommended_target_and_score() -> None:
    better = Target(value="get_by_test_id('agree')", kind="locator_expression")
    steps = [Step(action="check", target=Target(value="#agree", kind="css"))]
    finding = StepFinding(
        index=0,
        action="check",
        changed=True,
        old_target=steps[0].target,
        recommended_target=better,
        old_score=0.45,
        recommended_score=0.9,
        confidence_delta=0.45,
    )
    result = build_assertion_candidates(steps, [finding])

    assert result.candidates[0].candidate.action == "assertChecked"
    assert result.candidates[0].candidate.target == better
    assert result.candidates[0].candidate.expected_checked
    assert result.candidates[0].confidence == 0.9


def test_click_gets_visible_coverage_fallback() -> None:
    result = build_assertion_candidates([Step(action="click", target=SAVE_BUTTON)], [])
    candidate = result.candidates[0]
    assert candidate.candidate.action == "assertVisible"
    assert candidate.coverage_fallback
    assert candidate.confidence == COVERAGE_FALLBACK_CONFIDENCE


def test_navigation_like_click_is_skipped() -> None:
    result = build_assertion_candidates([NAVIGATE, Step(action="click", target=HEADLINE_LINK)], [])
    assert result.candidates == []
    assert [(skip.index, skip.action) for skip in result.skipped] == [(1, "click")]


def test_runtime_indexes_are_mapped_to_original_indexes() -> None:
    steps = [NAVIGATE, Step(action="fill", target=NAME_INPUT, text="Alice")]
    result = build_assertion_candidates(steps, [], StepIndexMap((0, 2)))
    assert result.candidates[0].index == 2


def test_dedupe_prefers_non_fallback_then_confidence_then_snapshot() -> None:
    visible = Step(action="assertVisible", target=SAVE_BUTTON)
    fallback = _candidate(1, visible, 0.9, coverage_fallback=True)
    snapshot = _candidate(1, visible, 0.78, candidate_source="snapshot_native")
    assert dedupe_assertion_candidates([fallback, snapshot]) == [snapshot]

    deterministic = _candidate(1, visible, 0.78)
    assert dedupe_assertion_candidates([deterministic, snapshot]) == [snapshot]

    other_step = _candidate(2, visible)
    assert len(dedupe_assertion_candidates([deterministic, other_step])) == 2


def test_coverage_adds_fallback_for_every_uncovered_step() -> None:
    steps = [
        NAVIGATE,
        Step(action="click", target=SAVE_BUTTON),
        Step(action="assertText", target=SAVE_BUTTON, text="Save", optional=True),
    ]
    plan = plan_assertion_coverage(steps, StepIndexMap.identity(3), [])

    assert len(plan.required_candidate_indexes) == 2
    assert plan.fallback_candidate_indexes == [0, 1]
    click_fallback, assertion_fallback = plan.candidates
    assert click_fallback.candidate == Step(action="assertVisible", target=SAVE_BUTTON)
    assert click_fallback.confidence == FALLBACK_CONFIDENCE
    assert assertion_fallback.candidate.action == "assertText"
    assert not assertion_fallback.candidate.optional


def test_coverage_prefers_existing_candidate_for_the_step() -> None:
    steps = [Step(action="fill", target=NAME_INPUT, text="Alice")]
    candidate = _candidate(0, Step(action="assertValue", target=NAME_INPUT, value="Alice"))
    plan = plan_assertion_coverage(steps, StepIndexMap.identity(1), [candidate])

    assert plan.required_candidate_indexes == [0]
    assert plan.fallback_candidate_indexes == []
    assert plan.candidates == [candidate]


def test_equivalent_targets_ignore_quote_and_spacing_differences() -> None:
    left = Target(value='get_by_role("button",name="Save")', kind="locator_expression")
    assert are_equivalent_targets(left, SAVE_BUTTON)
    assert not are_equivalent_targets(SAVE_BUTTON, Target(value=SAVE_BUTTON.value, kind="locator_expression", frame_path=("#f",)))


def test_inventory_fills_steps_without_stronger_candidates() -> None:
    click = Step(action="click", target=SAVE_BUTTON)
    steps = [NAVIGATE, click]
    snapshot = StepSnapshot(
        index=1,
        step=click,
        pre_snapshot='- button "Save"',
        post_snapshot='- button "Save"\n- status: Changes saved',
    )
    fallback = _candidate(1, Step(action="assertVisible", target=SAVE_BUTTON), 0.76, coverage_fallback=True)

    augmented = augment_with_inventory([fallback], steps, StepIndexMap.identity(2), [snapshot])

    assert augmented.steps_evaluated == 1
    assert augmented.candidates_added >= 1
    assert augmented.gap_steps_filled == 1
    assert augmented.candidates[0] == fallback
    added = augmented.candidates[1]
    assert added.candidate.action == "assertText"
    assert added.candidate.text == "Changes saved"
