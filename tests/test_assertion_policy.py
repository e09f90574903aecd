import pytest

from uiimprove.assertion_selection import (
    RELIABLE_VISIBLE_POLICY_MESSAGE,
    CandidateRef,
    rank_candidate_refs,
    select_candidates_for_apply,
)
from uiimprove.errors import UserError
from uiimprove.models import AssertionCandidate, Step, Target
from uiimprove.policy import resolve_assertion_policy
from uiimprove.stability import (
    assess_assertion_candidate_stability,
    clamp_snapshot_candidate_volume,
    should_filter_volatile_snapshot_text,
)

HEADING = Target(value="get_by_role('heading', name='Welcome')", kind="locator_expression")
NAV = Target(value="get_by_role('navigation', name='Main')", kind="locator_expression")


def _candidate(step: Step, confidence: float, source: str = "snapshot_native", **extra) -> AssertionCandidate:
    return AssertionCandidate(
        index=extra.pop("index", 1),
        after_action=extra.pop("after_action", "click"),
        candidate=step,
        confidence=confidence,
        rationale="test",
        candidate_source=source,
        **extra,
    )


def test_policy_defaults_to_balanced() -> None:
    assert resolve_assertion_policy().name == "balanced"
    assert resolve_assertion_policy("reliable").applied_assertions_per_step_cap == 1
    assert resolve_assertion_policy("aggressive").snapshot_text_min_score == 0.72


def test_invalid_policy_name_is_a_user_error() -> None:
    with pytest.raises(UserError) as excinfo:
        resolve_assertion_policy("strict")
    assert excinfo.value.message == "Invalid assertion policy: strict"
    assert excinfo.value.hint == "Set assertion_policy to 'reliable', 'balanced' or 'aggressive'."


def test_reliable_policy_only_applies_structural_snapshot_visibility() -> None:
    policy = resolve_assertion_policy("reliable")
    plain = _candidate(Step(action="assertVisible", target=HEADING), 0.9)
    structural = _candidate(Step(action="assertVisible", target=NAV), 0.9, stable_structural=True)

    selection = select_candidates_for_apply([plain, structural], policy)

    assert [(item.position, item.status, item.message) for item in selection.skipped_policy] == [
        (0, "skipped_policy", RELIABLE_VISIBLE_POLICY_MESSAGE)
    ]
    assert [ref.position for ref in selection.selected] == [1]

    balanced = select_candidates_for_apply([plain], resolve_assertion_policy("balanced"))
    assert [ref.position for ref in balanced.selected] == [0]


def test_low_confidence_candidates_are_skipped_with_score_message() -> None:
    fallback = _candidate(Step(action="assertVisible", target=HEADING), 0.55, source="deterministic")
    selection = select_candidates_for_apply([fallback], resolve_assertion_policy())

    assert selection.selected == []
    assert selection.skipped_low_confidence[0].message == "Candidate score 0.550 is below threshold 0.750."


def test_snapshot_text_uses_policy_text_threshold() -> None:
    text = _candidate(Step(action="assertText", target=HEADING, text="Welcome"), 0.8)
    assert select_candidates_for_apply([text], resolve_assertion_policy("balanced")).selected
    assert not select_candidates_for_apply([text], resolve_assertion_policy("reliable")).selected


def test_forced_policy_messages_win() -> None:
    text = _candidate(Step(action="assertText", target=HEADING, text="Welcome"), 0.95)
    selection = select_candidates_for_apply([text], resolve_assertion_policy(), forced_policy_messages={0: "capped"})
    assert selection.skipped_policy[0].message == "capped"


def test_ranking_puts_fallbacks_last() -> None:
    policy = resolve_assertion_policy()
    fallback = CandidateRef(0, _candidate(Step(action="assertVisible", target=HEADING), 0.99, coverage_fallback=True))
    value = CandidateRef(1, _candidate(Step(action="assertText", target=HEADING, text="Welcome"), 0.8))
    assert [ref.position for ref in rank_candidate_refs([fallback, value], policy)] == [1, 0]


def test_stability_rewards_short_heading_text() -> None:
    assessed = assess_assertion_candidate_stability(
        _candidate(Step(action="assertText", target=HEADING, text="Welcome"), 0.82)
    )
    assert assessed.stability_score == pytest.approx(0.91)
    assert assessed.volatility_flags == ()


def test_stability_flags_volatile_text() -> None:
    target = Target(value="get_by_text('Weather update 12:30')", kind="locator_expression")
    assessed = assess_assertion_candidate_stability(
        _candidate(Step(action="assertText", target=target, text="Weather update 12:30"), 0.82)
    )
    assert assessed.stability_score == pytest.approx(0.61)
    assert assessed.volatility_flags == (
        "contains_numeric_fragment",
        "contains_date_or_time_fragment",
        "contains_weather_or_news_fragment",
    )

    reliable = resolve_assertion_policy("reliable")
    balanced = resolve_assertion_policy("balanced")
    assert should_filter_volatile_snapshot_text(assessed, reliable.hard_filter_volatility_flags)
    assert not should_filter_volatile_snapshot_text(assessed, balanced.hard_filter_volatility_flags)


def test_navigate_context_is_penalized() -> None:
    assessed = assess_assertion_candidate_stability(
        _candidate(Step(action="assertVisible", target=NAV), 0.8, source="deterministic", after_action="navigate")
    )
    assert assessed.stability_score == pytest.approx(0.62)
    assert assessed.volatility_flags == ("navigate_context",)


def test_snapshot_volume_is_clamped_per_source_step() -> None:
    policy = resolve_assertion_policy("reliable")
    candidates = [
        _candidate(Step(action="assertText", target=HEADING, text="Welcome"), 0.82),
        _candidate(Step(action="assertVisible", target=NAV), 0.78),
        _candidate(Step(action="assertVisible", target=HEADING), 0.7),
        _candidate(Step(action="assertVisible", target=HEADING), 0.7, source="deterministic"),
        _candidate(Step(action="assertVisible", target=NAV), 0.7, index=3),
    ]
    assert clamp_snapshot_candidate_volume(candidates, policy.snapshot_candidate_volume_cap) == {2}
