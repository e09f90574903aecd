import pytest
from fake_page import FakeLocator, FakePage

from uiimprove.models import Target, TargetCandidate
from uiimprove.scoring import (
    collect_fallback_targets,
    score_locator_expression,
    score_target_candidates,
    select_target_candidate,
    target_base_score,
)

HEADLINE = "Tientallen vluchten op Schiphol uit voorzorg geschrapt vanwege winterweer"


def _candidate(candidate_id: str, value: str, kind: str = "locator_expression", **extra) -> TargetCandidate:
    source = "current" if candidate_id.startswith("current") else "derived"
    reason_codes = extra.pop("reason_codes", ("existing_target",) if source == "current" else ("derived",))
    return TargetCandidate(
        id=candidate_id,
        target=Target(value=value, kind=kind),
        source=source,
        reason_codes=reason_codes,
        **extra,
    )


def test_role_expression_scores_above_positional_variant() -> None:
    assert score_locator_expression("get_by_role('button', name='Save')") == 0.9
    assert score_locator_expression("get_by_role('button', name='Save').nth(0)") == 0.75
    assert score_locator_expression("get_by_role('button', name='Save').first") == 0.75
    assert score_locator_expression("locator('li').filter(has_text='Milk')") == 0.45


def test_expression_scores_are_bounded_and_idempotent() -> None:
    values = [
        "get_by_test_id('save')",
        "get_by_label('Email')",
        "locator('a').nth(1).nth(2).nth(3).nth(4)",
        "not even python (",
    ]
    for value in values:
        score = score_locator_expression(value)
        assert 0.0 <= score <= 1.0
        assert score_locator_expression(value) == score


def test_base_score_by_target_kind() -> None:
    assert target_base_score(Target(value="data-testid=save", kind="playwright_selector")) == 0.75
    assert target_base_score(Target(value="#save", kind="css")) == 0.45
    assert target_base_score(Target(value="//button", kind="xpath")) == 0.35
    assert target_base_score(Target(value="page.evaluate('x')", kind="locator_expression")) == 0.1


def test_scoring_without_page_uses_base_scores() -> None:
    scored = score_target_candidates(
        None,
        [
            _candidate("current-1", "data-testid=save", kind="playwright_selector"),
            _candidate("derived-2", "get_by_test_id('save')"),
        ],
    )
    assert [item.candidate.id for item in scored] == ["derived-2", "current-1"]
    assert scored[0].score == 0.9
    assert all("runtime_unavailable" in item.reason_codes for item in scored)
    assert all(item.match_count is None for item in scored)


def test_runtime_scoring_rewards_unique_visible_matches() -> None:
    page = FakePage(
        {
            "role:button:Save": FakeLocator(count=1),
            "locator:.btn": FakeLocator(count=3),
        }
    )
    scored = score_target_candidates(
        page,
        [
            _candidate("current-1", "locator('.btn')"),
            _candidate("derived-2", "get_by_role('button', name='Save')"),
            _candidate("derived-3", "get_by_text('Gone')"),
        ],
    )

    by_id = {item.candidate.id: item for item in scored}
    assert by_id["derived-2"].score == pytest.approx(0.95)
    assert by_id["derived-2"].match_count == 1
    assert "unique_match" in by_id["derived-2"].reason_codes
    assert by_id["current-1"].score == pytest.approx(0.505)
    assert "multiple_matches" in by_id["current-1"].reason_codes
    assert by_id["derived-3"].score == pytest.approx(0.35)
    assert "no_matches" in by_id["derived-3"].reason_codes
    assert scored[0].candidate.id == "derived-2"


def test_selection_adopts_only_on_threshold_gain() -> None:
    current_target = Target(value="data-testid=save", kind="playwright_selector")
    scored = score_target_candidates(
        None,
        [
            _candidate("current-1", current_target.value, kind="playwright_selector"),
            _candidate("derived-2", "get_by_test_id('save')"),
        ],
    )

    selection = select_target_candidate(scored, current_target, apply_selectors=False)
    assert selection is not None
    assert selection.improve_opportunity
    assert selection.adopt
    assert selection.recommended_target.value == "get_by_test_id('save')"
    assert selection.confidence_delta == 0.15

    # applying needs a live unique match
    applied = select_target_candidate(scored, current_target, apply_selectors=True)
    assert applied is not None
    assert applied.improve_opportunity
    assert not applied.adopt
    assert applied.recommended_target == current_target


def test_small_gain_is_not_adopted() -> None:
    current_target = Target(value="#save", kind="css")
    scored = score_target_candidates(
        None,
        [_candidate("current-1", "#save", kind="css"), _candidate("derived-2", "locator('#save')")],
    )
    selection = select_target_candidate(scored, current_target, apply_selectors=False)
    assert selection is not None
    assert not selection.adopt
    assert selection.recommended_target == current_target


def test_empty_candidate_list_has_no_selection() -> None:
    assert select_target_candidate([], Target(value="#a", kind="css"), apply_selectors=False) is None


def test_dynamic_target_adopts_repair_on_score_tie() -> None:
    current_value = f"get_by_role('link', name='{HEADLINE}', exact=True)"
    repaired_value = f"get_by_role('link', name='{HEADLINE}')"
    page = FakePage({f"role:link:{HEADLINE}": FakeLocator(count=1)})
    scored = score_target_candidates(
        page,
        [
            _candidate("current-1", current_value, dynamic_signals=("exact_true", "long_text")),
            _candidate("repair-1", repaired_value, reason_codes=("locator_repair_remove_exact",)),
        ],
    )
    assert scored[0].score == scored[1].score

    selection = select_target_candidate(scored, Target(value=current_value, kind="locator_expression"), apply_selectors=True)
    assert selection is not None
    assert not selection.improve_opportunity
    assert selection.tie_repair
    assert selection.adopt
    assert selection.selected_is_repair
    assert selection.recommended_target.value == repaired_value


def test_static_target_does_not_adopt_on_tie() -> None:
    page = FakePage({"role:button:Save": FakeLocator(count=1)})
    scored = score_target_candidates(
        page,
        [
            _candidate("current-1", "get_by_role('button', name='Save', exact=True)"),
            _candidate("repair-1", "get_by_role('button', name='Save')", reason_codes=("locator_repair_remove_exact",)),
        ],
    )
    selection = select_target_candidate(
        scored, Target(value="get_by_role('button', name='Save', exact=True)", kind="locator_expression"), apply_selectors=True
    )
    assert selection is not None
    assert not selection.tie_repair
    assert not selection.adopt


def test_fallback_targets_need_unique_match_and_minimum_score() -> None:
    page = FakePage(
        {
            "testid:save": FakeLocator(count=1),
            "role:button:Save": FakeLocator(count=1),
            "locator:.btn": FakeLocator(count=2),
        }
    )
    scored = score_target_candidates(
        page,
        [
            _candidate("current-1", "locator('.btn')"),
            _candidate("derived-2", "get_by_test_id('save')"),
            _candidate("derived-3", "get_by_role('button', name='Save')"),
        ],
    )
    selected = scored[0]
    fallbacks = collect_fallback_targets(scored, selected)
    assert [item.value for item in fallbacks] == ["get_by_role('button', name='Save')"]
    assert fallbacks[0].fallbacks == ()
