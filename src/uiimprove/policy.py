from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Mapping

from .errors import UserError

AssertionPolicyName = Literal["reliable", "balanced", "aggressive"]
SnapshotVisiblePolicy = Literal["stable_structural_only", "runtime_validated"]

ASSERTION_POLICIES: tuple[str, ...] = ("reliable", "balanced", "aggressive")
DEFAULT_ASSERTION_POLICY: AssertionPolicyName = "balanced"

_POLICY_HINT = "Set assertion_policy to 'reliable', 'balanced' or 'aggressive'."

RELIABLE_ACTION_PRIORITY: Mapping[str, int] = {
    "assertValue": 0,
    "assertChecked": 1,
    "assertText": 2,
    "assertVisible": 3,
    "assertEnabled": 4,
    "assertUrl": 5,
    "assertTitle": 6,
}
BALANCED_ACTION_PRIORITY: Mapping[str, int] = {
    "assertText": 0,
    "assertValue": 1,
    "assertChecked": 2,
    "assertVisible": 3,
    "assertEnabled": 4,
    "assertUrl": 5,
    "assertTitle": 6,
}


@dataclass(frozen=True, slots=True)
class SnapshotCandidateVolumeCap:
    navigate: int
    other: int

    def for_action(self, action: str) -> int:
        return self.navigate if action == "navigate" else self.other


@dataclass(frozen=True, slots=True)
class AssertionPolicyConfig:
    name: AssertionPolicyName
    applied_assertions_per_step_cap: int
    snapshot_candidate_volume_cap: SnapshotCandidateVolumeCap
    allow_snapshot_visible: SnapshotVisiblePolicy
    snapshot_text_min_score: float
    hard_filter_volatility_flags: frozenset[str]
    action_priority_for_apply: Mapping[str, int] = field(default_factory=lambda: BALANCED_ACTION_PRIORITY)

    def action_priority(self, action: str) -> int:
        return self.action_priority_for_apply.get(action, len(self.action_priority_for_apply))


ASSERTION_POLICY_CONFIG: Mapping[str, AssertionPolicyConfig] = {
    "reliable": AssertionPolicyConfig(
        name="reliable",
        applied_assertions_per_step_cap=1,
        snapshot_candidate_volume_cap=SnapshotCandidateVolumeCap(navigate=1, other=2),
        allow_snapshot_visible="stable_structural_only",
        snapshot_text_min_score=0.82,
        hard_filter_volatility_flags=frozenset(
            {
                "contains_numeric_fragment",
                "contains_date_or_time_fragment",
                "contains_weather_or_news_fragment",
                "long_text",
                "contains_headline_like_text",
                "contains_pipe_separator",
            }
        ),
        action_priority_for_apply=RELIABLE_ACTION_PRIORITY,
    ),
    "balanced": AssertionPolicyConfig(
        name="balanced",
        applied_assertions_per_step_cap=2,
        snapshot_candidate_volume_cap=SnapshotCandidateVolumeCap(navigate=2, other=3),
        allow_snapshot_visible="runtime_validated",
        snapshot_text_min_score=0.78,
        hard_filter_volatility_flags=frozenset({"contains_headline_like_text", "contains_pipe_separator"}),
    ),
    "aggressive": AssertionPolicyConfig(
        name="aggressive",
        applied_assertions_per_step_cap=3,
        snapshot_candidate_volume_cap=SnapshotCandidateVolumeCap(navigate=3, other=4),
        allow_snapshot_visible="runtime_validated",
        snapshot_text_min_score=0.72,
        hard_filter_volatility_flags=frozenset({"contains_headline_like_text"}),
    ),
}


def resolve_assertion_policy(name: str | None = None) -> AssertionPolicyConfig:
    resolved = DEFAULT_ASSERTION_POLICY if name is None else name
    config = ASSERTION_POLICY_CONFIG.get(resolved)
    if config is None:
        raise UserError(f"Invalid assertion policy: {name}", _POLICY_HINT)
    return config
