from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

from .assertion_selection import ApplyOutcome, CandidateRef, rank_candidate_refs
from .models import Step, Target
from .policy import AssertionPolicyConfig
from .runtime_checks import error_message
from .step_executor import (
    DEFAULT_NETWORK_IDLE_TIMEOUT_MS,
    DEFAULT_RUNTIME_TIMEOUT_MS,
    execute_step,
    wait_for_network_idle,
)

if TYPE_CHECKING:
    from playwright.sync_api import Page

logger = logging.getLogger("uiimprove.runtime")

EXISTING_ASSERTION_MESSAGE = "Equivalent assertion already exists at source step or adjacent position."
NETWORK_IDLE_TIMEOUT_MESSAGE = "Post-step network idle wait timed out; assertion skipped."
ALREADY_APPLIED_MESSAGE = "Skipped by policy: an assertion was already applied for this source step."


def validate_candidates_against_runtime(
    page: Page,
    steps: Sequence[Step],
    refs: Sequence[CandidateRef],
    policy: AssertionPolicyConfig,
    *,
    timeout_ms: int = DEFAULT_RUNTIME_TIMEOUT_MS,
    base_url: str | None = None,
    network_idle_timeout_ms: int = DEFAULT_NETWORK_IDLE_TIMEOUT_MS,
) -> list[ApplyOutcome]:
    """Replay ``steps`` and try each candidate right after its source step.

    ``refs`` carry runtime step indexes. Outcomes are returned for every ref.
    """
    outcomes: list[ApplyOutcome] = []
    by_step: dict[int, list[CandidateRef]] = {}

    for ref in refs:
        if is_duplicate_source_or_adjacent_assertion(steps, ref.candidate.index, ref.candidate.candidate):
            outcomes.append(ApplyOutcome(ref.position, "skipped_existing", EXISTING_ASSERTION_MESSAGE))
            continue
        by_step.setdefault(ref.candidate.index, []).append(ref)

    if not by_step:
        return outcomes
    ranked = {index: rank_candidate_refs(items, policy) for index, items in by_step.items()}

    try:
        page.goto("about:blank", timeout=timeout_ms)
    except Exception as exc:
        logger.info("Could not reset page before assertion replay: %s", exc)

    for index, step in enumerate(steps):
        try:
            execute_step(page, step, timeout_ms=timeout_ms, base_url=base_url, mode="analysis")
        except Exception as exc:
            message = f"Runtime replay failed at step {index + 1}: {error_message(exc)}"
            logger.warning("Assertion replay stopped: %s", message)
            for step_index in sorted(ranked):
                if step_index < index:
                    continue
                outcomes.extend(
                    ApplyOutcome(ref.position, "skipped_runtime_failure", message) for ref in ranked[step_index]
                )
            return outcomes

        step_refs = ranked.get(index, [])
        if wait_for_network_idle(page, network_idle_timeout_ms):
            outcomes.extend(
                ApplyOutcome(ref.position, "skipped_runtime_failure", NETWORK_IDLE_TIMEOUT_MESSAGE) for ref in step_refs
            )
            continue

        outcomes.extend(_try_step_candidates(page, step_refs, policy, timeout_ms, base_url))

    return outcomes


def _try_step_candidates(
    page: Page,
    refs: Sequence[CandidateRef],
    policy: AssertionPolicyConfig,
    timeout_ms: int,
    base_url: str | None,
) -> list[ApplyOutcome]:
    cap = policy.applied_assertions_per_step_cap
    outcomes: list[ApplyOutcome] = []
    attempts = 0
    applied = False

    for ref in refs:
        if applied:
            outcomes.append(ApplyOutcome(ref.position, "skipped_policy", ALREADY_APPLIED_MESSAGE))
            continue
        if attempts >= cap:
            outcomes.append(
                ApplyOutcome(
                    ref.position,
                    "skipped_policy",
                    f"Skipped by policy: max {cap} validated assertion candidate(s) per source step.",
                )
            )
            continue

        attempts += 1
        try:
            execute_step(page, ref.candidate.candidate, timeout_ms=timeout_ms, base_url=base_url, mode="playback")
        except Exception as exc:
            outcomes.append(ApplyOutcome(ref.position, "skipped_runtime_failure", error_message(exc)))
            continue
        applied = True
        outcomes.append(ApplyOutcome(ref.position, "applied"))

    return outcomes


def insert_applied_assertions(steps: Sequence[Step], insertions: Sequence[tuple[int, Step]]) -> list[Step]:
    """Insert each ``(runtime_source_index, assertion)`` right after its source step."""
    out = list(steps)
    offset = 0
    for source_index, assertion in sorted(insertions, key=lambda item: item[0]):
        out.insert(source_index + 1 + offset, assertion)
        offset += 1
    return out


def is_duplicate_source_or_adjacent_assertion(steps: Sequence[Step], source_index: int, candidate: Step) -> bool:
    for index in (source_index, source_index + 1):
        if 0 <= index < len(steps) and are_equivalent_assertions(steps[index], candidate):
            return True
    return False


def are_equivalent_assertions(left: Step, right: Step) -> bool:
    if left.action != right.action:
        return False

    action = left.action
    if action == "assertUrl":
        return left.url == right.url
    if action == "assertTitle":
        return left.title == right.title
    if not _same_target(left.target, right.target):
        return False
    if action == "assertVisible":
        return True
    if action == "assertText":
        return left.text == right.text
    if action == "assertValue":
        return left.value == right.value
    if action == "assertChecked":
        return left.expected_checked == right.expected_checked
    if action == "assertEnabled":
        return left.expected_enabled == right.expected_enabled
    return False


def _same_target(left: Target | None, right: Target | None) -> bool:
    if left is None or right is None:
        return False
    return left.value == right.value and left.kind == right.kind and left.frame_path == right.frame_path
