from __future__ import annotations

from typing import Iterable

from .models import AssertionCandidate, AssertionCandidateSource, Step, StepSnapshot
from .snapshot import (
    MAX_STATE_CANDIDATES_PER_STEP,
    MAX_TEXT_CANDIDATES_PER_STEP,
    MAX_VISIBLE_CANDIDATES_PER_STEP,
    STABLE_STRUCTURAL_ROLES,
    STATE_CHANGE_ROLE_ALLOWLIST,
    TEXT_ROLE_ALLOWLIST,
    VISIBLE_ROLE_ALLOWLIST,
    SnapshotNode,
    build_delta_nodes,
    build_role_target,
    build_stable_nodes,
    build_text_target,
    detect_state_changes,
    detect_text_changes,
    extract_acted_target_hint,
    is_noisy_text,
    matches_acted_target,
    normalize_for_compare,
    parse_snapshot_nodes,
    stable_structural_role_priority,
    step_frame_path,
    text_role_priority,
    visible_role_priority,
)

_PAGE_CHANGE_ACTIONS = {"click", "navigate"}


def build_snapshot_assertion_candidates(
    snapshots: Iterable[StepSnapshot],
    candidate_source: AssertionCandidateSource = "snapshot_native",
) -> list[AssertionCandidate]:
    candidates: list[AssertionCandidate] = []
    for snapshot in snapshots:
        candidates.extend(build_step_snapshot_candidates(snapshot, candidate_source))
    return candidates


def build_step_snapshot_candidates(
    snapshot: StepSnapshot,
    candidate_source: AssertionCandidateSource = "snapshot_native",
) -> list[AssertionCandidate]:
    step = snapshot.step
    pre_nodes = parse_snapshot_nodes(snapshot.pre_snapshot)
    post_nodes = parse_snapshot_nodes(snapshot.post_snapshot)
    delta = build_delta_nodes(pre_nodes, post_nodes)
    hint = extract_acted_target_hint(step)
    frame_path = step_frame_path(step)

    candidates: list[AssertionCandidate] = []

    text_candidates = build_text_candidates(
        snapshot.index, step, delta, hint, frame_path, candidate_source, MAX_TEXT_CANDIDATES_PER_STEP
    )
    candidates.extend(text_candidates)
    text_targets = {
        normalize_for_compare(item.candidate.target.value) for item in text_candidates if item.candidate.target
    }
    for visible in build_visible_candidates(
        snapshot.index, step, delta, hint, frame_path, candidate_source, MAX_VISIBLE_CANDIDATES_PER_STEP
    ):
        if visible.candidate.target and normalize_for_compare(visible.candidate.target.value) in text_targets:
            continue
        candidates.append(visible)

    candidates.extend(
        build_text_changed_candidates(snapshot.index, step, pre_nodes, post_nodes, hint, frame_path, candidate_source)
    )
    state_candidates = build_state_change_candidates(
        snapshot.index, step, pre_nodes, post_nodes, hint, frame_path, candidate_source
    )
    candidates.extend(state_candidates)
    page_candidates = [
        *build_url_candidates(snapshot.index, step, snapshot.pre_url, snapshot.post_url, candidate_source),
        *build_title_candidates(snapshot.index, step, snapshot.pre_title, snapshot.post_title, candidate_source),
    ]
    candidates.extend(page_candidates)

    # landmarks only anchor a step that changed something
    if delta or state_candidates or page_candidates:
        candidates.extend(
            build_stable_visible_candidates(
                snapshot.index,
                step,
                build_stable_nodes(pre_nodes, post_nodes),
                hint,
                frame_path,
                candidate_source,
            )
        )
    return candidates


def build_text_candidates(
    index: int,
    step: Step,
    nodes: list[SnapshotNode],
    acted_target_hint: str,
    frame_path: tuple[str, ...],
    candidate_source: AssertionCandidateSource,
    max_count: int,
) -> list[AssertionCandidate]:
    qualifying: list[tuple[SnapshotNode, str]] = []
    for node in nodes:
        if node.role not in TEXT_ROLE_ALLOWLIST:
            continue
        text = (node.text or node.name or "").strip()
        if not text or is_noisy_text(text) or matches_acted_target(text, acted_target_hint):
            continue
        qualifying.append((node, text))
    qualifying.sort(key=lambda item: text_role_priority(item[0].role))

    return [
        AssertionCandidate(
            index=index,
            after_action=step.action,
            candidate=Step(action="assertText", target=build_text_target(node, text, frame_path), text=text),
            confidence=0.82,
            rationale="Snapshot delta identified new high-signal text after this step.",
            candidate_source=candidate_source,
        )
        for node, text in qualifying[:max_count]
    ]


def build_visible_candidates(
    index: int,
    step: Step,
    nodes: list[SnapshotNode],
    acted_target_hint: str,
    frame_path: tuple[str, ...],
    candidate_source: AssertionCandidateSource,
    max_count: int,
) -> list[AssertionCandidate]:
    qualifying = [
        node
        for node in nodes
        if node.role in VISIBLE_ROLE_ALLOWLIST
        and node.name
        and not is_noisy_text(node.name)
        and not matches_acted_target(node.name, acted_target_hint)
    ]
    qualifying.sort(key=lambda node: visible_role_priority(node.role))

    return [
        AssertionCandidate(
            index=index,
            after_action=step.action,
            candidate=Step(action="assertVisible", target=build_role_target(node.role, node.name or "", frame_path)),
            confidence=0.78,
            rationale="Snapshot delta found a new role/name element after this step.",
            candidate_source=candidate_source,
        )
        for node in qualifying[:max_count]
    ]


def build_text_changed_candidates(
    index: int,
    step: Step,
    pre_nodes: list[SnapshotNode],
    post_nodes: list[SnapshotNode],
    acted_target_hint: str,
    frame_path: tuple[str, ...],
    candidate_source: AssertionCandidateSource,
) -> list[AssertionCandidate]:
    qualifying = [
        change
        for change in detect_text_changes(pre_nodes, post_nodes)
        if change.node.role in TEXT_ROLE_ALLOWLIST
        and not is_noisy_text(change.new_text)
        and not matches_acted_target(change.new_text, acted_target_hint)
    ]
    return [
        AssertionCandidate(
            index=index,
            after_action=step.action,
            candidate=Step(
                action="assertText",
                target=build_text_target(change.node, change.new_text, frame_path),
                text=change.new_text,
            ),
            confidence=0.85,
            rationale="Text content changed after action.",
            candidate_source=candidate_source,
        )
        for change in qualifying[:MAX_TEXT_CANDIDATES_PER_STEP]
    ]


def build_state_change_candidates(
    index: int,
    step: Step,
    pre_nodes: list[SnapshotNode],
    post_nodes: list[SnapshotNode],
    acted_target_hint: str,
    frame_path: tuple[str, ...],
    candidate_source: AssertionCandidateSource,
) -> list[AssertionCandidate]:
    qualifying = [
        change
        for change in detect_state_changes(pre_nodes, post_nodes)
        if change.type in {"enabled", "disabled"}
        and change.node.role in STATE_CHANGE_ROLE_ALLOWLIST
        and change.node.name
        and not is_noisy_text(change.node.name)
        and not matches_acted_target(change.node.name, acted_target_hint)
    ]
    return [
        AssertionCandidate(
            index=index,
            after_action=step.action,
            candidate=Step(
                action="assertEnabled",
                target=build_role_target(change.node.role, change.node.name or "", frame_path),
                enabled=change.type == "enabled",
            ),
            confidence=0.8,
            rationale=f"Element became {change.type} after action.",
            candidate_source=candidate_source,
        )
        for change in qualifying[:MAX_STATE_CANDIDATES_PER_STEP]
    ]


def build_url_candidates(
    index: int,
    step: Step,
    pre_url: str | None,
    post_url: str | None,
    candidate_source: AssertionCandidateSource,
) -> list[AssertionCandidate]:
    if not pre_url or not post_url or pre_url == post_url:
        return []
    if step.action not in _PAGE_CHANGE_ACTIONS:
        return []
    return [
        AssertionCandidate(
            index=index,
            after_action=step.action,
            candidate=Step(action="assertUrl", url=post_url),
            confidence=0.88,
            rationale="URL changed after navigation action.",
            candidate_source=candidate_source,
        )
    ]


def build_title_candidates(
    index: int,
    step: Step,
    pre_title: str | None,
    post_title: str | None,
    candidate_source: AssertionCandidateSource,
) -> list[AssertionCandidate]:
    if not pre_title or not post_title or pre_title == post_title:
        return []
    if step.action not in _PAGE_CHANGE_ACTIONS or is_noisy_text(post_title):
        return []
    return [
        AssertionCandidate(
            index=index,
            after_action=step.action,
            candidate=Step(action="assertTitle", title=post_title),
            confidence=0.82,
            rationale="Page title changed after action.",
            candidate_source=candidate_source,
        )
    ]


def build_stable_visible_candidates(
    index: int,
    step: Step,
    stable_nodes: list[SnapshotNode],
    acted_target_hint: str,
    frame_path: tuple[str, ...],
    candidate_source: AssertionCandidateSource,
) -> list[AssertionCandidate]:
    qualifying = [
        node
        for node in stable_nodes
        if node.role in STABLE_STRUCTURAL_ROLES
        and node.name
        and not is_noisy_text(node.name)
        and not matches_acted_target(node.name, acted_target_hint)
    ]
    qualifying.sort(key=lambda node: stable_structural_role_priority(node.role))

    return [
        AssertionCandidate(
            index=index,
            after_action=step.action,
            candidate=Step(action="assertVisible", target=build_role_target(node.role, node.name or "", frame_path)),
            confidence=0.84,
            rationale="Stable structural element present in both pre- and post-snapshots.",
            candidate_source=candidate_source,
            stable_structural=True,
        )
        for node in qualifying[:1]
    ]
