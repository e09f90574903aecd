from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Sequence

from .assertion_candidates import dedupe_assertion_candidates
from .models import AssertionCandidate, Step, StepIndexMap, StepSnapshot
from .snapshot import (
    SnapshotNode,
    build_role_target,
    build_text_target,
    extract_acted_target_hint,
    is_noisy_text,
    matches_acted_target,
    normalize_for_compare,
    parse_snapshot_nodes,
    step_frame_path,
)

COVERAGE_ACTIONS = frozenset({"click", "press", "hover", "fill", "select", "check", "uncheck"})

INVENTORY_TEXT_ROLES = ("heading", "status", "alert", "link", "tab")
INVENTORY_VISIBLE_ROLES = ("navigation", "banner", "main", "contentinfo", "dialog", "status", "alert")

MAX_INVENTORY_CANDIDATES_PER_STEP = 2
INVENTORY_TEXT_CONFIDENCE = 0.79
INVENTORY_VISIBLE_CONFIDENCE = 0.77


@dataclass(frozen=True, slots=True)
class InventoryAugmentation:
    candidates: list[AssertionCandidate]
    steps_evaluated: int = 0
    candidates_added: int = 0
    gap_steps_filled: int = 0


def build_inventory_assertion_candidates(snapshots: Iterable[StepSnapshot]) -> list[AssertionCandidate]:
    candidates: list[AssertionCandidate] = []
    for snapshot in snapshots:
        post_nodes = parse_snapshot_nodes(snapshot.post_snapshot)
        if not post_nodes:
            continue

        hint = extract_acted_target_hint(snapshot.step)
        frame_path = step_frame_path(snapshot.step)
        text_candidates = _inventory_text_candidates(snapshot.index, snapshot.step, post_nodes, hint, frame_path)
        excluded = {
            normalize_for_compare(item.candidate.target.value) for item in text_candidates if item.candidate.target
        }
        visible_candidates = _inventory_visible_candidates(
            snapshot.index, snapshot.step, post_nodes, hint, frame_path, excluded
        )
        candidates.extend([*text_candidates, *visible_candidates][:MAX_INVENTORY_CANDIDATES_PER_STEP])
    return candidates


def augment_with_inventory(
    candidates: list[AssertionCandidate],
    steps: Sequence[Step],
    index_map: StepIndexMap,
    snapshots: Sequence[StepSnapshot],
) -> InventoryAugmentation:
    coverage_indexes = [
        index_map.original_index(runtime_index)
        for runtime_index, step in enumerate(steps)
        if step.action in COVERAGE_ACTIONS
    ]
    covered = {
        candidate.index
        for candidate in candidates
        if not candidate.coverage_fallback and candidate.index in coverage_indexes
    }
    uncovered = {index for index in coverage_indexes if index not in covered}
    if not uncovered:
        return InventoryAugmentation(candidates)

    targeted = [snapshot for snapshot in snapshots if index_map.original_index(snapshot.index) in uncovered]
    inventory = [
        replace(candidate, index=index_map.original_index(candidate.index))
        for candidate in build_inventory_assertion_candidates(targeted)
    ]

    merged = candidates
    added = 0
    if inventory:
        merged = dedupe_assertion_candidates([*candidates, *inventory])
        added = max(0, len(merged) - len(candidates))

    filled = {
        candidate.index
        for candidate in merged
        if candidate.candidate_source == "snapshot_native"
        and candidate.coverage_fallback
        and candidate.index in uncovered
    }
    return InventoryAugmentation(merged, len(uncovered), added, len(filled))


def _inventory_text_candidates(
    index: int,
    step: Step,
    nodes: list[SnapshotNode],
    hint: str,
    frame_path: tuple[str, ...],
) -> list[AssertionCandidate]:
    qualifying: list[tuple[SnapshotNode, str]] = []
    for node in nodes:
        if node.role not in INVENTORY_TEXT_ROLES:
            continue
        text = (node.text or node.name or "").strip()
        if not text or is_noisy_text(text) or matches_acted_target(text, hint):
            continue
        qualifying.append((node, text))
    qualifying.sort(key=lambda item: INVENTORY_TEXT_ROLES.index(item[0].role))

    out: list[AssertionCandidate] = []
    seen: set[str] = set()
    for node, text in qualifying:
        if node.name:
            target = build_role_target(node.role, node.name, frame_path)
        else:
            target = build_text_target(node, text, frame_path)
        key = normalize_for_compare(target.value)
        if key in seen:
            continue
        seen.add(key)
        out.append(
            AssertionCandidate(
                index=index,
                after_action=step.action,
                candidate=Step(action="assertText", target=target, text=text),
                confidence=INVENTORY_TEXT_CONFIDENCE,
                rationale="Coverage fallback (inventory): full post-step aria inventory yielded high-signal text.",
                candidate_source="snapshot_native",
                coverage_fallback=True,
            )
        )
    return out


def _inventory_visible_candidates(
    index: int,
    step: Step,
    nodes: list[SnapshotNode],
    hint: str,
    frame_path: tuple[str, ...],
    excluded: set[str],
) -> list[AssertionCandidate]:
    qualifying = [
        node
        for node in nodes
        if node.role in INVENTORY_VISIBLE_ROLES
        and node.name
        and not is_noisy_text(node.name)
        and not matches_acted_target(node.name, hint)
    ]
    qualifying.sort(key=lambda node: INVENTORY_VISIBLE_ROLES.index(node.role))

    out: list[AssertionCandidate] = []
    seen = set(excluded)
    for node in qualifying:
        target = build_role_target(node.role, node.name or "", frame_path)
        key = normalize_for_compare(target.value)
        if key in seen:
            continue
        seen.add(key)
        out.append(
            AssertionCandidate(
                index=index,
                after_action=step.action,
                candidate=Step(action="assertVisible", target=target),
                confidence=INVENTORY_VISIBLE_CONFIDENCE,
                rationale="Coverage fallback (inventory): full post-step aria inventory found stable landmark visibility.",
                candidate_source="snapshot_native",
                coverage_fallback=True,
            )
        )
    return out
