from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Literal

from .locator_expression import role_locator_expression, text_locator_expression
from .models import Step, Target

StateChangeType = Literal["enabled", "disabled", "expanded", "collapsed"]

VISIBLE_ROLE_ALLOWLIST = frozenset(
    {
        "alert",
        "button",
        "checkbox",
        "combobox",
        "dialog",
        "heading",
        "link",
        "menuitem",
        "navigation",
        "radio",
        "status",
        "switch",
        "tab",
        "textbox",
    }
)
TEXT_ROLE_ALLOWLIST = frozenset({"heading", "status", "alert", "tab", "link"})
STABLE_STRUCTURAL_ROLES = frozenset({"navigation", "banner", "main", "contentinfo"})
STATE_CHANGE_ROLE_ALLOWLIST = frozenset(
    {"button", "textbox", "combobox", "checkbox", "radio", "switch", "tab", "link"}
)

MAX_TEXT_CANDIDATES_PER_STEP = 2
MAX_VISIBLE_CANDIDATES_PER_STEP = 3
MAX_STATE_CANDIDATES_PER_STEP = 2

_TEXT_ROLE_PRIORITY = {"heading": 0, "alert": 1, "status": 2, "tab": 3, "link": 4}
_VISIBLE_ROLE_PRIORITY = {"heading": 0, "dialog": 1, "alert": 2, "link": 3, "button": 4, "tab": 5}
_STABLE_STRUCTURAL_PRIORITY = {"navigation": 0, "banner": 1, "main": 2, "contentinfo": 3}

_ROLE_PATTERN = re.compile(r"^([a-zA-Z][a-zA-Z0-9_-]*)")
_REF_PATTERN = re.compile(r"\[ref=([^\]]+)\]")
_NAME_PATTERN = re.compile(r'"([^"]+)"')
_TEXT_PATTERN = re.compile(r": (.+)$")
_EXPANDED_PATTERN = re.compile(r"\[expanded=(true|false)\]")
_NUMERIC_ONLY_PATTERN = re.compile(r"^\d+(?:[.,]\d+)?$")
_URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)
_LETTER_PATTERN = re.compile(r"[a-zA-Z]")


@dataclass(frozen=True, slots=True)
class SnapshotNode:
    role: str
    raw_line: str
    name: str | None = None
    text: str | None = None
    ref: str | None = None
    visible: bool = True
    enabled: bool = True
    expanded: bool | None = None


@dataclass(frozen=True, slots=True)
class TextChange:
    node: SnapshotNode
    old_text: str
    new_text: str


@dataclass(frozen=True, slots=True)
class StateChange:
    node: SnapshotNode
    type: StateChangeType


def parse_snapshot_nodes(snapshot: str) -> list[SnapshotNode]:
    nodes: list[SnapshotNode] = []
    for line in snapshot.splitlines():
        trimmed = line.strip()
        if not trimmed.startswith("- "):
            continue
        content = trimmed[2:]
        if content.startswith("/"):
            continue

        role_match = _ROLE_PATTERN.match(content)
        if not role_match:
            continue

        name_match = _NAME_PATTERN.search(content)
        text_match = _TEXT_PATTERN.search(content)
        ref_match = _REF_PATTERN.search(content)
        expanded_match = _EXPANDED_PATTERN.search(content)

        nodes.append(
            SnapshotNode(
                role=role_match.group(1),
                raw_line=trimmed,
                name=(name_match.group(1).strip() or None) if name_match else None,
                text=(text_match.group(1).strip() or None) if text_match else None,
                ref=ref_match.group(1) if ref_match else None,
                visible="[hidden]" not in content,
                enabled="[disabled]" not in content,
                expanded=(expanded_match.group(1) == "true") if expanded_match else None,
            )
        )
    return nodes


def normalize_for_compare(value: str) -> str:
    return re.sub(r"\s+", " ", value.strip().lower())


def node_signature(node: SnapshotNode) -> tuple[str, str, str]:
    return (node.role, normalize_for_compare(node.name or ""), normalize_for_compare(node.text or ""))


def node_identity_key(node: SnapshotNode) -> str:
    if node.ref:
        return f"ref:{normalize_for_compare(node.ref)}"
    return f"{node.role}|{normalize_for_compare(node.name or '')}"


def build_delta_nodes(pre: list[SnapshotNode], post: list[SnapshotNode]) -> list[SnapshotNode]:
    pre_keys = {node_signature(node) for node in pre}
    return [node for node in post if node_signature(node) not in pre_keys]


def build_stable_nodes(pre: list[SnapshotNode], post: list[SnapshotNode]) -> list[SnapshotNode]:
    pre_keys = {node_signature(node) for node in pre}
    return [node for node in post if node_signature(node) in pre_keys]


def detect_text_changes(pre: list[SnapshotNode], post: list[SnapshotNode]) -> list[TextChange]:
    pre_by_key = {node_identity_key(node): node for node in pre}
    changes: list[TextChange] = []
    for post_node in post:
        pre_node = pre_by_key.get(node_identity_key(post_node))
        if pre_node is None:
            continue
        old_text = (pre_node.text or pre_node.name or "").strip()
        new_text = (post_node.text or post_node.name or "").strip()
        if old_text and new_text and old_text != new_text:
            changes.append(TextChange(post_node, old_text, new_text))
    return changes


def detect_state_changes(pre: list[SnapshotNode], post: list[SnapshotNode]) -> list[StateChange]:
    pre_by_key = {node_identity_key(node): node for node in pre}
    changes: list[StateChange] = []
    for post_node in post:
        pre_node = pre_by_key.get(node_identity_key(post_node))
        if pre_node is None:
            continue
        if pre_node.enabled != post_node.enabled:
            changes.append(StateChange(post_node, "enabled" if post_node.enabled else "disabled"))
        if post_node.expanded is not None and pre_node.expanded != post_node.expanded:
            changes.append(StateChange(post_node, "expanded" if post_node.expanded else "collapsed"))
    return changes


def is_noisy_text(value: str) -> bool:
    text = value.strip()
    if len(text) < 2 or len(text) > 120:
        return True
    if _NUMERIC_ONLY_PATTERN.match(text):
        return True
    if _URL_PATTERN.match(text):
        return True
    return not _LETTER_PATTERN.search(text)


def extract_acted_target_hint(step: Step) -> str:
    if step.action in {"navigate", "assertUrl"}:
        return step.url or ""
    if step.action == "assertTitle":
        return step.title or ""
    return step.target.value if step.target else ""


def matches_acted_target(value: str, acted_target_hint: str) -> bool:
    normalized_value = normalize_for_compare(value)
    normalized_target = normalize_for_compare(acted_target_hint)
    if not normalized_value or not normalized_target:
        return False
    return normalized_value in normalized_target or normalized_target in normalized_value


def build_role_target(role: str, name: str, frame_path: tuple[str, ...] = ()) -> Target:
    return Target(
        value=role_locator_expression(role, name),
        kind="locator_expression",
        source="codegen-fallback",
        frame_path=frame_path,
    )


def build_text_target(node: SnapshotNode, text: str, frame_path: tuple[str, ...] = ()) -> Target:
    if node.name and node.role in VISIBLE_ROLE_ALLOWLIST:
        value = role_locator_expression(node.role, node.name)
    else:
        value = text_locator_expression(text)
    return Target(value=value, kind="locator_expression", source="codegen-fallback", frame_path=frame_path)


def text_role_priority(role: str) -> int:
    return _TEXT_ROLE_PRIORITY.get(role, 5)


def visible_role_priority(role: str) -> int:
    return _VISIBLE_ROLE_PRIORITY.get(role, 6)


def stable_structural_role_priority(role: str) -> int:
    return _STABLE_STRUCTURAL_PRIORITY.get(role, 5)


def step_frame_path(step: Step) -> tuple[str, ...]:
    return step.target.frame_path if step.target else ()
