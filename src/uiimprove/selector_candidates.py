from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Iterable

from .locator_expression import quote, role_locator_expression
from .locator_runtime import resolve_locator
from .models import Diagnostic, Target, TargetCandidate
from .snapshot import parse_snapshot_nodes

if TYPE_CHECKING:
    from playwright.sync_api import Page

logger = logging.getLogger("uiimprove.improve")

_CSS_TEST_ID_PATTERNS = (
    re.compile(r"^\[data-testid=['\"]([^'\"]+)['\"]\]$"),
    re.compile(r"^\[data-test-id=['\"]([^'\"]+)['\"]\]$"),
)

USELESS_ARIA_ROLES = {"generic", "none", "presentation"}
FORM_CONTROL_ROLES = {"textbox", "combobox", "spinbutton", "listbox", "searchbox"}
ARIA_TEXT_ROLES = {"heading", "status", "alert", "link"}


def merge_target_candidates(candidates: list[TargetCandidate], extra: Iterable[TargetCandidate]) -> int:
    """Append ``extra`` candidates whose target key is new; return how many were added."""
    keys = {candidate.target.key() for candidate in candidates}
    added = 0
    for candidate in extra:
        key = candidate.target.key()
        if key in keys:
            continue
        keys.add(key)
        candidates.append(candidate)
        added += 1
    return added


def generate_target_candidates(target: Target) -> list[TargetCandidate]:
    candidates: list[TargetCandidate] = []
    seen: set[tuple[str, str, str, tuple[str, ...]]] = set()

    def push(candidate_target: Target, source: str, reason_codes: tuple[str, ...]) -> None:
        key = candidate_target.key()
        if key in seen:
            return
        seen.add(key)
        candidates.append(
            TargetCandidate(
                id=f"{source}-{len(candidates) + 1}",
                target=candidate_target,
                source=source,  # type: ignore[arg-type]
                reason_codes=reason_codes,
            )
        )

    push(target, "current", ("existing_target",))
    for derived, reason_code in _derive_targets(target):
        push(derived, "derived", (reason_code,))
    return candidates


def _derive_targets(target: Target) -> list[tuple[Target, str]]:
    value = target.value.strip()
    if not value:
        return []

    out: list[tuple[Target, str]] = []

    def expression(expression_value: str, reason_code: str) -> None:
        out.append(
            (
                Target(
                    value=expression_value,
                    kind="locator_expression",
                    source="manual",
                    frame_path=target.frame_path,
                ),
                reason_code,
            )
        )

    if target.kind == "playwright_selector":
        engine, separator, body = value.partition("=")
        engine = engine.strip()
        body = body.strip()
        if separator and engine and body:
            if engine == "data-testid":
                expression(f"get_by_test_id({quote(_strip_quotes(body))})", "engine_data_testid_to_expression")
            elif engine == "text":
                expression(f"get_by_text({quote(_strip_quotes(body))})", "engine_text_to_expression")
            elif engine == "css":
                expression(f"locator({quote(body)})", "engine_css_to_expression")

    if target.kind == "css":
        expression(f"locator({quote(value)})", "css_to_locator_expression")
        test_id = _parse_css_test_id(value)
        if test_id:
            expression(f"get_by_test_id({quote(test_id)})", "css_testid_to_expression")

    if target.kind == "xpath":
        xpath = value if value.startswith("xpath=") else f"xpath={value}"
        expression(f"locator({quote(xpath)})", "xpath_to_locator_expression")

    return out


def generate_aria_target_candidates(
    page: Page,
    target: Target,
    existing_values: Iterable[str],
    timeout_ms: int,
) -> tuple[list[TargetCandidate], list[Diagnostic]]:
    candidates: list[TargetCandidate] = []
    diagnostics: list[Diagnostic] = []
    seen_values = set(existing_values)

    try:
        locator = resolve_locator(page, target)
        snapshot_text = locator.aria_snapshot(timeout=timeout_ms)
    except Exception as exc:
        diagnostics.append(
            Diagnostic("aria_snapshot_failed", "info", f"Aria snapshot unavailable for target: {exc}")
        )
        return candidates, diagnostics

    nodes = parse_snapshot_nodes(snapshot_text)
    if not nodes or nodes[0].role in USELESS_ARIA_ROLES:
        return candidates, diagnostics

    node = nodes[0]

    def push(value: str, reason_code: str) -> None:
        if value in seen_values:
            return
        seen_values.add(value)
        candidates.append(
            TargetCandidate(
                id=f"aria-{len(candidates) + 1}",
                target=Target(value=value, kind="locator_expression", source="manual", frame_path=target.frame_path),
                source="derived",
                reason_codes=(reason_code,),
            )
        )

    if node.name:
        push(role_locator_expression(node.role, node.name), "aria_role_name")
    if node.name and node.role in FORM_CONTROL_ROLES:
        push(f"get_by_label({quote(node.name)})", "aria_label")
    if node.role in FORM_CONTROL_ROLES:
        placeholder = _read_placeholder(locator, timeout_ms)
        if placeholder:
            push(f"get_by_placeholder({quote(placeholder)})", "aria_placeholder")
    if node.name and node.role in ARIA_TEXT_ROLES:
        push(f"get_by_text({quote(node.name)})", "aria_text")

    return candidates, diagnostics


def _read_placeholder(locator, timeout_ms: int) -> str:
    try:
        placeholder = locator.get_attribute("placeholder", timeout=timeout_ms)
    except Exception:
        logger.info("Placeholder lookup failed for aria candidate.")
        return ""
    return (placeholder or "").strip()


def _parse_css_test_id(selector: str) -> str | None:
    for pattern in _CSS_TEST_ID_PATTERNS:
        match = pattern.match(selector)
        if match:
            return match.group(1)
    return None


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value
