from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Literal

from playwright.sync_api import Error as PlaywrightError

from .errors import StepAssertionError
from .locator_runtime import resolve_locator, resolve_navigate_url
from .models import Step
from .overlays import dismiss_overlays
from .runtime_checks import is_overlay_interception_error

if TYPE_CHECKING:
    from playwright.sync_api import Page

logger = logging.getLogger("uiimprove.runtime")

ExecutionMode = Literal["analysis", "playback"]

DEFAULT_RUNTIME_TIMEOUT_MS = 3000
DEFAULT_NETWORK_IDLE_TIMEOUT_MS = 2000
DEFAULT_SNAPSHOT_TIMEOUT_MS = 2000

_OVERLAY_RETRY_ACTIONS = {"click", "press"}


def execute_step(
    page: Page,
    step: Step,
    *,
    timeout_ms: int = DEFAULT_RUNTIME_TIMEOUT_MS,
    base_url: str | None = None,
    mode: ExecutionMode = "playback",
) -> None:
    try:
        _execute(page, step, timeout_ms, base_url, mode)
    except Exception as exc:
        if step.action not in _OVERLAY_RETRY_ACTIONS or not is_overlay_interception_error(exc):
            raise
        logger.info("Step %s blocked by an overlay; dismissing and retrying once.", step.action)
        if not dismiss_overlays(page):
            logger.info("No overlay control found; retrying %s as is.", step.action)
        _execute(page, step, timeout_ms, base_url, mode)


def _execute(page: Page, step: Step, default_timeout_ms: int, base_url: str | None, mode: ExecutionMode) -> None:
    timeout = step.timeout_ms or default_timeout_ms
    action = step.action

    if action == "navigate":
        page.goto(resolve_navigate_url(step.url or "", base_url, page.url), timeout=timeout)
        return

    if action in {"assertUrl", "assertTitle"}:
        if mode == "analysis":
            return
        if action == "assertUrl":
            current_url = page.url
            if not wildcard_pattern_to_regex(step.url or "").fullmatch(current_url):
                raise StepAssertionError(f'URL "{current_url}" does not match pattern "{step.url}"')
            return
        title = page.title()
        if (step.title or "") not in title:
            raise StepAssertionError(f"Expected title to contain '{step.title}' but got '{title}'")
        return

    if mode == "analysis" and action.startswith("assert"):
        return

    locator = resolve_locator(page, step.target)  # type: ignore[arg-type]

    if action == "click":
        locator.click(timeout=timeout)
    elif action == "fill":
        locator.fill(step.text or "", timeout=timeout)
    elif action == "press":
        locator.press(step.key or "", timeout=timeout)
    elif action == "check":
        locator.check(timeout=timeout)
    elif action == "uncheck":
        locator.uncheck(timeout=timeout)
    elif action == "hover":
        locator.hover(timeout=timeout)
    elif action == "select":
        locator.select_option(step.value, timeout=timeout)
    elif action == "assertVisible":
        locator.wait_for(state="visible", timeout=timeout)
    elif action == "assertText":
        locator.wait_for(state="visible", timeout=timeout)
        text = locator.text_content(timeout=timeout)
        if not text or (step.text or "") not in text:
            raise StepAssertionError(f"Expected text '{step.text}' but got '{text or '(empty)'}'")
    elif action == "assertValue":
        locator.wait_for(state="visible", timeout=timeout)
        value = locator.input_value(timeout=timeout)
        if value != step.value:
            raise StepAssertionError(f"Expected value '{step.value}' but got '{value}'")
    elif action == "assertChecked":
        locator.wait_for(state="visible", timeout=timeout)
        checked = locator.is_checked(timeout=timeout)
        if checked != step.expected_checked:
            expected = "checked" if step.expected_checked else "unchecked"
            raise StepAssertionError(f"Expected element to be {expected}")
    elif action == "assertEnabled":
        locator.wait_for(state="attached", timeout=timeout)
        enabled = locator.is_enabled(timeout=timeout)
        if enabled != step.expected_enabled:
            expected = "enabled" if step.expected_enabled else "disabled"
            raise StepAssertionError(f"Expected element to be {expected}")


def wildcard_pattern_to_regex(pattern: str) -> re.Pattern[str]:
    return re.compile(".*".join(re.escape(segment) for segment in pattern.split("*")))


def wait_for_network_idle(page: Page, timeout_ms: int = DEFAULT_NETWORK_IDLE_TIMEOUT_MS) -> bool:
    """Return True when the wait timed out. Never raises."""
    try:
        page.wait_for_load_state("networkidle", timeout=timeout_ms)
    except PlaywrightError as exc:
        logger.info("Network idle wait did not settle: %s", exc)
        return True
    return False


def capture_page_snapshot(page: Page, timeout_ms: int = DEFAULT_SNAPSHOT_TIMEOUT_MS) -> str | None:
    try:
        return page.locator("body").aria_snapshot(timeout=timeout_ms)
    except Exception as exc:
        logger.info("Aria snapshot capture failed: %s", exc)
        return None


def read_page_url(page: Page) -> str | None:
    try:
        return page.url or None
    except Exception:
        return None


def read_page_title(page: Page) -> str | None:
    try:
        return page.title() or None
    except Exception:
        return None
