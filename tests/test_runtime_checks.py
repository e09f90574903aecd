import pytest
from fake_page import FakeLocator, FakePage
from playwright.sync_api import Error as PlaywrightError

from uiimprove.errors import StepAssertionError, UserError
from uiimprove.locator_runtime import resolve_locator, resolve_navigate_url
from uiimprove.models import Step, Target
from uiimprove.overlays import dismiss_overlays, is_cookie_consent_dismiss_text
from uiimprove.runtime_checks import (
    error_message,
    is_missing_browser_error,
    is_overlay_interception_error,
    normalize_space,
)
from uiimprove.step_executor import execute_step, wait_for_network_idle, wildcard_pattern_to_regex


BUY = Target(value="get_by_role('button', name='Buy')", kind="locator_expression")


class _IdleTimeoutPage(FakePage):
    def wait_for_load_state(self, state: str = "load", timeout: int | None = None) -> None:
        raise PlaywrightError(f"Timeout {timeout}ms exceeded.")


class _OverlayLocator(FakeLocator):
    def __init__(self, blocked_attempts: int = 2) -> None:
        super().__init__()
        self.blocked = True
        self.attempts = 0
        self._blocked_attempts = blocked_attempts

    def click(self, timeout: int | None = None) -> None:
        self.attempts += 1
        if self.blocked and self.attempts <= self._blocked_attempts:
            raise TimeoutError('<div class="cookie-wall"> intercepts pointer events\nretrying click action')
        super().click(timeout)


class _ConsentButton(FakeLocator):
    def __init__(self, blocked: _OverlayLocator) -> None:
        super().__init__()
        self._blocked = blocked

    def click(self, timeout: int | None = None) -> None:
        super().click(timeout)
        self._blocked.blocked = False


def test_error_classification_helpers() -> None:
    assert is_missing_browser_error(Exception("Executable doesn't exist at /ms-playwright/chromium"))
    assert not is_missing_browser_error(Exception("net::ERR_NAME_NOT_RESOLVED"))
    assert is_overlay_interception_error(Exception("<div> intercepts pointer events"))
    assert error_message(Exception("\n  Timeout   3000ms exceeded.\nCall log:")) == "Timeout 3000ms exceeded."
    assert error_message(ValueError()) == "ValueError"
    assert normalize_space(None) == ""


def test_navigate_url_resolution() -> None:
    assert resolve_navigate_url("https://example.test/a") == "https://example.test/a"
    assert resolve_navigate_url("/login", "https://example.test/app/") == "https://example.test/login"
    assert resolve_navigate_url("/login", None, "https://example.test/home") == "https://example.test/login"
    with pytest.raises(UserError):
        resolve_navigate_url("/login", None, "about:blank")


def test_resolve_locator_handles_css_xpath_and_frames() -> None:
    css = FakeLocator()
    xpath = FakeLocator()
    page = FakePage({"locator:#save": css, "locator:xpath=//button": xpath})

    assert resolve_locator(page, Target(value="#save", kind="css", frame_path=("#app",))) is css
    assert resolve_locator(page, Target(value="//button", kind="xpath")) is xpath


def test_execute_step_runs_actions_and_assertions() -> None:
    field = FakeLocator(text="Hello Alice")
    page = FakePage({"label:Name": field}, title="Signup | Example")
    target = Target(value="get_by_label('Name')", kind="locator_expression")

    execute_step(page, Step(action="navigate", url="/signup"), base_url="https://example.test")
    execute_step(page, Step(action="fill", target=target, text="Alice"))
    execute_step(page, Step(action="assertValue", target=target, value="Alice"))
    execute_step(page, Step(action="assertText", target=target, text="Alice"))
    execute_step(page, Step(action="assertUrl", url="https://example.test/*"))
    execute_step(page, Step(action="assertTitle", title="Signup"))

    assert page.visited == ["https://example.test/signup"]
    assert field.actions == ["fill"]

    with pytest.raises(StepAssertionError):
        execute_step(page, Step(action="assertValue", target=target, value="Bob"))


def test_analysis_mode_skips_assertions() -> None:
    page = FakePage()
    missing = Target(value="get_by_text('Nope')", kind="locator_expression")
    execute_step(page, Step(action="assertVisible", target=missing), mode="analysis")
    execute_step(page, Step(action="assertUrl", url="https://elsewhere.test/"), mode="analysis")
    with pytest.raises(StepAssertionError):
        execute_step(page, Step(action="assertUrl", url="https://elsewhere.test/"))


def test_click_blocked_by_overlay_is_retried_after_dismissal() -> None:
    blocked = _OverlayLocator()
    page = FakePage(
        {
            "role:button:Buy": blocked,
            "locator:#onetrust-accept-btn-handler": _ConsentButton(blocked),
        }
    )
    execute_step(page, Step(action="click", target=BUY))
    assert blocked.actions == ["click"]
    assert blocked.attempts == 2


def test_overlay_block_is_retried_once_without_consent_controls() -> None:
    blocked = _OverlayLocator(blocked_attempts=1)
    execute_step(FakePage({"role:button:Buy": blocked}), Step(action="click", target=BUY))
    assert blocked.attempts == 2
    assert blocked.actions == ["click"]


def test_persistent_overlay_block_fails_after_one_retry() -> None:
    blocked = _OverlayLocator()
    with pytest.raises(TimeoutError):
        execute_step(FakePage({"role:button:Buy": blocked}), Step(action="click", target=BUY))
    assert blocked.attempts == 2
    assert blocked.actions == []


def test_dismiss_overlays_without_consent_controls_is_a_no_op() -> None:
    assert not dismiss_overlays(FakePage())
    assert is_cookie_consent_dismiss_text("  Accept All ")
    assert not is_cookie_consent_dismiss_text("Buy now")


def test_wildcard_url_patterns() -> None:
    assert wildcard_pattern_to_regex("https://example.test/*").fullmatch("https://example.test/a?b=1")
    assert not wildcard_pattern_to_regex("https://example.test/a").fullmatch("https://example.test/ab")


def test_network_idle_wait_reports_timeouts() -> None:
    assert not wait_for_network_idle(FakePage())
    assert wait_for_network_idle(_IdleTimeoutPage())
