from __future__ import annotations

from typing import Sequence


class UserError(Exception):
    def __init__(self, message: str, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} {self.hint}"
        return self.message


class ValidationError(UserError):
    def __init__(self, message: str, issues: Sequence[str]) -> None:
        super().__init__(message, "Fix the issues above and try again.")
        self.issues = list(issues)

    def __str__(self) -> str:
        lines = [self.message, *(f"  - {issue}" for issue in self.issues)]
        return "\n".join(lines)


class LocatorExpressionError(UserError):
    pass


class BrowserNotInstalledError(UserError):
    pass


CHROMIUM_INSTALL_HINT = "Run: python -m playwright install chromium"


def chromium_not_installed_error() -> BrowserNotInstalledError:
    return BrowserNotInstalledError("Chromium browser is not installed.", CHROMIUM_INSTALL_HINT)


class StepAssertionError(AssertionError):
    """An assertion step did not hold against the live page."""
