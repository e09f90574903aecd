from __future__ import annotations

from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin, urlparse

from .errors import UserError
from .locator_expression import evaluate_locator_expression
from .models import Target

if TYPE_CHECKING:
    from playwright.sync_api import Locator, Page

_LOCATOR_MEMBERS = ("click", "count", "first", "nth")


def resolve_locator(page: Page, target: Target) -> Locator:
    locator = _resolve_single(page, target)
    for fallback in target.fallbacks:
        locator = locator.or_(_resolve_single(page, fallback))
    return locator


def _resolve_single(page: Page, target: Target) -> Locator:
    context: Any = page
    for frame_selector in target.frame_path:
        context = context.frame_locator(frame_selector)

    if target.kind == "locator_expression":
        resolved = evaluate_locator_expression(context, target.value)
        if not _looks_like_locator(resolved):
            raise UserError(
                f"Locator expression did not resolve to a locator: {target.value}",
                "End the expression with a locator call such as get_by_role(...) or .nth(0).",
            )
        return resolved
    if target.kind == "xpath" and not target.value.startswith("xpath="):
        return context.locator(f"xpath={target.value}")
    return context.locator(target.value)


def _looks_like_locator(value: Any) -> bool:
    return all(hasattr(value, member) for member in _LOCATOR_MEMBERS)


def resolve_navigate_url(url: str, base_url: str | None = None, current_url: str | None = None) -> str:
    if urlparse(url).scheme:
        return url
    if base_url:
        return urljoin(base_url, url)
    if url.startswith("/") and current_url and urlparse(current_url).scheme in {"http", "https"}:
        return urljoin(current_url, url)
    raise UserError(
        f"Cannot resolve relative navigation URL: {url}",
        "Provide a base URL or use an absolute URL in the navigate step.",
    )
