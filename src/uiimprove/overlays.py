from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from playwright.sync_api import Page

logger = logging.getLogger("uiimprove.runtime")

DEFAULT_OVERLAY_TIMEOUT_MS = 1200

# well-known consent management platforms, then generic fallbacks
COOKIE_CONSENT_CMP_SELECTORS: tuple[str, ...] = (
    "#onetrust-accept-btn-handler",
    "#CybotCookiebotDialogBodyLevelButtonLevelOptinAllowAll",
    "#CybotCookiebotDialogBodyButtonAccept",
    "#didomi-notice-agree-button",
    ".didomi-continue-without-agreeing",
    ".osano-cm-accept-all",
    ".cky-btn-accept",
    "#cookie_action_close_header",
    ".cc-accept",
    ".cc-allow",
    ".cc-dismiss-button",
    ".cm-btn-accept",
    ".cm-btn-accept-all",
    ".cmplz-accept",
    ".trustarc-agree-btn",
    "#truste-consent-button",
    ".iubenda-cs-accept-btn",
    ".termly-consent-accept",
    "#hs-eu-confirmation-button",
    "#cmpbntyestxt",
    ".cmp-button-accept",
    ".sp_choice_type_11",
    ".BorlabsCookie ._brlbs-btn-accept-all",
    ".moove-gdpr-infobar-allow-all",
    ".ccc-accept-settings",
    "#cookie-accept",
    "#accept-cookies",
    "#consent-accept",
    '[data-testid="cookie-accept"]',
    '[data-action="accept-cookies"]',
    'button[class*="cookie"][class*="accept"]',
    'button[class*="consent"][class*="accept"]',
    ".cookie-consent-accept",
    ".consent-accept",
    "#gdpr-accept",
    ".gdpr-accept",
)

COOKIE_CONSENT_DISMISS_TEXTS: tuple[str, ...] = (
    "accept",
    "agree",
    "allow",
    "ok",
    "got it",
    "i agree",
    "accept all",
    "allow all",
    "accept cookies",
    "akkoord",
    "accepteren",
    "alle cookies accepteren",
    "alles accepteren",
    "cookies toestaan",
    "akzeptieren",
    "alle akzeptieren",
    "einverstanden",
    "zustimmen",
    "accepter",
    "j'accepte",
    "j’accepte",
    "tout accepter",
    "aceptar",
    "aceptar todo",
    "acepto",
    "accetta",
    "accetta tutto",
    "accetto",
    "aceitar",
    "aceitar tudo",
    "aceito",
    "acceptera",
    "godkänn",
    "godkänn alla",
    "aksepter",
    "godta alle",
    "hyväksy",
    "hyväksy kaikki",
    "akceptuj",
    "akceptuj wszystkie",
    "elfogadom",
    "přijmout",
    "přijmout vše",
)

CONSENT_CONTAINER_SELECTOR = (
    '[class*="cookie"], [class*="consent"], [id*="cookie"], [id*="consent"], '
    '[class*="gdpr"], [id*="gdpr"], [class*="cmp-"], [id*="cmp-"], '
    '[role="dialog"], [role="alertdialog"]'
)
DISMISS_BUTTON_SELECTOR = 'button, [role="button"], a'

_DISMISS_TEXT_SET = frozenset(COOKIE_CONSENT_DISMISS_TEXTS)
_DISMISS_TEXT_PATTERN = re.compile(
    "^(?:" + "|".join(re.escape(text) for text in COOKIE_CONSENT_DISMISS_TEXTS) + ")$",
    re.IGNORECASE,
)


def is_cookie_consent_dismiss_text(text: str) -> bool:
    return text.strip().lower() in _DISMISS_TEXT_SET


def dismiss_overlays(page: Page, timeout_ms: int = DEFAULT_OVERLAY_TIMEOUT_MS) -> bool:
    """Click the first visible consent accept control, if any. Never raises."""
    for selector in COOKIE_CONSENT_CMP_SELECTORS:
        if _click_if_visible(page.locator(selector).first, timeout_ms):
            logger.info("Dismissed consent overlay via %s", selector)
            return True

    try:
        button = (
            page.locator(CONSENT_CONTAINER_SELECTOR)
            .locator(DISMISS_BUTTON_SELECTOR)
            .filter(has_text=_DISMISS_TEXT_PATTERN)
            .first
        )
    except Exception:
        return False
    if _click_if_visible(button, timeout_ms):
        logger.info("Dismissed consent overlay via accept text.")
        return True
    return False


def _click_if_visible(locator, timeout_ms: int) -> bool:
    try:
        if not locator.is_visible():
            return False
        locator.click(timeout=timeout_ms)
    except Exception:
        return False
    return True
