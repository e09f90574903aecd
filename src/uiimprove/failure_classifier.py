from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Literal

from .models import Step

FailureDisposition = Literal["remove", "optionalize"]

STRONG_TRANSIENT_CONTEXT_KEYWORDS = (
    "cookie",
    "consent",
    "gdpr",
    "onetrust",
    "banner",
    "popup",
    "modal",
    "dialog",
    "trustarc",
    "cookiebot",
    "cmp",
)
SOFT_TRANSIENT_CONTEXT_KEYWORDS = ("privacy", "preference", "preferences", "tracking")
CONTENT_LINK_HINTS = ("policy", "terms", "article", "nieuws", "news", "read", "learn", "details")
BUSINESS_INTENT_HINTS = (
    "payment",
    "checkout",
    "purchase",
    "order",
    "billing",
    "invoice",
    "subscription",
    "account",
    "plan",
)

_DISMISS_INTENT_PATTERN = re.compile(r"\b(close|dismiss|accept|agree|allow|reject|decline|continue|ok|got it)\b")
_ROLE_LINK_PATTERN = re.compile(r"get_by_role\(\s*['\"]link['\"]")
_ROLE_BUTTON_PATTERN = re.compile(r"get_by_role\(\s*['\"]button['\"]")
_CONTROL_WORD_PATTERN = re.compile(r"\b(cookie|consent|cmp|gdpr|onetrust|cookiebot|trustarc|banner|popup|modal|dialog)\b")


@dataclass(frozen=True, slots=True)
class FailureClassification:
    disposition: FailureDisposition
    reason: str


def classify_runtime_failing_step(step: Step) -> FailureClassification:
    if step.action == "navigate":
        return FailureClassification("optionalize", "navigation steps are never auto-removed")
    if step.action not in {"click", "press"}:
        return FailureClassification(
            "optionalize", "non-interaction steps are never auto-removed by transient policy"
        )

    text = f"{step.target.value if step.target else ''} {step.description or ''}".lower()
    strong_context = any(keyword in text for keyword in STRONG_TRANSIENT_CONTEXT_KEYWORDS)
    soft_context = any(keyword in text for keyword in SOFT_TRANSIENT_CONTEXT_KEYWORDS)
    if not strong_context and not soft_context:
        return FailureClassification("optionalize", "classified as non-transient interaction")

    dismiss_intent = bool(_DISMISS_INTENT_PATTERN.search(text))
    content_link = (
        bool(_ROLE_LINK_PATTERN.search(text))
        and any(keyword in text for keyword in CONTENT_LINK_HINTS)
        and not dismiss_intent
    )
    business_intent = any(keyword in text for keyword in BUSINESS_INTENT_HINTS)
    control_cue = bool(_ROLE_BUTTON_PATTERN.search(text)) or bool(_CONTROL_WORD_PATTERN.search(text))

    if content_link:
        return FailureClassification("optionalize", "transient-context safeguard: likely content link interaction")
    if business_intent and not strong_context:
        return FailureClassification(
            "optionalize", "transient-context safeguard: likely business-intent interaction"
        )
    if strong_context and (dismiss_intent or control_cue):
        return FailureClassification("remove", "classified as transient dismissal/control interaction")
    if strong_context:
        return FailureClassification("remove", "classified as strong transient-context interaction")
    if dismiss_intent and control_cue:
        return FailureClassification("remove", "classified as soft transient dismissal/control interaction")
    return FailureClassification("optionalize", "transient context without dismissal/control confidence")
