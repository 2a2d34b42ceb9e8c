"""Gift message validation.

The server-side check is authoritative. ``static/gift-message.js`` runs the
same rule table (exported through :func:`pattern_table`) for instant feedback
only.
"""

import enum
import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Sequence

from .config import DEFAULT_MAX_LENGTH

log = logging.getLogger("shop.validation")


class RejectionReason(str, enum.Enum):
    TOO_LONG = "TooLong"
    UNSAFE_CONTENT = "UnsafeContent"
    CUSTOM_RULE_REJECTED = "CustomRuleRejected"


def _element(tag: str) -> str:
    # whole element: opening tag, attributes, content, closing tag
    return rf"<{tag}\b[^<]*(?:(?!</{tag}>)<[^<]*)*</{tag}>"


# (name, pattern source) - sources are valid in both Python and JS regex
UNSAFE_PATTERNS = (
    ("script", _element("script")),
    ("iframe", _element("iframe")),
    ("javascript-uri", r"javascript:"),
    ("event-handler", r"on\w+\s*="),
    ("object", _element("object")),
    ("embed", _element("embed")),
)

_COMPILED = [(name, re.compile(src, re.IGNORECASE | re.MULTILINE)) for name, src in UNSAFE_PATTERNS]

_TAG_RE = re.compile(r"<!--.*?-->|</?[a-zA-Z][^>]*>", re.DOTALL)
_INLINE_WS_RE = re.compile(r"[ \t\f\v]+")


def pattern_table() -> list:
    """Rule table for the browser-side validator."""
    return [{"name": name, "source": src, "flags": "im"} for name, src in UNSAFE_PATTERNS]


def find_unsafe(text: str) -> Optional[str]:
    for name, rx in _COMPILED:
        if rx.search(text):
            return name
    return None


def strip_stages(text: str) -> Iterator[str]:
    """Yield the text after each tag-stripping pass until no markup is left.

    Removing one tag can join its neighbours into a new one
    (``<<b>script>``), so a single pass is not enough.
    """
    while True:
        stripped = _TAG_RE.sub("", text)
        if stripped == text:
            return
        text = stripped
        yield text


def strip_tags(text: str) -> str:
    for text in strip_stages(text):
        pass
    return text


def normalize(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = strip_tags(text)
    lines = [_INLINE_WS_RE.sub(" ", line).strip() for line in text.split("\n")]
    return "\n".join(lines).strip()


@dataclass(frozen=True)
class RuleOutcome:
    passed: bool
    reason: str = ""


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    value: str = ""
    reason: Optional[RejectionReason] = None
    message: str = ""

    @property
    def is_empty(self) -> bool:
        return self.ok and not self.value


def _run_rule(rule: Callable, text: str) -> RuleOutcome:
    try:
        out = rule(text)
    except Exception:
        log.exception(f"Gift message rule {getattr(rule, '__name__', rule)!r} failed, rejecting")
        return RuleOutcome(False, "Gift message was rejected.")
    if out is None or out is True:
        return RuleOutcome(True)
    if isinstance(out, RuleOutcome):
        return out
    if isinstance(out, str):
        return RuleOutcome(False, out)
    # any other value counts by truthiness
    return RuleOutcome(True) if out else RuleOutcome(False, "Gift message was rejected.")


class GiftMessageValidator:
    """Accepts or rejects a submitted gift message.

    Empty input is accepted as "no message". Length is measured in code
    points on the trimmed text the shopper typed, before markup stripping.
    Custom ``rules`` run only after the built-in checks pass.
    """

    def __init__(self, max_length: int = DEFAULT_MAX_LENGTH, rules: Sequence[Callable] = ()):
        self.max_length = max_length
        self.rules = list(rules)

    def validate(self, raw: Optional[str]) -> ValidationResult:
        text = (raw or "").strip()
        if not text:
            return ValidationResult(ok=True, value="")

        if len(text) > self.max_length:
            return ValidationResult(
                ok=False, reason=RejectionReason.TOO_LONG,
                message=f"Gift message cannot exceed {self.max_length} characters.")

        # every intermediate stripping stage and the stored value must be clean
        value = normalize(text)
        candidates = [text, *strip_stages(text), value]
        hit = next(filter(None, map(find_unsafe, candidates)), None)
        if hit:
            log.info(f"Rejected gift message: matched {hit} pattern")
            return ValidationResult(
                ok=False, reason=RejectionReason.UNSAFE_CONTENT,
                message="Gift message contains invalid content. Please review your message.")

        for rule in self.rules:
            outcome = _run_rule(rule, text)
            if not outcome.passed:
                return ValidationResult(
                    ok=False, reason=RejectionReason.CUSTOM_RULE_REJECTED,
                    message=outcome.reason or "Gift message was rejected.")

        return ValidationResult(ok=True, value=value)
