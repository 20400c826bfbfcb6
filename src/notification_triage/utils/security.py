"""Secret handling for chat text, classifier prompts and configuration.

People paste credentials into chat. Message text is redacted before it is
sent to a third-party model or written to the logs, and configuration is
masked before it is echoed back to an operator.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from notification_triage.utils.async_helpers import TriageError

REDACTED = "[REDACTED]"

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

SENSITIVE_KEY_PARTS = ("token", "key", "secret", "password", "credential")


class RedactionError(TriageError):
    """Redaction could not be performed; the text must not leave the process."""


@dataclass(frozen=True)
class SecretPattern:
    """A named kind of credential and the expression that finds it."""

    kind: str
    regex: re.Pattern[str]

    @classmethod
    def compile(cls, kind: str, expression: str) -> SecretPattern:
        try:
            return cls(kind, re.compile(expression))
        except re.error as e:
            raise RedactionError(f"Failed to compile pattern for {kind!r}: {e}") from e


BUILTIN_PATTERNS: tuple[tuple[str, str], ...] = (
    ("slack_token", r"xox[abeprs]-[\w-]+"),
    ("slack_app_token", r"xapp-[\w-]+"),
    ("slack_webhook", r"https://hooks\.slack\.com/services/[\w/]+"),
    ("bearer", r"(?i)bearer\s+[\w\-.~+/]{8,}=*"),
    ("openai_key", r"sk-(?:proj-)?[A-Za-z0-9]{20,}"),
    ("anthropic_key", r"sk-ant-[\w-]{40,}"),
    ("jwt", r"eyJ[\w-]*\.eyJ[\w-]*\.[\w-]*"),
    ("connection_string", r"(?i)\b[a-z][a-z0-9+]*://[^\s:/@]+:[^\s@]+@\S+"),
    (
        "assignment",
        r"(?i)\b(?:api[_-]?key|secret|token|password|credential)\s*[=:]\s*[\"']?[\w-]{16,}",
    ),
)


class SecretRedactor:
    """Replaces credentials in free text with a placeholder.

    Fails closed: any error while matching raises ``RedactionError`` rather
    than handing back unredacted text.

    Example:
        redactor = SecretRedactor()
        prompt = redactor.redact(message.text)
    """

    def __init__(
        self,
        placeholder: str = REDACTED,
        custom_patterns: Iterable[tuple[str, str]] = (),
    ) -> None:
        """Compile the built-in patterns plus ``custom_patterns``.

        ``custom_patterns`` are ``(expression, kind)`` pairs.

        Raises:
            RedactionError: If an expression does not compile.
        """
        self.placeholder = placeholder
        self._patterns = [SecretPattern.compile(kind, expr) for kind, expr in BUILTIN_PATTERNS]
        self._patterns.extend(
            SecretPattern.compile(kind, expr) for expr, kind in custom_patterns
        )

    @property
    def kinds(self) -> list[str]:
        return [pattern.kind for pattern in self._patterns]

    def detect(self, text: str) -> list[str]:
        """Return the kinds of credential found in ``text``, in pattern order."""
        if not text:
            return []
        try:
            return [p.kind for p in self._patterns if p.regex.search(text)]
        except Exception as e:
            raise RedactionError(f"Secret detection failed: {e}") from e

    def redact(self, text: str) -> str:
        if not text:
            return text
        try:
            for pattern in self._patterns:
                text = pattern.regex.sub(self.placeholder, text)
        except Exception as e:
            raise RedactionError(f"Redaction failed: {e}") from e
        return text


def clean_text(text: str, max_length: int | None = None) -> str:
    """Strip terminal escapes and control characters from user-authored text.

    Newlines and tabs survive. With ``max_length`` the result is cut to that
    many characters, the last three being ``...``.
    """
    if not text:
        return text
    text = _CONTROL_CHARS.sub("", _ANSI_ESCAPE.sub("", text))
    if max_length is not None and len(text) > max_length:
        text = text[: max(max_length - 3, 0)] + "..."
    return text


def mask_value(value: str) -> str:
    """Keep the first and last four characters of a long secret."""
    if len(value) > 8:
        return f"{value[:4]}...{value[-4:]}"
    return "***"


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(part in lowered for part in SENSITIVE_KEY_PARTS)


def mask_settings(data: Mapping[str, Any]) -> dict[str, Any]:
    """Copy of a nested settings mapping with credential-like values masked."""
    masked: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, Mapping):
            masked[key] = mask_settings(value)
        elif isinstance(value, str) and is_sensitive_key(key):
            masked[key] = mask_value(value)
        else:
            masked[key] = value
    return masked
