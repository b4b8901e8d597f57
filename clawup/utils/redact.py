"""Redact likely-secret values before showing hook output to an operator."""

import re

_KEY_VALUE = re.compile(
    r"\b([A-Z0-9_]*(?:TOKEN|SECRET|API_KEY|KEY|PASS|PASSWORD)[A-Z0-9_]*)\b\s*=\s*(?:\"[^\"]*\"|'[^']*'|[^\s]+)",
    re.IGNORECASE,
)

_TOKEN_PATTERNS = [
    (re.compile(r"\bxoxb-[0-9A-Za-z-]+\b"), "xoxb-[REDACTED]"),
    (re.compile(r"\bxapp-[0-9A-Za-z-]+\b"), "xapp-[REDACTED]"),
    (re.compile(r"\bxoxe-[0-9A-Za-z-]+\b"), "xoxe-[REDACTED]"),
    (re.compile(r"\blin_api_[0-9A-Za-z]+\b"), "lin_api_[REDACTED]"),
    (re.compile(r"\bghp_[0-9A-Za-z]{20,}\b"), "ghp_[REDACTED]"),
    (re.compile(r"\bsk-[0-9A-Za-z]{20,}\b"), "sk-[REDACTED]"),
]


def redact_secrets(text: str) -> str:
    if not text:
        return text
    out = _KEY_VALUE.sub(lambda m: f"{m.group(1)}=[REDACTED]", text)
    for pattern, replacement in _TOKEN_PATTERNS:
        out = pattern.sub(replacement, out)
    return out
