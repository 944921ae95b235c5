"""
Redaction of sensitive values before they reach logs or agent summaries.

Strings are scrubbed with a fixed list of patterns (emails, phone numbers,
API keys, JWTs, credential JSON fields, card numbers, SSNs, IPv4 addresses).
Objects are walked recursively; values under credential-looking keys are
replaced outright.
"""

import json
import logging
import re
from typing import Any, Callable, Dict, List, NamedTuple, Union

logger = logging.getLogger(__name__)

SAFE_KEYS = {"id", "title", "description", "status", "category", "severity", "created", "updated"}
SENSITIVE_KEY_PARTS = ("password", "secret", "token", "key", "auth", "credential")

MASK = "***"


class RedactionPattern(NamedTuple):
    name: str
    pattern: "re.Pattern[str]"
    replacer: Union[str, Callable[["re.Match[str]"], str]]


def _mask_email(m: "re.Match[str]") -> str:
    local, domain = m.group(1), m.group(2)
    return f"{local[:2]}{'*' * max(len(local) - 2, 0)}@{domain}"


def _mask_phone(m: "re.Match[str]") -> str:
    digits = re.sub(r"\D", "", m.group(2))
    return f"***-***-{digits[-4:]}"


def _mask_api_key(m: "re.Match[str]") -> str:
    value = m.group(0)
    return value[:4] + "*" * (len(value) - 8) + value[-4:]


def _mask_card(m: "re.Match[str]") -> str:
    digits = re.sub(r"\D", "", m.group(0))
    return f"****-****-****-{digits[-4:]}"


def _mask_ip(m: "re.Match[str]") -> str:
    parts = m.group(0).split(".")
    return f"{parts[0]}.{parts[1]}.***.***"


# Order matters: JWTs and card numbers must be masked before the generic
# api_key and phone patterns can eat their pieces.
REDACTION_PATTERNS: List[RedactionPattern] = [
    RedactionPattern(
        "email",
        re.compile(r"\b([a-zA-Z0-9._%+-]+)@([a-zA-Z0-9.-]+\.[a-zA-Z]{2,})\b"),
        _mask_email,
    ),
    RedactionPattern(
        "jwt_token",
        re.compile(r"\beyJ[a-zA-Z0-9_-]*\.eyJ[a-zA-Z0-9_-]*\.[a-zA-Z0-9_-]*"),
        "eyJ***.***.***",
    ),
    RedactionPattern(
        "password",
        re.compile(r'"password"\s*:\s*"([^"]+)"', re.IGNORECASE),
        '"password": "***"',
    ),
    RedactionPattern(
        "secret",
        re.compile(r'"secret"\s*:\s*"([^"]+)"', re.IGNORECASE),
        '"secret": "***"',
    ),
    RedactionPattern(
        "token",
        re.compile(r'"token"\s*:\s*"([^"]+)"', re.IGNORECASE),
        '"token": "***"',
    ),
    RedactionPattern(
        "credit_card",
        re.compile(r"\b(?:\d{4}[-\s]?){3}\d{4}\b"),
        _mask_card,
    ),
    RedactionPattern(
        "ssn",
        re.compile(r"\b\d{3}-?\d{2}-?\d{4}\b"),
        "***-**-****",
    ),
    RedactionPattern(
        "phone",
        re.compile(r"(\+?1[-.\s]?)?(\(?\b[0-9]{3}\)?[-.\s]?[0-9]{3}[-.\s]?[0-9]{4})\b"),
        _mask_phone,
    ),
    # Long tokens holding at least one digit; identifiers such as tool names pass
    RedactionPattern(
        "api_key",
        re.compile(r"\b(?=[a-zA-Z_-]*\d)[a-zA-Z0-9_-]{20,}\b"),
        _mask_api_key,
    ),
    RedactionPattern(
        "ip_address",
        re.compile(
            r"\b(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}"
            r"(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\b"
        ),
        _mask_ip,
    ),
]


def redact_string(text: str) -> str:
    """Apply every redaction pattern to a string."""
    for _, pattern, replacer in REDACTION_PATTERNS:
        text = pattern.sub(replacer, text)
    return text


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(part in lowered for part in SENSITIVE_KEY_PARTS)


def redact_object(obj: Any) -> Any:
    """Recursively redact strings in dicts, lists and tuples.

    Numbers, booleans and None pass through unchanged. A string stored under
    a credential-looking key (password, token, api_key, ...) becomes ``***``.
    """
    if obj is None or isinstance(obj, (bool, int, float)):
        return obj
    if isinstance(obj, str):
        return redact_string(obj)
    if isinstance(obj, (list, tuple)):
        return [redact_object(item) for item in obj]
    if isinstance(obj, dict):
        redacted: Dict[Any, Any] = {}
        for key, value in obj.items():
            name = str(key)
            if name.lower() not in SAFE_KEYS and _is_sensitive_key(name) and isinstance(value, str):
                redacted[key] = MASK
            else:
                redacted[key] = redact_object(value)
        return redacted
    return obj


def redact_args(args: Any) -> Any:
    """Redact tool arguments before they are logged."""
    return redact_object(args)


def redact_json(obj: Any) -> str:
    """Redacted, indented JSON for logging."""
    try:
        return json.dumps(redact_object(obj), indent=2, default=str)
    except (TypeError, ValueError) as e:
        return f"[Redaction failed: {e}]"


def contains_sensitive_data(text: str) -> bool:
    return any(p.pattern.search(text) for p in REDACTION_PATTERNS)


def get_redaction_summary(text: str) -> List[Dict[str, Any]]:
    """Count matches per pattern, e.g. [{"type": "email", "count": 2}]."""
    summary = []
    for name, pattern, _ in REDACTION_PATTERNS:
        count = len(pattern.findall(text))
        if count:
            summary.append({"type": name, "count": count})
    return summary


def safe_log(message: str, data: Any = None, log: logging.Logger = logger) -> None:
    """Log a message plus a redacted copy of data."""
    log.info(redact_string(message))
    if data is None:
        return
    log.info(f"Data (redacted): {redact_json(data)}")
    if isinstance(data, (dict, list)):
        summary = get_redaction_summary(json.dumps(data, default=str))
        if summary:
            log.info(f"Redacted: {summary}")
