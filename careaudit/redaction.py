"""
Redaction of sensitive values in event details.

The writer does not interpret details; this hook runs at the boundary so
that passwords, tokens and OTP material never reach the chain. Once an
entry is hashed its details can no longer be scrubbed without breaking
the chain, so redaction has to happen before the append.
"""

from typing import Any, Dict, FrozenSet, Iterable, Optional

REDACTED_PLACEHOLDER = "[REDACTED]"

# Substring matches against lowercased keys
DEFAULT_SENSITIVE_KEYS: FrozenSet[str] = frozenset(
    [
        "password",
        "passwd",
        "secret",
        "token",
        "api_key",
        "apikey",
        "private_key",
        "authorization",
        "cookie",
        "session",
        "otp",
        "totp",
        "backup_code",
        "recovery_code",
        "credential",
        "ssn",
        "nhs_number",
    ]
)


class DetailsRedactor:
    """
    Replace values of sensitive keys, recursively.

    Usage:
        redactor = DetailsRedactor()
        redactor({"username": "amy", "password": "hunter2"})
        # {"username": "amy", "password": "[REDACTED]"}
    """

    def __init__(
        self,
        sensitive_keys: Optional[Iterable[str]] = None,
        placeholder: str = REDACTED_PLACEHOLDER,
    ) -> None:
        keys = DEFAULT_SENSITIVE_KEYS if sensitive_keys is None else sensitive_keys
        self.sensitive_keys = frozenset(k.lower() for k in keys if k)
        self.placeholder = placeholder

    def is_sensitive(self, key: str) -> bool:
        lowered = key.lower()
        return any(s in lowered for s in self.sensitive_keys)

    def _redact(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {
                k: self.placeholder if isinstance(k, str) and self.is_sensitive(k) else self._redact(v)
                for k, v in value.items()
            }
        if isinstance(value, (list, tuple)):
            return [self._redact(v) for v in value]
        return value

    def __call__(self, details: Dict[str, Any]) -> Dict[str, Any]:
        return self._redact(details)
