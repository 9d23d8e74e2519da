"""Error types shared by the App Store and Google Play release tooling."""

from __future__ import annotations

import json
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional


class ReleaseToolError(RuntimeError):
    """Base class for every failure surfaced to the command line."""

    def __init__(self, message: str, *, step: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.step = step

    def __str__(self) -> str:
        if self.step:
            return f"[{self.step}] {self.message}"
        return self.message


class ConfigError(ReleaseToolError):
    """Raised when required configuration is missing or invalid."""


class AuthError(ReleaseToolError):
    """Raised when a credential cannot be minted or exchanged."""


class MalformedKeyPathError(AuthError):
    """The App Store key file name does not follow ``AuthKey_{ID}.p8``."""


class KeyUnreadableError(AuthError):
    """The key file could not be read from disk."""


class MalformedKeyFileError(AuthError):
    """The key file was read but does not contain usable key material."""


class SigningError(AuthError):
    """The signed token could not be produced from the key material."""


class TokenExchangeError(AuthError):
    """The OAuth token endpoint rejected the assertion or answered garbage."""


class TransportError(ReleaseToolError):
    """Network failure or a response body that does not match the expected shape."""


class ResolutionError(ReleaseToolError):
    """A release resource could not be resolved to exactly one candidate."""


class AmbiguousOrMissingVersionError(ResolutionError):
    pass


class AmbiguousOrMissingLocalizationError(ResolutionError):
    pass


class ReleaseNotEditableError(ResolutionError):
    pass


class AmbiguousReleaseError(ResolutionError):
    pass


class VersionAlreadyExistsError(ResolutionError):
    pass


def _normalize_error_entry(entry: Dict[str, Any]) -> Dict[str, Any]:
    normalized: Dict[str, Any] = {}
    for key in ("id", "status", "code", "title", "detail"):
        value = entry.get(key)
        if value is None:
            continue
        if isinstance(value, (str, int)):
            normalized[key] = str(value)
        else:
            normalized[key] = json.dumps(value, ensure_ascii=False, sort_keys=True)
    return normalized


def summarize_api_errors(errors: Iterable[Dict[str, Any]]) -> str:
    """Collapse a JSON:API ``errors`` array into a single line."""
    parts: List[str] = []
    for entry in errors:
        if not isinstance(entry, dict):
            continue
        normalized = _normalize_error_entry(entry)
        code = normalized.get("code") or normalized.get("status")
        detail = normalized.get("detail") or normalized.get("title")
        if code or detail:
            snippet = " ".join(filter(None, [f"[{code}]" if code else "", detail]))
            parts.append(snippet)
        else:
            remaining = {
                key: value
                for key, value in normalized.items()
                if key not in {"code", "status", "detail", "title"}
            }
            if remaining:
                parts.append(json.dumps(remaining, ensure_ascii=False, sort_keys=True))
    return "; ".join(parts)


def extract_api_errors(body_text: str) -> List[Dict[str, Any]]:
    """Pull the ``errors`` list out of a vendor error body, if it has one."""
    if not body_text:
        return []
    try:
        payload = json.loads(body_text)
    except json.JSONDecodeError:
        return []
    if not isinstance(payload, dict):
        return []
    raw_errors = payload.get("errors")
    if isinstance(raw_errors, list):
        return [entry for entry in raw_errors if isinstance(entry, dict)]
    # Google APIs wrap a single error object instead of a list
    raw_error = payload.get("error")
    if isinstance(raw_error, dict):
        return [
            {
                "status": raw_error.get("status") or raw_error.get("code"),
                "detail": raw_error.get("message"),
            }
        ]
    return []


class ApiError(ReleaseToolError):
    """Represents a non-2xx response returned by a vendor API."""

    def __init__(
        self,
        status_code: int,
        body_text: str,
        errors: Optional[List[Dict[str, Any]]] = None,
        *,
        operation: Optional[str] = None,
    ) -> None:
        self.status_code = status_code
        self.body_text = body_text
        self.errors = errors if errors is not None else extract_api_errors(body_text)
        self.operation = operation
        super().__init__(self._build_message())

    def _build_message(self) -> str:
        prefix = f"API 오류 {self.status_code}"
        if self.operation:
            prefix = f"{self.operation} 호출 중 {prefix}"
        if self.errors:
            summary = summarize_api_errors(self.errors)
            if summary:
                return f"{prefix}: {summary}"
        if self.body_text:
            return f"{prefix}: {self.body_text}"
        return prefix

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401


@contextmanager
def step_context(step: str) -> Iterator[None]:
    """Tag any tool error raised inside the block with the step that failed.

    The innermost step wins: an error already tagged by a nested block keeps
    its original step.
    """
    try:
        yield
    except ReleaseToolError as exc:
        if exc.step is None:
            exc.step = step
        raise
