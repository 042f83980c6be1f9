"""
Domain: error taxonomy.

Every failure the transactional core reports is one of these classes. The API
layer maps each class to an HTTP status; services never raise HTTPException.

Propagation rules:
- Anything raised before or inside the atomic database call aborts the whole
  sale/registration/transition. Nothing is persisted.
- UpstreamGatewayError is only ever raised by invoice gateway adapters, which
  run after commit. Services catch it and attach a warning to the response.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class TransitCoreError(Exception):
    """Base class for all errors raised by the transactional core."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})


class ValidationError(TransitCoreError):
    """
    Malformed or missing input. Never retried.

    `fields` maps an input field name to a human-readable problem.
    """

    def __init__(
        self,
        message: str,
        fields: Optional[Dict[str, str]] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        merged = dict(details or {})
        self.fields: Dict[str, str] = dict(fields or {})
        if self.fields:
            merged["fields"] = self.fields
        super().__init__(message, merged)


class InvalidTransition(ValidationError):
    """Requested status change is not listed in the transition table."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            f"Cannot transition from {current} to {target}",
            details={"current_status": current, "target_status": target},
        )
        self.current = current
        self.target = target


class SecurityCodeRequired(ValidationError):
    def __init__(self) -> None:
        super().__init__(
            "This shipment is protected by a security code",
            fields={"security_code": "required"},
        )


class InvalidSecurityCode(ValidationError):
    def __init__(self) -> None:
        super().__init__(
            "Security code does not match",
            fields={"security_code": "mismatch"},
        )


class AuthorizationError(TransitCoreError):
    """Actor is not allowed to perform the action (location mismatch, missing permission)."""


class NotFoundError(TransitCoreError):
    pass


class ConflictError(TransitCoreError):
    """The request conflicts with current state (full trip, closed trip, stale status)."""


class ConcurrentModification(ConflictError):
    """
    Optimistic concurrency failure: the status observed when the request was
    validated is no longer the current status. Retry with fresh state.
    """

    def __init__(self, expected: str, actual: Optional[str] = None) -> None:
        details: Dict[str, Any] = {"expected_status": expected}
        if actual is not None:
            details["actual_status"] = actual
        super().__init__(
            "The document was modified by another request. Reload and retry.",
            details,
        )
        self.expected = expected
        self.actual = actual


class ConfigurationError(TransitCoreError):
    """Operator setup defect (missing counter row, missing credentials). Not retried."""


class RetryableError(TransitCoreError):
    """Transient database condition (lock timeout, serialization failure, driver timeout)."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        retry_after_seconds: int = 1,
    ) -> None:
        super().__init__(message, details)
        self.retry_after_seconds = retry_after_seconds


class TransactionAbortError(TransitCoreError):
    """Unexpected failure inside the atomic block. The transaction rolled back."""


class UpstreamGatewayError(TransitCoreError):
    """Invoice gateway submission/query/void failed. Never aborts a committed sale."""


__all__ = [
    "TransitCoreError",
    "ValidationError",
    "InvalidTransition",
    "SecurityCodeRequired",
    "InvalidSecurityCode",
    "AuthorizationError",
    "NotFoundError",
    "ConflictError",
    "ConcurrentModification",
    "ConfigurationError",
    "RetryableError",
    "TransactionAbortError",
    "UpstreamGatewayError",
]
