"""
Atomic database calls.

Every multi-step write (sale, registration, transition, void, sequence
allocation) runs as one PostgreSQL function invoked through `client.rpc(...)`.
PostgREST wraps each call in a single transaction, so a function either
commits all its writes or none of them.

Business failures are raised inside the functions as

    RAISE EXCEPTION USING MESSAGE = '<ERROR_CODE>', DETAIL = '<json context>', HINT = '<text>'

which aborts the transaction and reaches Python as a postgrest APIError whose
`message` is the error code. This module translates those into the domain
error taxonomy.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional, Type

import httpx
from postgrest.exceptions import APIError

from domain.errors import (
    ConcurrentModification,
    ConfigurationError,
    ConflictError,
    InvalidTransition,
    NotFoundError,
    RetryableError,
    TransactionAbortError,
    TransitCoreError,
    ValidationError,
)
from repositories.client import get_client

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected, lock_not_available, query_canceled
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01", "55P03", "57014"})

_BUSINESS_ERRORS: Dict[str, Type[TransitCoreError]] = {
    "COUNTER_NOT_FOUND": ConfigurationError,
    "INVALID_CONFIGURATION": ConfigurationError,
    "SEQUENCE_EXHAUSTED": ConflictError,
    "TRIP_FULL": ConflictError,
    "TRIP_CLOSED": ConflictError,
    "NOT_FOUND": NotFoundError,
    "VALIDATION": ValidationError,
}


def _error_payload(exc: APIError) -> Dict[str, Any]:
    try:
        data = exc.json() if callable(getattr(exc, "json", None)) else {}
    except (TypeError, ValueError):
        data = {}
    if not isinstance(data, dict):
        data = {}
    for attr in ("message", "code", "details", "hint"):
        if data.get(attr) is None and getattr(exc, attr, None) is not None:
            data[attr] = getattr(exc, attr)
    return data


def _parse_context(details: Any) -> Dict[str, Any]:
    if isinstance(details, dict):
        return details
    if isinstance(details, str) and details.startswith("{"):
        try:
            parsed = json.loads(details)
        except ValueError:
            return {"detail": details}
        return parsed if isinstance(parsed, dict) else {"detail": details}
    return {"detail": details} if details else {}


def translate_api_error(function_name: str, payload: Mapping[str, Any]) -> TransitCoreError:
    """Map a PostgREST error body onto the domain taxonomy."""

    code = str(payload.get("code") or "")
    error_code = str(payload.get("message") or "")
    context = _parse_context(payload.get("details"))
    human = str(payload.get("hint") or error_code or "Database error")

    if code in RETRYABLE_SQLSTATES:
        return RetryableError(
            "The database is busy, retry the request",
            {"function": function_name, "sqlstate": code},
        )

    if error_code == "CONCURRENT_MODIFICATION":
        return ConcurrentModification(
            expected=str(context.get("expected_status", "")),
            actual=context.get("actual_status"),
        )
    if error_code == "INVALID_TRANSITION":
        return InvalidTransition(
            str(context.get("current_status", "")), str(context.get("target_status", ""))
        )

    error_cls = _BUSINESS_ERRORS.get(error_code)
    if error_cls is not None:
        return error_cls(human, details=context)

    logger.error(
        "Atomic call %s failed unexpectedly",
        function_name,
        extra={"sqlstate": code, "error": error_code},
    )
    return TransactionAbortError(
        "The operation could not be completed and was rolled back",
        {"function": function_name},
    )


def call_atomic(function_name: str, params: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Execute a PostgreSQL function and return its JSON result.

    Args:
        function_name: Name of the SQL function
        params: Named parameters (already JSON-serializable)

    Returns:
        The function's JSON object

    Raises:
        RetryableError: lock/serialization conflicts and driver timeouts
        TransitCoreError subclass: business failures raised by the function
        TransactionAbortError: anything else (nothing was persisted)
    """

    client = get_client()
    try:
        response = client.rpc(function_name, dict(params)).execute()
    except APIError as exc:
        payload = _error_payload(exc)
        # supabase-py may raise APIError for a JSON body it could not unwrap,
        # including successful results.
        if payload.get("success") is True:
            return payload
        raise translate_api_error(function_name, payload) from exc
    except httpx.TimeoutException as exc:
        raise RetryableError(
            "The database did not answer in time, retry the request",
            {"function": function_name},
        ) from exc
    except httpx.HTTPError as exc:
        logger.error("Transport failure calling %s: %s", function_name, exc)
        raise TransactionAbortError(
            "The operation could not be completed and was rolled back",
            {"function": function_name},
        ) from exc

    error = getattr(response, "error", None)
    if error:
        raise TransactionAbortError(f"Atomic call {function_name} failed: {error}")

    result = getattr(response, "data", None)
    if isinstance(result, list):
        result = result[0] if result else None
    if not isinstance(result, dict):
        raise TransactionAbortError(f"Atomic call {function_name} returned no result")
    return result


def first_row(response: Any, action: str) -> Optional[Dict[str, Any]]:
    """Unwrap a table read: first row or None."""

    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")
    rows = getattr(response, "data", None) or []
    return rows[0] if rows else None


def all_rows(response: Any, action: str) -> list[Dict[str, Any]]:
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")
    return list(getattr(response, "data", None) or [])


__all__ = ["RETRYABLE_SQLSTATES", "translate_api_error", "call_atomic", "first_row", "all_rows"]
