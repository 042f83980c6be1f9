"""
Tests for `repositories/rpc.py`.

Covers contract rules:
- Business error codes raised by the database functions map onto the
  domain error taxonomy.
- Lock/serialization SQLSTATEs and driver timeouts become RetryableError.
- Anything unrecognized becomes TransactionAbortError.
"""

from __future__ import annotations

import httpx
import pytest

from domain.errors import (
    ConcurrentModification,
    ConfigurationError,
    ConflictError,
    InvalidTransition,
    NotFoundError,
    RetryableError,
    TransactionAbortError,
    ValidationError,
)
from repositories.client import reset_client, set_client
from repositories.rpc import call_atomic, translate_api_error
from tests.fakes import FakeSupabase, business_error


@pytest.fixture
def client():
    fake = FakeSupabase()
    set_client(fake)
    yield fake
    reset_client()


@pytest.mark.parametrize(
    "code,expected",
    [
        ("COUNTER_NOT_FOUND", ConfigurationError),
        ("SEQUENCE_EXHAUSTED", ConflictError),
        ("TRIP_FULL", ConflictError),
        ("TRIP_CLOSED", ConflictError),
        ("NOT_FOUND", NotFoundError),
        ("VALIDATION", ValidationError),
    ],
)
def test_business_codes(code: str, expected: type) -> None:
    error = translate_api_error("fn", {"message": code, "code": "P0001", "hint": "Readable", "details": "{}"})

    assert type(error) is expected
    assert error.message == "Readable"


def test_concurrent_modification_carries_statuses() -> None:
    error = translate_api_error(
        "transition_shipment_atomic",
        {
            "message": "CONCURRENT_MODIFICATION",
            "code": "P0001",
            "details": '{"expected_status": "REGISTERED", "actual_status": "IN_WAREHOUSE"}',
        },
    )

    assert isinstance(error, ConcurrentModification)
    assert isinstance(error, ConflictError)
    assert error.details["expected_status"] == "REGISTERED"
    assert error.details["actual_status"] == "IN_WAREHOUSE"


def test_invalid_transition() -> None:
    error = translate_api_error(
        "fn",
        {"message": "INVALID_TRANSITION", "details": {"current_status": "ARRIVED", "target_status": "REGISTERED"}},
    )

    assert isinstance(error, InvalidTransition)
    assert (error.current, error.target) == ("ARRIVED", "REGISTERED")


@pytest.mark.parametrize("sqlstate", ["40001", "40P01", "55P03", "57014"])
def test_retryable_sqlstates(sqlstate: str) -> None:
    error = translate_api_error("fn", {"message": "could not serialize access", "code": sqlstate})
    assert isinstance(error, RetryableError)


def test_unknown_errors_abort() -> None:
    error = translate_api_error("fn", {"message": "duplicate key value", "code": "23505"})
    assert isinstance(error, TransactionAbortError)


def test_call_atomic_raises_translated_error(client: FakeSupabase) -> None:
    def handler(params):
        raise business_error("TRIP_FULL", "No seats left on this trip", {"trip_id": "t1"})

    client.rpc_handlers["sell_ticket_atomic"] = handler

    with pytest.raises(ConflictError) as excinfo:
        call_atomic("sell_ticket_atomic", {"p_route_id": "r"})
    assert excinfo.value.details == {"trip_id": "t1"}


def test_call_atomic_timeout_is_retryable(client: FakeSupabase) -> None:
    def handler(params):
        raise httpx.ReadTimeout("timed out")

    client.rpc_handlers["next_sequence"] = handler

    with pytest.raises(RetryableError):
        call_atomic("next_sequence", {"p_scope_key": "TKT"})


def test_call_atomic_transport_error_aborts(client: FakeSupabase) -> None:
    def handler(params):
        raise httpx.ConnectError("refused")

    client.rpc_handlers["next_sequence"] = handler

    with pytest.raises(TransactionAbortError):
        call_atomic("next_sequence", {"p_scope_key": "TKT"})


def test_call_atomic_unwraps_list_result(client: FakeSupabase) -> None:
    client.rpc_handlers["next_sequence"] = lambda params: [{"success": True, "value": 3}]

    assert call_atomic("next_sequence", {})["value"] == 3
    assert client.rpc_calls == [("next_sequence", {})]


def test_call_atomic_empty_result_aborts(client: FakeSupabase) -> None:
    client.rpc_handlers["next_sequence"] = lambda params: None

    with pytest.raises(TransactionAbortError):
        call_atomic("next_sequence", {})
