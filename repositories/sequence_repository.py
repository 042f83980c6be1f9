"""
Sequence counter repository (persistence).

Allocation is a single `UPDATE sequence_counters ... RETURNING value` inside
the `allocate_sequence` database function; the row lock taken by the update
serializes concurrent callers. Sale/registration functions call it inside
their own transaction; `next_value` exposes it for standalone numbering
(invoice and dispatch-guide series).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from domain.sequence import SequenceScope
from repositories.client import get_client
from repositories.rpc import all_rows, call_atomic, first_row

_COUNTERS_TABLE: str = "sequence_counters"


def next_value(scope: SequenceScope) -> int:
    """
    Allocate the next value of a counter.

    Raises:
        ConfigurationError: the counter row does not exist
    """

    result = call_atomic(
        "next_sequence",
        {"p_scope_key": scope.scope_key, "p_reset_key": scope.reset_key},
    )
    return int(result["value"])


def next_daily(scope: SequenceScope) -> Tuple[str, int]:
    """
    Allocate from a day-scoped counter.

    Returns:
        (effective date key, value). The key is the counter's current day,
        which is later than the requested one when another allocation has
        already rolled the counter over.
    """

    result = call_atomic(
        "next_sequence",
        {"p_scope_key": scope.scope_key, "p_reset_key": scope.reset_key},
    )
    return str(result.get("reset_key") or scope.reset_key), int(result["value"])


def get_counter(scope_key: str) -> Optional[Dict[str, Any]]:
    response = (
        get_client()
        .table(_COUNTERS_TABLE)
        .select("*")
        .eq("scope_key", scope_key)
        .limit(1)
        .execute()
    )
    return first_row(response, "get sequence counter")


def list_counters() -> List[Dict[str, Any]]:
    response = get_client().table(_COUNTERS_TABLE).select("*").order("scope_key").execute()
    return all_rows(response, "list sequence counters")


def create_counter(scope_key: str, max_value: int) -> None:
    """
    Provision a counter row. Existing rows are left untouched so their
    current value is never reset.
    """

    response = (
        get_client()
        .table(_COUNTERS_TABLE)
        .upsert(
            {"scope_key": scope_key, "value": 0, "max_value": max_value},
            on_conflict="scope_key",
            ignore_duplicates=True,
        )
        .execute()
    )
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to create sequence counter: {error}")


__all__ = ["next_value", "next_daily", "get_counter", "list_counters", "create_counter"]
