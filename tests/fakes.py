"""
In-memory stand-ins for the Supabase client.

FakeSupabase implements the slice of the supabase-py query builder the
repositories use (select/eq/neq/ilike/in_/or_/order/range/limit, insert,
update, upsert) plus `rpc` with scripted handlers.

FakeTransitDatabase adds Python versions of the atomic database functions
so services can be exercised end to end without PostgreSQL. They follow the
SQL in supabase/migrations/002_atomic_functions.sql step by step, including
the error codes they raise.
"""

from __future__ import annotations

import copy
import json
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from postgrest.exceptions import APIError

from domain.loyalty import EarnBasis, LoyaltyConfig, settle_points
from domain.shipment import ShipmentStatus, can_transition


@dataclass
class FakeResponse:
    data: Any
    count: Optional[int] = None
    error: Any = None


def business_error(code: str, hint: str, context: Optional[Dict[str, Any]] = None) -> APIError:
    """What `core_raise` produces on the wire."""
    return APIError(
        {
            "message": code,
            "code": "P0001",
            "details": json.dumps(context or {}),
            "hint": hint,
        }
    )


def ilike_regex(pattern: str) -> "re.Pattern[str]":
    """
    Translate a PostgREST ILIKE pattern: `%` and its URL-safe alias `*` match
    any run, `_` one character, a backslash escapes the next character.
    """

    parts = []
    chars = iter(pattern)
    for char in chars:
        if char == "\\":
            parts.append(re.escape(next(chars, "\\")))
        elif char in "%*":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str) -> None:
        self._db = db
        self._table = table
        self._filters: List[Callable[[Dict[str, Any]], bool]] = []
        self._order: List[tuple[str, bool]] = []
        self._range: Optional[tuple[int, int]] = None
        self._limit: Optional[int] = None
        self._count = False
        self._op = "select"
        self._payload: Any = None
        self._upsert_conflict: Optional[str] = None
        self._ignore_duplicates = False

    # -- builders ---------------------------------------------------------

    def select(self, columns: str = "*", count: Optional[str] = None) -> "FakeQuery":
        self._count = count is not None
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def ilike(self, column: str, pattern: str) -> "FakeQuery":
        regex = ilike_regex(pattern)
        self._filters.append(lambda row: regex.fullmatch(str(row.get(column, ""))) is not None)
        return self

    def in_(self, column: str, values: List[Any]) -> "FakeQuery":
        allowed = list(values)
        self._filters.append(lambda row: row.get(column) in allowed)
        return self

    def or_(self, expression: str) -> "FakeQuery":
        clauses = []
        for part in expression.split(","):
            column, op, value = part.split(".", 2)
            assert op == "eq", f"unsupported or_ operator {op}"
            clauses.append((column, value))
        self._filters.append(lambda row: any(str(row.get(c)) == v for c, v in clauses))
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self._order.append((column, desc))
        return self

    def range(self, start: int, end: int) -> "FakeQuery":
        self._range = (start, end)
        return self

    def limit(self, n: int) -> "FakeQuery":
        self._limit = n
        return self

    def insert(self, payload: Any) -> "FakeQuery":
        self._op, self._payload = "insert", payload
        return self

    def update(self, values: Dict[str, Any]) -> "FakeQuery":
        self._op, self._payload = "update", values
        return self

    def upsert(self, payload: Any, on_conflict: str = "id", ignore_duplicates: bool = False) -> "FakeQuery":
        self._op, self._payload = "upsert", payload
        self._upsert_conflict = on_conflict
        self._ignore_duplicates = ignore_duplicates
        return self

    # -- execution --------------------------------------------------------

    def _matching(self) -> List[Dict[str, Any]]:
        return [row for row in self._db.rows(self._table) if all(f(row) for f in self._filters)]

    def execute(self) -> FakeResponse:
        self._db.table_calls.append((self._table, self._op))
        if self._op == "insert":
            payloads = self._payload if isinstance(self._payload, list) else [self._payload]
            for payload in payloads:
                self._db.check_unique(self._table, payload)
            inserted = [self._db.insert_row(self._table, dict(p)) for p in payloads]
            return FakeResponse(copy.deepcopy(inserted))
        if self._op == "update":
            updated = []
            for row in self._matching():
                row.update(self._payload)
                updated.append(row)
            return FakeResponse(copy.deepcopy(updated))
        if self._op == "upsert":
            payloads = self._payload if isinstance(self._payload, list) else [self._payload]
            written = []
            for payload in payloads:
                key = payload[self._upsert_conflict]
                existing = [r for r in self._db.rows(self._table) if r.get(self._upsert_conflict) == key]
                if existing:
                    if not self._ignore_duplicates:
                        existing[0].update(payload)
                        written.append(existing[0])
                else:
                    written.append(self._db.insert_row(self._table, dict(payload)))
            return FakeResponse(copy.deepcopy(written))

        rows = self._matching()
        for column, desc in reversed(self._order):
            rows.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        total = len(rows)
        if self._range is not None:
            start, end = self._range
            rows = rows[start:end + 1]
        if self._limit is not None:
            rows = rows[: self._limit]
        return FakeResponse(copy.deepcopy(rows), count=total if self._count else None)


class FakeRpc:
    def __init__(self, db: "FakeSupabase", name: str, params: Dict[str, Any]) -> None:
        self._db = db
        self._name = name
        self._params = params

    def execute(self) -> FakeResponse:
        self._db.rpc_calls.append((self._name, self._params))
        handler = self._db.rpc_handlers.get(self._name)
        if handler is None:
            raise AssertionError(f"no fake handler for rpc {self._name}")
        return FakeResponse(handler(self._params))


class FakeSupabase:
    """Table store plus scripted rpc handlers; records every call."""

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {k: list(v) for k, v in (tables or {}).items()}
        self.rpc_handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = {}
        # table -> predicates (existing row, new row) -> True on a duplicate key
        self.unique_checks: Dict[str, List[Callable[[Dict[str, Any], Dict[str, Any]], bool]]] = {}
        self.rpc_calls: List[tuple[str, Dict[str, Any]]] = []
        self.table_calls: List[tuple[str, str]] = []
        self._clock = datetime(2026, 3, 14, 15, 0, tzinfo=timezone.utc)

    def now_iso(self) -> str:
        self._clock += timedelta(seconds=1)
        return self._clock.isoformat()

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def insert_row(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        row.setdefault("id", str(uuid4()))
        row.setdefault("created_at", self.now_iso())
        self.rows(table).append(row)
        return row

    def check_unique(self, table: str, row: Dict[str, Any]) -> None:
        for duplicate in self.unique_checks.get(table, []):
            if any(duplicate(existing, row) for existing in self.rows(table)):
                raise APIError(
                    {
                        "message": f"duplicate key value violates unique constraint on {table}",
                        "code": "23505",
                        "details": None,
                        "hint": None,
                    }
                )

    def find(self, table: str, **criteria: Any) -> Optional[Dict[str, Any]]:
        for row in self.rows(table):
            if all(row.get(k) == v for k, v in criteria.items()):
                return row
        return None

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Dict[str, Any]) -> FakeRpc:
        return FakeRpc(self, name, params)


def same_series_number(existing: Dict[str, Any], new: Dict[str, Any]) -> bool:
    return (existing.get("series"), existing.get("number")) == (new.get("series"), new.get("number"))


def second_active_guide(existing: Dict[str, Any], new: Dict[str, Any]) -> bool:
    inactive = ("VOIDED", "REJECTED")
    return (
        existing["shipment_id"] == new["shipment_id"]
        and existing["status"] not in inactive
        and new.get("status", "PENDING") not in inactive
    )


class FakeTransitDatabase(FakeSupabase):
    """FakeSupabase with the atomic functions implemented in Python."""

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None) -> None:
        super().__init__(tables)
        self.rpc_handlers.update(
            {
                "next_sequence": self._next_sequence,
                "sell_ticket_atomic": self._sell_ticket,
                "void_ticket_atomic": self._void_ticket,
                "register_shipment_atomic": self._register_shipment,
                "transition_shipment_atomic": self._transition_shipment,
            }
        )
        for table in ("invoices", "dispatch_guides"):
            self.unique_checks[table] = [same_series_number]
        self.unique_checks["dispatch_guides"].append(second_active_guide)

    # -- helpers mirroring the SQL helpers -------------------------------

    def allocate(self, scope_key: str, reset_key: Optional[str]) -> int:
        counter = self.find("sequence_counters", scope_key=scope_key)
        if counter is None:
            raise business_error(
                "COUNTER_NOT_FOUND", f"No sequence counter configured for {scope_key}", {"scope_key": scope_key}
            )
        current_reset = counter.get("reset_key")
        if reset_key is not None and (current_reset is None or current_reset < reset_key):
            value, current_reset = 1, reset_key
        else:
            value = int(counter.get("value", 0)) + 1
        if value > int(counter.get("max_value", 99999)):
            raise business_error("SEQUENCE_EXHAUSTED", f"Sequence {scope_key} exhausted", {"scope_key": scope_key})
        counter["value"], counter["reset_key"] = value, current_reset
        return value

    def daily_code(self, scope_key: str, date_key: str) -> str:
        value = self.allocate(scope_key, date_key)
        effective = self.find("sequence_counters", scope_key=scope_key)["reset_key"]
        return f"{scope_key}-{effective}-{value:05d}"

    def _lock_account(self, national_id: str, document_type: str, name: str, phone: Optional[str]) -> Dict[str, Any]:
        if self.find("customers", national_id=national_id) is None:
            self.insert_row(
                "customers",
                {"national_id": national_id, "document_type": document_type, "full_name": name, "phone": phone},
            )
        account = self.find("loyalty_accounts", national_id=national_id)
        if account is None:
            account = self.insert_row(
                "loyalty_accounts", {"national_id": national_id, "points_available": 0, "points_historic": 0}
            )
        return account

    def _settle(self, params: Dict[str, Any], available: int):
        config = LoyaltyConfig(
            soles_per_point=Decimal(params["p_soles_per_point"]),
            points_per_sol_discount=Decimal(params["p_points_per_sol_discount"]),
            earn_on=EarnBasis(params["p_earn_on"]),
        )
        manual = params.get("p_manual_price")
        return settle_points(
            Decimal(params["p_original_price"]),
            int(params["p_points_requested"]),
            available,
            config,
            Decimal(manual) if manual is not None else None,
        )

    @staticmethod
    def _apply(account: Dict[str, Any], settlement) -> None:
        account["points_available"] = account["points_available"] - settlement.points_redeemed + settlement.points_earned
        account["points_historic"] = account["points_historic"] + settlement.points_earned
        assert account["points_available"] <= account["points_historic"]

    @staticmethod
    def _pricing_columns(settlement) -> Dict[str, Any]:
        return {
            "original_price": str(settlement.original_price),
            "final_price": str(settlement.final_price),
            "discount": str(settlement.discount),
            "points_earned": settlement.points_earned,
            "points_redeemed": settlement.points_redeemed,
            "price_overridden": settlement.price_overridden,
        }

    def _event(self, kind: str, document_id: str, status: str, params: Dict[str, Any], location_id, note) -> Dict[str, Any]:
        return self.insert_row(
            "lifecycle_events",
            {
                "document_kind": kind,
                "document_id": document_id,
                "target_status": status,
                "actor_user_id": params.get("p_actor_user_id"),
                "location_id": location_id,
                "note": note,
                "proof_path": params.get("p_proof_path"),
                "collector_doc_id": params.get("p_collector_doc_id"),
            },
        )

    # -- atomic functions -------------------------------------------------

    def _next_sequence(self, params: Dict[str, Any]) -> Dict[str, Any]:
        value = self.allocate(params["p_scope_key"], params.get("p_reset_key"))
        counter = self.find("sequence_counters", scope_key=params["p_scope_key"])
        return {
            "success": True,
            "scope_key": params["p_scope_key"],
            "reset_key": counter.get("reset_key"),
            "value": value,
        }

    def _sell_ticket(self, params: Dict[str, Any]) -> Dict[str, Any]:
        trip = self.find(
            "trips",
            route_id=params["p_route_id"],
            schedule_id=params["p_schedule_id"],
            service_date=params["p_travel_date"],
        )
        if trip is None:
            trip = self.insert_row(
                "trips",
                {
                    "route_id": params["p_route_id"],
                    "schedule_id": params["p_schedule_id"],
                    "service_date": params["p_travel_date"],
                    "capacity": params["p_trip_capacity"],
                    "seats_sold": 0,
                    "status": "OPEN",
                },
            )
        if trip["status"] != "OPEN":
            raise business_error("TRIP_CLOSED", "This trip is closed for sales", {"trip_id": trip["id"]})
        if trip["seats_sold"] >= trip["capacity"]:
            raise business_error("TRIP_FULL", "No seats left on this trip", {"trip_id": trip["id"]})

        account = self._lock_account(
            params["p_customer_id"], params["p_customer_document_type"],
            params["p_customer_name"], params["p_customer_phone"],
        )
        settlement = self._settle(params, account["points_available"])
        code = self.daily_code("TKT", params["p_date_key"])

        ticket = self.insert_row(
            "tickets",
            {
                "code": code,
                "trip_id": trip["id"],
                "route_id": params["p_route_id"],
                "schedule_id": params["p_schedule_id"],
                "travel_date": params["p_travel_date"],
                "customer_id": params["p_customer_id"],
                "passenger_name": params["p_customer_name"],
                "passenger_document_type": params["p_customer_document_type"],
                "passenger_phone": params["p_customer_phone"],
                "payment_method": params["p_payment_method"],
                "document_type": params["p_document_type"],
                "invoice_customer": params["p_invoice_customer"],
                "status": "ISSUED",
                "invoice_status": "NOT_REQUESTED",
                "sold_by": params["p_actor_user_id"],
                **self._pricing_columns(settlement),
            },
        )
        event = self._event("TICKET", ticket["id"], "ISSUED", params, params["p_location_id"], None)
        trip["seats_sold"] += 1
        self._apply(account, settlement)
        return {
            "success": True,
            "ticket": copy.deepcopy(ticket),
            "events": [copy.deepcopy(event)],
            "account": copy.deepcopy(account),
        }

    def _void_ticket(self, params: Dict[str, Any]) -> Dict[str, Any]:
        ticket = self.find("tickets", id=params["p_ticket_id"])
        if ticket is None:
            raise business_error("NOT_FOUND", "Ticket not found", {"ticket_id": params["p_ticket_id"]})
        if ticket["status"] != params["p_expected_status"]:
            raise business_error(
                "CONCURRENT_MODIFICATION",
                "The ticket was modified by another request",
                {"expected_status": params["p_expected_status"], "actual_status": ticket["status"]},
            )
        if ticket["status"] != "ISSUED":
            raise business_error(
                "INVALID_TRANSITION", "Only issued tickets can be voided",
                {"current_status": ticket["status"], "target_status": "VOIDED"},
            )
        ticket["status"] = "VOIDED"
        ticket["void_reason"] = params["p_reason"]
        trip = self.find("trips", id=ticket["trip_id"])
        if trip is not None and trip["seats_sold"] > 0:
            trip["seats_sold"] -= 1
        event = self._event("TICKET", ticket["id"], "VOIDED", params, params["p_location_id"], params["p_reason"])
        return {"success": True, "ticket": copy.deepcopy(ticket), "event": copy.deepcopy(event)}

    def _register_shipment(self, params: Dict[str, Any]) -> Dict[str, Any]:
        if params["p_origin_location_id"] == params["p_destination_location_id"]:
            raise business_error("VALIDATION", "Origin and destination must differ")
        account = self._lock_account(
            params["p_customer_id"], params["p_customer_document_type"],
            params["p_customer_name"], params["p_customer_phone"],
        )
        settlement = self._settle(params, account["points_available"])
        code = self.daily_code("ENC", params["p_date_key"])

        shipment = self.insert_row(
            "shipments",
            {
                "code": code,
                "origin_location_id": params["p_origin_location_id"],
                "destination_location_id": params["p_destination_location_id"],
                "customer_id": params["p_customer_id"],
                "sender_name": params["p_customer_name"],
                "sender_document_type": params["p_customer_document_type"],
                "sender_phone": params["p_customer_phone"],
                "recipient_name": params["p_recipient_name"],
                "recipient_phone": params["p_recipient_phone"],
                "recipient_document": params["p_recipient_document"],
                "package_kind": params["p_package_kind"],
                "weight_kg": params["p_weight_kg"],
                "height_cm": params["p_height_cm"],
                "width_cm": params["p_width_cm"],
                "length_cm": params["p_length_cm"],
                "description": params["p_description"],
                "base_price_id": params["p_base_price_id"],
                "security_code": params["p_security_code"],
                "pay_on_pickup": params["p_pay_on_pickup"],
                "document_type": params["p_document_type"],
                "invoice_customer": params["p_invoice_customer"],
                "status": "REGISTERED",
                "invoice_status": "NOT_REQUESTED",
                "note": params["p_note"],
                "registered_by": params["p_actor_user_id"],
                **self._pricing_columns(settlement),
            },
        )
        event = self._event(
            "SHIPMENT", shipment["id"], "REGISTERED", params,
            params["p_origin_location_id"], params.get("p_event_note", "Shipment registered"),
        )
        self._apply(account, settlement)
        return {
            "success": True,
            "shipment": copy.deepcopy(shipment),
            "events": [copy.deepcopy(event)],
            "account": copy.deepcopy(account),
        }

    def _transition_shipment(self, params: Dict[str, Any]) -> Dict[str, Any]:
        shipment = self.find("shipments", id=params["p_shipment_id"])
        if shipment is None:
            raise business_error("NOT_FOUND", "Shipment not found", {"shipment_id": params["p_shipment_id"]})
        if shipment["status"] != params["p_expected_status"]:
            raise business_error(
                "CONCURRENT_MODIFICATION",
                "The shipment was modified by another request",
                {"expected_status": params["p_expected_status"], "actual_status": shipment["status"]},
            )
        target = params["p_target_status"]
        if not can_transition(ShipmentStatus(shipment["status"]), ShipmentStatus(target)):
            raise business_error(
                "INVALID_TRANSITION",
                f"Cannot transition from {shipment['status']} to {target}",
                {"current_status": shipment["status"], "target_status": target},
            )
        if target == "COLLECTED" and (params.get("p_proof_path") is None or params.get("p_collector_doc_id") is None):
            raise business_error("VALIDATION", "Collection requires proof of delivery and the collector document")

        shipment["status"] = target
        if target == "COLLECTED":
            shipment["collector_doc_id"] = params["p_collector_doc_id"]
        event = self._event("SHIPMENT", shipment["id"], target, params, params["p_location_id"], params.get("p_note"))
        return {"success": True, "shipment": copy.deepcopy(shipment), "event": copy.deepcopy(event)}


def seed_counters(db: FakeSupabase) -> None:
    for scope_key in ("TKT", "ENC"):
        db.insert_row("sequence_counters", {"scope_key": scope_key, "value": 0, "reset_key": None, "max_value": 99999})
    for scope_key in ("01:FT74", "03:BT74", "NV:NV01", "09:T001"):
        db.insert_row(
            "sequence_counters", {"scope_key": scope_key, "value": 0, "reset_key": None, "max_value": 99999999}
        )
