"""Configurable fake invoice gateway for development and testing.

Simulates the e-invoicing provider without external calls. It can be
configured at runtime to accept, reject, or be unreachable, and records every
call so tests can assert on what was sent.
"""

from typing import Any
from uuid import uuid4

from domain.errors import UpstreamGatewayError
from invoicing.port import InvoiceGateway, QueryResult, SubmitResult, VoidResult


class FakeInvoiceGateway(InvoiceGateway):
    """Configurable fake invoice gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.unreachable: bool = False
        self.failure_reason: str = "Document rejected"
        # status reported by query(); None answers as an unknown document
        self.query_status: str | None = "ACCEPTED"
        self.calls: list[dict[str, Any]] = []

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Document rejected",
        unreachable: bool = False,
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.unreachable = unreachable

    def _check_reachable(self, operation: str) -> None:
        if self.unreachable:
            raise UpstreamGatewayError(
                "Invoice gateway unreachable",
                {"operation": operation},
            )

    def submit(self, payload: dict[str, Any]) -> SubmitResult:
        self.calls.append({"method": "submit", "payload": payload})
        self._check_reachable("submit")
        return self._answer("fake_inv")

    def submit_dispatch_guide(self, payload: dict[str, Any]) -> SubmitResult:
        self.calls.append({"method": "submit_dispatch_guide", "payload": payload})
        self._check_reachable("submit_dispatch_guide")
        return self._answer("fake_gre")

    def _answer(self, prefix: str) -> SubmitResult:
        if self.should_succeed:
            external_id = f"{prefix}_{uuid4().hex[:12]}"
            return SubmitResult(
                success=True,
                external_id=external_id,
                status="ACCEPTED",
                raw={"id": external_id, "estado": "ACEPTADO"},
            )
        return SubmitResult(
            success=False,
            status="REJECTED",
            failure_reason=self.failure_reason,
            raw={"message": self.failure_reason},
        )

    def query(self, external_id: str) -> QueryResult:
        self.calls.append({"method": "query", "external_id": external_id})
        self._check_reachable("query")
        if self.query_status is None:
            return QueryResult(success=False, raw={"message": "Document not found"})
        return QueryResult(
            success=True,
            status=self.query_status,
            raw={"id": external_id, "estado": self.query_status},
        )

    def void(self, external_id: str, reason: str) -> VoidResult:
        self.calls.append({"method": "void", "external_id": external_id, "reason": reason})
        self._check_reachable("void")
        return self._void_answer()

    def void_dispatch_guide(self, external_id: str, reason: str) -> VoidResult:
        self.calls.append({"method": "void_dispatch_guide", "external_id": external_id, "reason": reason})
        self._check_reachable("void_dispatch_guide")
        return self._void_answer()

    def _void_answer(self) -> VoidResult:
        if self.should_succeed:
            return VoidResult(success=True, status="VOIDED")
        return VoidResult(success=False, status="REJECTED", failure_reason=self.failure_reason)
