"""Invoice gateway port (abstract interface).

Defines the contract every electronic-invoicing adapter implements, so the
fake adapter (dev/test) and the KEYFACIL adapter (production) are swappable
without touching services.

Adapters make exactly one attempt per call. Transport failures raise
UpstreamGatewayError; a provider that answers but refuses the document
returns a result with success=False.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class SubmitResult:
    """Result of submitting one document."""

    success: bool
    external_id: str | None = None
    status: str | None = None
    failure_reason: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


# Provider status words for a document it already holds.
ACCEPTED_STATES = frozenset({"ACCEPTED", "ACEPTADO", "ACEPTADA"})
REJECTED_STATES = frozenset({"REJECTED", "RECHAZADO", "RECHAZADA"})


@dataclass(frozen=True)
class QueryResult:
    """success=False means the provider does not know the document."""

    success: bool
    status: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return self.success and (self.status or "").upper() in ACCEPTED_STATES

    @property
    def rejected(self) -> bool:
        return self.success and (self.status or "").upper() in REJECTED_STATES


@dataclass(frozen=True)
class VoidResult:
    success: bool
    status: str | None = None
    failure_reason: str | None = None


class InvoiceGateway(ABC):
    """Abstract e-invoicing gateway interface."""

    @abstractmethod
    def submit(self, payload: dict[str, Any]) -> SubmitResult:
        """Submit a numbered document."""
        ...

    @abstractmethod
    def query(self, external_id: str) -> QueryResult:
        """Ask the provider for the current status of a submitted document."""
        ...

    @abstractmethod
    def void(self, external_id: str, reason: str) -> VoidResult:
        """Request cancellation of a previously accepted document."""
        ...

    @abstractmethod
    def submit_dispatch_guide(self, payload: dict[str, Any]) -> SubmitResult:
        """Submit a numbered dispatch guide (document type 09)."""
        ...

    @abstractmethod
    def void_dispatch_guide(self, external_id: str, reason: str) -> VoidResult:
        ...
