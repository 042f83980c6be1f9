"""KEYFACIL e-invoicing adapter (production).

Endpoints used:
- POST /invoices                      submit a document
- POST /invoices/{id}                 query its status
- POST /invoices/{id}/void            cancel it, body {"motivo": reason}
- POST /despatch-documents            submit a dispatch guide
- POST /despatch-documents/{id}/void  cancel a dispatch guide

Each call is a single attempt bounded by its own timeout. Transport errors,
timeouts and non-JSON answers raise UpstreamGatewayError.
"""

import logging
import time
from typing import Any

import httpx

from domain.errors import UpstreamGatewayError
from invoicing.port import InvoiceGateway, QueryResult, SubmitResult, VoidResult

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.vitekey.com/keyfact/integra/v1"


class KeyfacilGateway(InvoiceGateway):
    """HTTP adapter for the KEYFACIL API."""

    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout_seconds),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {token}",
            },
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _post(self, endpoint: str, body: dict[str, Any] | None) -> tuple[int, dict[str, Any]]:
        started = time.monotonic()
        try:
            response = self._client.post(endpoint, json=body)
        except httpx.TimeoutException as exc:
            logger.warning("KEYFACIL %s timed out after %.1fs", endpoint, self.timeout_seconds)
            raise UpstreamGatewayError(
                "Invoice gateway timed out", {"endpoint": endpoint}
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("KEYFACIL %s transport error: %s", endpoint, exc)
            raise UpstreamGatewayError(
                "Invoice gateway unreachable", {"endpoint": endpoint}
            ) from exc

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "KEYFACIL %s -> %s in %sms",
            endpoint,
            response.status_code,
            elapsed_ms,
            extra={"endpoint": endpoint, "status_code": response.status_code, "elapsed_ms": elapsed_ms},
        )

        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamGatewayError(
                "Invoice gateway returned a non-JSON answer",
                {"endpoint": endpoint, "status_code": response.status_code},
            ) from exc

        if response.status_code >= 500:
            raise UpstreamGatewayError(
                "Invoice gateway failed",
                {"endpoint": endpoint, "status_code": response.status_code},
            )
        return response.status_code, data if isinstance(data, dict) else {"data": data}

    @staticmethod
    def _reason(data: dict[str, Any]) -> str:
        return str(data.get("message") or data.get("error") or "Rejected by the invoice gateway")

    @staticmethod
    def _accepted(data: dict[str, Any]) -> SubmitResult:
        external_id = data.get("id")
        return SubmitResult(
            success=True,
            external_id=str(external_id) if external_id is not None else None,
            status="ACCEPTED",
            raw=data,
        )

    def submit(self, payload: dict[str, Any]) -> SubmitResult:
        status_code, data = self._post("/invoices", payload)
        if 200 <= status_code < 300:
            return self._accepted(data)
        return SubmitResult(success=False, status="REJECTED", failure_reason=self._reason(data), raw=data)

    def query(self, external_id: str) -> QueryResult:
        status_code, data = self._post(f"/invoices/{external_id}", None)
        return QueryResult(
            success=200 <= status_code < 300,
            status=str(data.get("estado") or data.get("status") or "") or None,
            raw=data,
        )

    def void(self, external_id: str, reason: str) -> VoidResult:
        status_code, data = self._post(f"/invoices/{external_id}/void", {"motivo": reason})
        if 200 <= status_code < 300:
            return VoidResult(success=True, status="VOIDED")
        return VoidResult(success=False, status="REJECTED", failure_reason=self._reason(data))

    def submit_dispatch_guide(self, payload: dict[str, Any]) -> SubmitResult:
        status_code, data = self._post("/despatch-documents", payload)
        if 200 <= status_code < 300:
            return self._accepted(data)
        return SubmitResult(success=False, status="REJECTED", failure_reason=self._reason(data), raw=data)

    def void_dispatch_guide(self, external_id: str, reason: str) -> VoidResult:
        status_code, data = self._post(f"/despatch-documents/{external_id}/void", {"motivo": reason})
        if 200 <= status_code < 300:
            return VoidResult(success=True, status="VOIDED")
        return VoidResult(success=False, status="REJECTED", failure_reason=self._reason(data))
