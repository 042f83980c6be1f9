"""
Dispatch guide service: the transport document (type 09) of a shipment.

Emission is validated up front and raises like any other request. Once the
guide is numbered and stored as PENDING, the gateway call is best-effort in
the same way invoices are: failures come back as warnings and the guide is
left for the retry script.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any, Callable, List, Optional

from domain.actor import Actor
from domain.dispatch_guide import DISPATCH_GUIDE_SERIES, DispatchGuide, GuidePlace, TransportDetails
from domain.errors import ConfigurationError, ConflictError, NotFoundError, UpstreamGatewayError, ValidationError
from domain.invoice import InvoiceRecordStatus
from domain.sequence import SeriesDocumentType
from domain.shipment import Shipment, ShipmentAction, ShipmentStatus, require_can_act
from domain.time import DEFAULT_BUSINESS_TIMEZONE, business_date
from invoicing import get_gateway
from invoicing.port import InvoiceGateway
from repositories import dispatch_guide_repository, master_data_repository, shipment_repository
from repositories.dispatch_guide_repository import DispatchGuideRecord
from services.sequence_allocator import SequenceAllocator

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DispatchGuideRequest:
    carrier_ruc: str
    carrier_name: str
    driver_document_number: str
    driver_name: str
    driver_document_type: Optional[str] = None
    driver_license: Optional[str] = None
    vehicle_plate: Optional[str] = None
    transfer_start_date: Optional[date] = None
    note: Optional[str] = None


@dataclass(frozen=True)
class DispatchGuideOutcome:
    guide: DispatchGuideRecord
    warnings: List[str] = field(default_factory=list)


class DispatchGuideService:
    def __init__(
        self,
        allocator: Optional[SequenceAllocator] = None,
        gateway_provider: Callable[[], InvoiceGateway] = get_gateway,
        series: str = DISPATCH_GUIDE_SERIES,
    ) -> None:
        self.allocator = allocator or SequenceAllocator()
        self._gateway_provider = gateway_provider
        self.series = series

    def issue_for_shipment(
        self,
        shipment_id: str,
        request: DispatchGuideRequest,
        actor: Actor,
        now_utc: Optional[datetime] = None,
        tz_name: str = DEFAULT_BUSINESS_TIMEZONE,
    ) -> DispatchGuideOutcome:
        """
        Number, persist and submit the dispatch guide of a shipment.

        The number is allocated only after every check passed.

        Raises:
            NotFoundError: unknown shipment
            AuthorizationError: actor's location is not on the shipment's route
            ValidationError: collected shipment, bad transport data, transfer date in the past
            ConflictError: the shipment already has an active guide
            ConfigurationError: origin or destination lacks ubigeo/address
        """

        now_utc = now_utc or datetime.now(timezone.utc)
        shipment = self._load(shipment_id, actor)
        if shipment.status == ShipmentStatus.COLLECTED:
            raise ValidationError(
                "A collected shipment no longer needs a dispatch guide",
                fields={"status": shipment.status.value},
            )

        today = business_date(now_utc, tz_name)
        transport = TransportDetails.create(
            request.carrier_ruc,
            request.carrier_name,
            request.driver_document_number,
            request.driver_name,
            request.transfer_start_date or today,
            driver_document_type=request.driver_document_type,
            driver_license=request.driver_license,
            vehicle_plate=request.vehicle_plate,
        )
        if transport.transfer_start_date < today:
            raise ValidationError(
                "The transfer cannot start before today",
                fields={"transfer_start_date": f">= {today.isoformat()}"},
            )

        existing = dispatch_guide_repository.get_active_guide(shipment.shipment_id)
        if existing is not None:
            raise ConflictError(
                f"Shipment {shipment.code} already has dispatch guide {existing.full_number}",
                {"shipment_id": shipment.shipment_id, "guide": existing.full_number},
            )

        origin = GuidePlace.from_location(self._location(shipment.origin_location_id))
        destination = GuidePlace.from_location(self._location(shipment.destination_location_id))

        number, full_number = self.allocator.next_series_number(SeriesDocumentType.DISPATCH_GUIDE, self.series)
        guide = DispatchGuide.for_shipment(
            shipment,
            number,
            today,
            origin,
            destination,
            transport,
            series=self.series,
            note=(request.note or "").strip() or None,
        )
        record = dispatch_guide_repository.insert_pending(shipment.shipment_id, guide, actor.user_id)
        logger.info("Dispatch guide %s created for %s", full_number, shipment.code)
        return self.dispatch(record)

    def dispatch(self, record: DispatchGuideRecord) -> DispatchGuideOutcome:
        """One submission attempt. Also used by the retry script."""

        warnings: List[str] = []
        try:
            result = self._gateway_provider().submit_dispatch_guide(record.guide.to_gateway_payload())
        except (UpstreamGatewayError, ConfigurationError) as exc:
            logger.warning("Dispatch guide %s not delivered: %s", record.full_number, exc.message)
            warnings.append(f"Dispatch guide {record.full_number} pending: {exc.message}")
            return self._mark(record, InvoiceRecordStatus.ERROR, warnings, error_message=exc.message)

        if result.success:
            return self._mark(
                record,
                InvoiceRecordStatus.ACCEPTED,
                warnings,
                external_id=result.external_id,
                gateway_response=result.raw,
            )

        logger.warning("Dispatch guide %s rejected: %s", record.full_number, result.failure_reason)
        warnings.append(f"Dispatch guide {record.full_number} rejected: {result.failure_reason}")
        return self._mark(
            record,
            InvoiceRecordStatus.REJECTED,
            warnings,
            error_message=result.failure_reason,
            gateway_response=result.raw,
        )

    def get_for_shipment(self, shipment_id: str, actor: Actor) -> DispatchGuideRecord:
        shipment = self._load(shipment_id, actor)
        record = dispatch_guide_repository.get_active_guide(shipment.shipment_id)
        if record is None:
            raise NotFoundError("No active dispatch guide for this shipment", {"shipment_id": shipment_id})
        return record

    def void_for_shipment(self, shipment_id: str, reason: str, actor: Actor) -> DispatchGuideOutcome:
        """
        Void the active guide locally, then ask the gateway. A gateway failure
        does not undo the local void; it is reported as a warning.

        Raises:
            ValidationError: empty reason
            NotFoundError: unknown shipment or no active guide
        """

        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A void reason is required", fields={"reason": "required"})

        record = self.get_for_shipment(shipment_id, actor)
        dispatch_guide_repository.mark_voided(record.guide_id, reason)
        logger.info("Dispatch guide %s voided: %s", record.full_number, reason)
        voided = replace(record, status=InvoiceRecordStatus.VOIDED, void_reason=reason)

        warnings: List[str] = []
        if not record.external_id:
            return DispatchGuideOutcome(guide=voided, warnings=warnings)

        try:
            result = self._gateway_provider().void_dispatch_guide(record.external_id, reason)
        except (UpstreamGatewayError, ConfigurationError) as exc:
            logger.warning("Gateway void of %s failed: %s", record.full_number, exc.message)
            warnings.append(f"Dispatch guide {record.full_number} voided locally; gateway void failed: {exc.message}")
        else:
            if not result.success:
                logger.warning("Gateway refused void of %s: %s", record.full_number, result.failure_reason)
                warnings.append(
                    f"Dispatch guide {record.full_number} voided locally; gateway refused: {result.failure_reason}"
                )
        return DispatchGuideOutcome(guide=voided, warnings=warnings)

    # ------------------------------------------------------------------

    @staticmethod
    def _load(shipment_id: str, actor: Actor) -> Shipment:
        shipment = shipment_repository.get_shipment_by_id(shipment_id, with_events=False)
        if shipment is None:
            raise NotFoundError("Shipment not found", {"shipment_id": shipment_id})
        require_can_act(actor, shipment, ShipmentAction.TRANSITION)
        return shipment

    @staticmethod
    def _location(location_id: str) -> dict[str, Any]:
        location = master_data_repository.get_location(location_id)
        if location is None:
            raise NotFoundError("Location not found", {"location_id": location_id})
        return location

    def _mark(
        self,
        record: DispatchGuideRecord,
        status: InvoiceRecordStatus,
        warnings: List[str],
        external_id: Optional[str] = None,
        error_message: Optional[str] = None,
        gateway_response: Optional[dict[str, Any]] = None,
    ) -> DispatchGuideOutcome:
        try:
            dispatch_guide_repository.mark_submitted(
                record,
                status,
                external_id=external_id,
                error_message=error_message,
                gateway_response=gateway_response,
            )
        except Exception:
            logger.exception("Failed to record status %s on dispatch guide %s", status.value, record.full_number)
            warnings.append(f"Dispatch guide {record.full_number} outcome could not be recorded")
            return DispatchGuideOutcome(guide=record, warnings=warnings)

        updated = replace(
            record,
            status=status,
            external_id=external_id or record.external_id,
            error_message=error_message,
            attempts=record.attempts + 1,
        )
        return DispatchGuideOutcome(guide=updated, warnings=warnings)


__all__ = ["DispatchGuideRequest", "DispatchGuideOutcome", "DispatchGuideService"]
