"""
Shipment API Endpoints.

Registration, status changes, collection with proof of delivery, and reads.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from api.dependencies import (
    get_actor,
    get_business_timezone,
    get_coordinator,
    get_dispatch_guide_service,
    get_invoice_service,
)
from api.models import (
    CollectRequest,
    CollectResponse,
    DispatchGuideOutcomeResponse,
    DispatchGuideRequest as APIDispatchGuideRequest,
    DispatchGuideResponse,
    DispatchGuideVoidRequest,
    InvoiceResponse,
    LoyaltyBalanceResponse,
    ShipmentListResponse,
    ShipmentRegistrationRequest as APIShipmentRegistrationRequest,
    ShipmentRegistrationResponse,
    ShipmentResponse,
    StatusChangeRequest,
)
from domain.actor import Actor
from services import shipment_service
from services.dispatch_guide_service import DispatchGuideRequest, DispatchGuideService
from services.invoice_service import InvoiceService
from services.proof_storage import ProofStore, get_proof_store
from services.shipment_service import ShipmentRegistrationRequest
from services.transaction_coordinator import TransactionCoordinator

router = APIRouter()


@router.post(
    "/shipments",
    response_model=ShipmentRegistrationResponse,
    status_code=201,
    summary="Register Shipment",
    description="Register a parcel, price it, settle loyalty points and allocate its ENC code."
)
def register_shipment(
    request: APIShipmentRegistrationRequest,
    actor: Actor = Depends(get_actor),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    """
    Register a parcel shipment.

    **Process (one database transaction):**
    1. Locks the sender's loyalty account (opened on first shipment)
    2. Settles redeemed points against the tariff price
    3. Allocates the next `ENC-YYYYMMDD-NNNNN` code
    4. Inserts the shipment and its REGISTERED event at the origin

    **After commit (best-effort):** the invoice is issued. Pay-on-pickup
    shipments only get an internal sales note now; the real invoice is
    issued when the parcel is collected.

    `qrPayload` is the tracking code to render as a QR image.
    """
    package = request.package
    invoice_customer = request.invoice_customer
    service_request = ShipmentRegistrationRequest(
        origin_location_id=request.origin_location_id,
        destination_location_id=request.destination_location_id,
        sender_name=request.sender.full_name,
        sender_document_number=request.sender.document_number,
        sender_document_type=request.sender.document_type,
        sender_phone=request.sender.phone,
        recipient_name=request.recipient.full_name,
        recipient_phone=request.recipient.phone,
        recipient_document_number=request.recipient.document_number,
        package_kind=package.kind,
        weight_kg=package.weight_kg,
        height_cm=package.height_cm,
        width_cm=package.width_cm,
        length_cm=package.length_cm,
        package_description=package.description,
        base_price_id=request.base_price_id,
        document_type=request.document_type,
        invoice_ruc=invoice_customer.ruc if invoice_customer else None,
        invoice_business_name=invoice_customer.business_name if invoice_customer else None,
        invoice_address=invoice_customer.address if invoice_customer else None,
        points_to_redeem=request.points_to_redeem,
        pay_on_pickup=request.pay_on_pickup,
        security_code=request.security_code,
        note=request.note,
        manual_price=request.manual_price,
    )
    outcome = shipment_service.register_shipment(service_request, actor, coordinator, tz_name=coordinator.tz_name)
    shipment = outcome.document
    return ShipmentRegistrationResponse(
        shipment=ShipmentResponse.from_domain(shipment),
        qr_payload=shipment.code,
        loyalty=LoyaltyBalanceResponse.from_domain(outcome.account),
        invoice=InvoiceResponse.from_domain(outcome.invoice),
        warnings=outcome.warnings,
    )


@router.get(
    "/shipments",
    response_model=ShipmentListResponse,
    summary="List Shipments",
)
def list_shipments(
    status: Optional[str] = Query(None, description="Filter by status"),
    location_id: Optional[str] = Query(None, alias="locationId", description="Origin or destination"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=shipment_service.MAX_PAGE_SIZE),
    actor: Actor = Depends(get_actor),
):
    """
    Paged list, newest first. Location-bound users only see shipments from
    or to their own location; `locationId` is ignored for them.
    """
    items, total = shipment_service.list_shipments(actor, status, location_id, page, limit)
    return ShipmentListResponse(
        items=[ShipmentResponse.from_domain(s) for s in items],
        total_count=total,
        page=page,
        limit=limit,
    )


@router.get(
    "/shipments/by-code/{code}",
    response_model=ShipmentResponse,
    summary="Get Shipment By Code",
)
def get_shipment_by_code(code: str, actor: Actor = Depends(get_actor)):
    """Case-insensitive exact match on the code; no wildcards. Includes the event history."""
    return ShipmentResponse.from_domain(shipment_service.get_shipment_by_code(code, actor))


@router.get(
    "/shipments/{shipment_id}",
    response_model=ShipmentResponse,
    summary="Get Shipment",
)
def get_shipment(shipment_id: UUID, actor: Actor = Depends(get_actor)):
    return ShipmentResponse.from_domain(shipment_service.get_shipment(str(shipment_id), actor))


@router.patch(
    "/shipments/{shipment_id}/status",
    response_model=ShipmentResponse,
    summary="Change Shipment Status",
    description="Advance a shipment one step: REGISTERED → IN_WAREHOUSE → IN_TRANSIT → ARRIVED."
)
def change_status(
    shipment_id: UUID,
    request: StatusChangeRequest,
    actor: Actor = Depends(get_actor),
):
    """
    Only the next status in the chain is accepted. `COLLECTED` is rejected
    here; use `POST /shipments/{id}/collect`.

    **Errors:** 400 illegal transition, 403 location is neither origin nor
    destination, 404 unknown shipment, 409 another user changed the status
    first (reload and retry).
    """
    updated = shipment_service.transition(str(shipment_id), request.target_status, actor, request.note)
    return ShipmentResponse.from_domain(updated)


@router.post(
    "/shipments/{shipment_id}/collect",
    response_model=CollectResponse,
    summary="Collect Shipment",
    description="Hand an ARRIVED shipment over to the recipient with proof of delivery."
)
def collect_shipment(
    shipment_id: UUID,
    request: CollectRequest,
    actor: Actor = Depends(get_actor),
    invoices: InvoiceService = Depends(get_invoice_service),
    proof_store: ProofStore = Depends(get_proof_store),
    tz_name: str = Depends(get_business_timezone),
):
    """
    Requires the collector's document, a base64 JPEG/PNG/WebP photo and, when
    the shipment has one, the 4-digit security code.

    Only the destination location (or an administrative user) may collect.
    Pay-on-pickup shipments get their invoice after the collection commits.
    """
    outcome = shipment_service.collect(
        str(shipment_id),
        request.collector_doc_id,
        request.proof_photo_base64,
        actor,
        security_code=request.security_code,
        invoices=invoices,
        proof_store=proof_store,
        tz_name=tz_name,
    )
    return CollectResponse(
        shipment=ShipmentResponse.from_domain(outcome.shipment),
        invoice=InvoiceResponse.from_domain(outcome.invoice),
        warnings=outcome.warnings,
    )


# ============================================================================
# Dispatch guide
# ============================================================================

@router.post(
    "/shipments/{shipment_id}/dispatch-guide",
    response_model=DispatchGuideOutcomeResponse,
    status_code=201,
    summary="Issue Dispatch Guide",
    description="Number the shipment's dispatch guide (series T001) and send it to the e-invoicing gateway."
)
def issue_dispatch_guide(
    shipment_id: UUID,
    request: APIDispatchGuideRequest,
    actor: Actor = Depends(get_actor),
    guides: DispatchGuideService = Depends(get_dispatch_guide_service),
    tz_name: str = Depends(get_business_timezone),
):
    """
    One active guide per shipment; void it before issuing a new one.
    `transferStartDate` defaults to today.

    The guide is stored before the gateway is called. When the gateway is
    down the guide stays in ERROR and a warning is returned; the retry
    script resubmits it.

    **Errors:** 400 collected shipment or bad transport data, 403 location
    is neither origin nor destination, 404 unknown shipment, 409 an active
    guide exists, 500 origin or destination lacks ubigeo/address.
    """
    outcome = guides.issue_for_shipment(
        str(shipment_id),
        DispatchGuideRequest(
            carrier_ruc=request.carrier_ruc,
            carrier_name=request.carrier_name,
            driver_document_number=request.driver_document_number,
            driver_name=request.driver_name,
            driver_document_type=request.driver_document_type,
            driver_license=request.driver_license,
            vehicle_plate=request.vehicle_plate,
            transfer_start_date=request.transfer_start_date,
            note=request.note,
        ),
        actor,
        tz_name=tz_name,
    )
    return DispatchGuideOutcomeResponse(
        guide=DispatchGuideResponse.from_domain(outcome.guide),
        warnings=outcome.warnings,
    )


@router.get(
    "/shipments/{shipment_id}/dispatch-guide",
    response_model=DispatchGuideResponse,
    summary="Get Dispatch Guide",
)
def get_dispatch_guide(
    shipment_id: UUID,
    actor: Actor = Depends(get_actor),
    guides: DispatchGuideService = Depends(get_dispatch_guide_service),
):
    """The shipment's active guide; 404 when there is none."""
    return DispatchGuideResponse.from_domain(guides.get_for_shipment(str(shipment_id), actor))


@router.post(
    "/shipments/{shipment_id}/dispatch-guide/void",
    response_model=DispatchGuideOutcomeResponse,
    summary="Void Dispatch Guide",
)
def void_dispatch_guide(
    shipment_id: UUID,
    request: DispatchGuideVoidRequest,
    actor: Actor = Depends(get_actor),
    guides: DispatchGuideService = Depends(get_dispatch_guide_service),
):
    """Voided locally first; a gateway failure comes back as a warning."""
    outcome = guides.void_for_shipment(str(shipment_id), request.reason, actor)
    return DispatchGuideOutcomeResponse(
        guide=DispatchGuideResponse.from_domain(outcome.guide),
        warnings=outcome.warnings,
    )
