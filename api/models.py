"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
JSON field names are camelCase; Python attributes stay snake_case.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from domain.customer import Customer
from domain.loyalty import LoyaltyAccount
from domain.sale import DocumentType, LifecycleEvent, PaymentMethod, SalePricing
from domain.shipment import Shipment
from domain.ticket import Ticket
from repositories.dispatch_guide_repository import DispatchGuideRecord
from repositories.invoice_repository import InvoiceRecord


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


# ============================================================================
# Shared Models
# ============================================================================

class PersonRequest(CamelModel):
    """Passenger or sender identity."""
    full_name: str = Field(..., min_length=1)
    document_number: str = Field(..., min_length=1)
    document_type: Optional[str] = Field(None, description='"1" (DNI) or "6" (RUC); inferred from length')
    phone: Optional[str] = None


class InvoiceCustomerRequest(CamelModel):
    """Business buyer for a FACTURA."""
    ruc: str
    business_name: str
    address: Optional[str] = None


class PricingResponse(CamelModel):
    original_price: Decimal
    discount: Decimal
    final_price: Decimal
    points_redeemed: int
    points_earned: int
    price_overridden: bool

    @classmethod
    def from_domain(cls, pricing: SalePricing) -> "PricingResponse":
        return cls(
            original_price=pricing.original_price,
            discount=pricing.discount,
            final_price=pricing.final_price,
            points_redeemed=pricing.points_redeemed,
            points_earned=pricing.points_earned,
            price_overridden=pricing.price_overridden,
        )


class CustomerResponse(CamelModel):
    national_id: str
    document_type: str
    full_name: str
    phone: Optional[str] = None

    @classmethod
    def from_domain(cls, customer: Customer) -> "CustomerResponse":
        return cls(
            national_id=customer.national_id,
            document_type=customer.document_type.value,
            full_name=customer.full_name,
            phone=customer.phone,
        )


class EventResponse(CamelModel):
    """One lifecycle event (internal view)."""
    event_id: str
    target_status: str
    location_id: Optional[str] = None
    actor_user_id: Optional[str] = None
    note: Optional[str] = None
    proof_path: Optional[str] = None
    collector_doc_id: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_domain(cls, event: LifecycleEvent) -> "EventResponse":
        return cls(
            event_id=event.event_id,
            target_status=event.target_status,
            location_id=event.location_id,
            actor_user_id=event.actor_user_id,
            note=event.note,
            proof_path=event.proof_path,
            collector_doc_id=event.collector_doc_id,
            created_at=event.created_at,
        )


class LoyaltyBalanceResponse(CamelModel):
    national_id: str
    points_available: int
    points_historic: int

    @classmethod
    def from_domain(cls, account: LoyaltyAccount) -> "LoyaltyBalanceResponse":
        return cls(
            national_id=account.national_id,
            points_available=account.points_available,
            points_historic=account.points_historic,
        )

    class Config:
        json_schema_extra = {
            "example": {"nationalId": "12345678", "pointsAvailable": 9, "pointsHistoric": 59}
        }


class InvoiceResponse(CamelModel):
    """Invoice, boleta or internal sales note issued after the sale."""
    invoice_id: str
    document_type: str  # "01", "03", "NV"
    full_number: str
    status: str
    total: Decimal
    external_id: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def from_domain(cls, record: Optional[InvoiceRecord]) -> Optional["InvoiceResponse"]:
        if record is None:
            return None
        return cls(
            invoice_id=record.invoice_id,
            document_type=record.document.document_type.value,
            full_number=record.full_number,
            status=record.status.value,
            total=record.document.totals.total,
            external_id=record.external_id,
            error_message=record.error_message,
        )


# ============================================================================
# Ticket Models
# ============================================================================

class TicketSaleRequest(CamelModel):
    """Request to sell a passenger ticket."""
    route_id: str
    schedule_id: Optional[str] = None
    travel_date: Optional[date] = None
    passenger: PersonRequest
    payment_method: PaymentMethod
    document_type: DocumentType = DocumentType.BOLETA
    invoice_customer: Optional[InvoiceCustomerRequest] = None
    points_to_redeem: int = Field(0, ge=0)
    manual_price: Optional[Decimal] = Field(None, ge=0)

    class Config:
        json_schema_extra = {
            "example": {
                "routeId": "123e4567-e89b-12d3-a456-426614174000",
                "scheduleId": "123e4567-e89b-12d3-a456-426614174001",
                "travelDate": "2026-03-14",
                "passenger": {"fullName": "Ana Quispe", "documentNumber": "12345678", "phone": "987654321"},
                "paymentMethod": "CASH",
                "documentType": "BOLETA",
                "pointsToRedeem": 50,
            }
        }


class TicketResponse(CamelModel):
    ticket_id: str
    code: str
    status: str
    trip_id: str
    route_id: str
    schedule_id: Optional[str] = None
    travel_date: date
    passenger: CustomerResponse
    payment_method: str
    document_type: str
    invoice_status: str
    pricing: PricingResponse
    created_at: datetime
    events: List[EventResponse] = []

    @classmethod
    def from_domain(cls, ticket: Ticket) -> "TicketResponse":
        return cls(
            ticket_id=ticket.ticket_id,
            code=ticket.code,
            status=ticket.status.value,
            trip_id=ticket.trip_id,
            route_id=ticket.route_id,
            schedule_id=ticket.schedule_id,
            travel_date=ticket.travel_date,
            passenger=CustomerResponse.from_domain(ticket.passenger),
            payment_method=ticket.payment_method.value,
            document_type=ticket.document_type.value,
            invoice_status=ticket.invoice_status.value,
            pricing=PricingResponse.from_domain(ticket.pricing),
            created_at=ticket.created_at,
            events=[EventResponse.from_domain(e) for e in ticket.events],
        )


class TicketSaleResponse(CamelModel):
    ticket: TicketResponse
    loyalty: LoyaltyBalanceResponse
    invoice: Optional[InvoiceResponse] = None
    warnings: List[str] = []

    class Config:
        json_schema_extra = {
            "example": {
                "ticket": {
                    "code": "TKT-20260314-00001",
                    "status": "ISSUED",
                    "invoiceStatus": "ISSUED",
                    "pricing": {
                        "originalPrice": "100.00",
                        "discount": "5.00",
                        "finalPrice": "95.00",
                        "pointsRedeemed": 50,
                        "pointsEarned": 9,
                        "priceOverridden": False,
                    },
                },
                "loyalty": {"nationalId": "12345678", "pointsAvailable": 9, "pointsHistoric": 59},
                "invoice": {"fullNumber": "BT74-00000001", "status": "ACCEPTED"},
                "warnings": [],
            }
        }


class TicketVoidRequest(CamelModel):
    reason: str = Field(..., min_length=1)


class TicketVoidResponse(CamelModel):
    ticket: TicketResponse
    warnings: List[str] = []


class TicketListResponse(CamelModel):
    items: List[TicketResponse]
    total_count: int
    page: int
    limit: int


# ============================================================================
# Shipment Models
# ============================================================================

class RecipientRequest(CamelModel):
    full_name: str
    phone: str
    document_number: Optional[str] = None


class PackageRequest(CamelModel):
    kind: str
    weight_kg: Decimal = Field(..., gt=0)
    height_cm: Decimal = Field(..., gt=0)
    width_cm: Decimal = Field(..., gt=0)
    length_cm: Decimal = Field(..., gt=0)
    description: Optional[str] = None


class ShipmentRegistrationRequest(CamelModel):
    """Request to register a parcel shipment."""
    origin_location_id: str
    destination_location_id: str
    sender: PersonRequest
    recipient: RecipientRequest
    package: PackageRequest
    base_price_id: str
    document_type: DocumentType = DocumentType.BOLETA
    invoice_customer: Optional[InvoiceCustomerRequest] = None
    points_to_redeem: int = Field(0, ge=0)
    pay_on_pickup: bool = False
    security_code: Optional[str] = Field(None, description="Exactly 4 digits")
    note: Optional[str] = None
    manual_price: Optional[Decimal] = Field(None, ge=0)

    class Config:
        json_schema_extra = {
            "example": {
                "originLocationId": "123e4567-e89b-12d3-a456-426614174010",
                "destinationLocationId": "123e4567-e89b-12d3-a456-426614174011",
                "sender": {"fullName": "Luis Mamani", "documentNumber": "87654321", "phone": "912345678"},
                "recipient": {"fullName": "Rosa Mamani", "phone": "998877665"},
                "package": {"kind": "BOX", "weightKg": "3.5", "heightCm": 30, "widthCm": 20, "lengthCm": 40},
                "basePriceId": "123e4567-e89b-12d3-a456-426614174020",
                "documentType": "BOLETA",
                "securityCode": "4821",
            }
        }


class RecipientResponse(CamelModel):
    full_name: str
    phone: str
    document_number: Optional[str] = None


class PackageResponse(CamelModel):
    kind: str
    weight_kg: Decimal
    height_cm: Decimal
    width_cm: Decimal
    length_cm: Decimal
    description: Optional[str] = None


class ShipmentResponse(CamelModel):
    """Internal shipment view. The security code itself is never returned."""
    shipment_id: str
    code: str
    status: str
    origin_location_id: str
    destination_location_id: str
    sender: CustomerResponse
    recipient: RecipientResponse
    package: PackageResponse
    pricing: PricingResponse
    document_type: str
    invoice_status: str
    pay_on_pickup: bool
    has_security_code: bool
    note: Optional[str] = None
    created_at: datetime
    events: List[EventResponse] = []

    @classmethod
    def from_domain(cls, shipment: Shipment) -> "ShipmentResponse":
        package = shipment.package
        return cls(
            shipment_id=shipment.shipment_id,
            code=shipment.code,
            status=shipment.status.value,
            origin_location_id=shipment.origin_location_id,
            destination_location_id=shipment.destination_location_id,
            sender=CustomerResponse.from_domain(shipment.sender),
            recipient=RecipientResponse(
                full_name=shipment.recipient.full_name,
                phone=shipment.recipient.phone,
                document_number=shipment.recipient.document_number,
            ),
            package=PackageResponse(
                kind=package.kind,
                weight_kg=package.weight_kg,
                height_cm=package.height_cm,
                width_cm=package.width_cm,
                length_cm=package.length_cm,
                description=package.description,
            ),
            pricing=PricingResponse.from_domain(shipment.pricing),
            document_type=shipment.document_type.value,
            invoice_status=shipment.invoice_status.value,
            pay_on_pickup=shipment.pay_on_pickup,
            has_security_code=shipment.has_security_code,
            note=shipment.note,
            created_at=shipment.created_at,
            events=[EventResponse.from_domain(e) for e in shipment.events],
        )


class ShipmentRegistrationResponse(CamelModel):
    shipment: ShipmentResponse
    qr_payload: str
    loyalty: LoyaltyBalanceResponse
    invoice: Optional[InvoiceResponse] = None
    warnings: List[str] = []


class StatusChangeRequest(CamelModel):
    target_status: str
    note: Optional[str] = None

    class Config:
        json_schema_extra = {"example": {"targetStatus": "IN_WAREHOUSE", "note": "Received at counter"}}


class CollectRequest(CamelModel):
    collector_doc_id: str = Field(..., min_length=1)
    proof_photo_base64: str = Field(..., min_length=1)
    security_code: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "collectorDocId": "44556677",
                "proofPhotoBase64": "data:image/jpeg;base64,/9j/4AAQSkZJRg...",
                "securityCode": "4821",
            }
        }


class CollectResponse(CamelModel):
    shipment: ShipmentResponse
    invoice: Optional[InvoiceResponse] = None
    warnings: List[str] = []


class ShipmentListResponse(CamelModel):
    items: List[ShipmentResponse]
    total_count: int
    page: int
    limit: int


# ============================================================================
# Dispatch Guide Models
# ============================================================================

class DispatchGuideRequest(CamelModel):
    """Carrier and driver data printed on the shipment's dispatch guide."""
    carrier_ruc: str
    carrier_name: str
    driver_document_number: str
    driver_name: str
    driver_document_type: Optional[str] = None
    driver_license: Optional[str] = None
    vehicle_plate: Optional[str] = None
    transfer_start_date: Optional[date] = None
    note: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "carrierRuc": "20123456789",
                "carrierName": "Transportes Andinos SAC",
                "driverDocumentNumber": "45678912",
                "driverName": "Luis Mamani",
                "driverLicense": "Q45678912",
                "vehiclePlate": "ABC-123",
            }
        }


class DispatchGuideResponse(CamelModel):
    guide_id: str
    shipment_id: str
    full_number: str
    status: str
    issue_date: date
    transfer_start_date: date
    carrier_ruc: str
    driver_name: str
    vehicle_plate: Optional[str] = None
    external_id: Optional[str] = None
    error_message: Optional[str] = None
    void_reason: Optional[str] = None

    @classmethod
    def from_domain(cls, record: DispatchGuideRecord) -> "DispatchGuideResponse":
        transport = record.guide.transport
        return cls(
            guide_id=record.guide_id,
            shipment_id=record.shipment_id,
            full_number=record.full_number,
            status=record.status.value,
            issue_date=record.guide.issue_date,
            transfer_start_date=transport.transfer_start_date,
            carrier_ruc=transport.carrier_ruc,
            driver_name=transport.driver_name,
            vehicle_plate=transport.vehicle_plate,
            external_id=record.external_id,
            error_message=record.error_message,
            void_reason=record.void_reason,
        )


class DispatchGuideOutcomeResponse(CamelModel):
    guide: DispatchGuideResponse
    warnings: List[str] = []


class DispatchGuideVoidRequest(CamelModel):
    reason: str = Field(..., min_length=1)


# ============================================================================
# Tracking Models (public)
# ============================================================================

class TrackingEventResponse(CamelModel):
    status: str
    location_id: Optional[str] = None
    created_at: datetime


class TrackingResponse(CamelModel):
    """Public tracking view: no actor ids, proof paths or personal documents."""
    code: str
    status: str
    origin_location_id: str
    destination_location_id: str
    created_at: datetime
    history: List[TrackingEventResponse]

    @classmethod
    def from_domain(cls, shipment: Shipment) -> "TrackingResponse":
        return cls(
            code=shipment.code,
            status=shipment.status.value,
            origin_location_id=shipment.origin_location_id,
            destination_location_id=shipment.destination_location_id,
            created_at=shipment.created_at,
            history=[
                TrackingEventResponse(status=e.target_status, location_id=e.location_id, created_at=e.created_at)
                for e in shipment.events
            ],
        )


# ============================================================================
# Loyalty Models
# ============================================================================

class LoyaltyQuoteRequest(CamelModel):
    national_id: str
    original_price: Decimal = Field(..., ge=0)
    points_to_redeem: int = Field(0, ge=0)

    class Config:
        json_schema_extra = {
            "example": {"nationalId": "12345678", "originalPrice": "100.00", "pointsToRedeem": 50}
        }


class LoyaltyQuoteResponse(CamelModel):
    national_id: str
    is_new_customer: bool
    points_requested: int
    points_redeemed: int
    discount: Decimal
    original_price: Decimal
    final_price: Decimal
    points_earned: int
    balance_before: LoyaltyBalanceResponse
    balance_after: LoyaltyBalanceResponse
