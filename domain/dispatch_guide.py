"""
Domain: dispatch guides (pure).

A dispatch guide (document type 09) travels with a parcel between two
locations. It carries no prices; the gateway needs the route, the transport
data and the goods.

Rules:
- numbered from the 09 series counter, unique on (series, number)
- at most one active guide per shipment (VOIDED and REJECTED guides do not count)
- the carrier is identified by RUC; the driver by an identity document
- the transfer cannot start before the guide is issued
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Tuple

from .customer import IdentityDocumentType, normalize_document
from .errors import ConfigurationError, ValidationError
from .invoice import InvoiceParty, InvoiceRecordStatus
from .sequence import format_series_number, validate_series
from .shipment import Shipment

DISPATCH_GUIDE_SERIES = "T001"
TRANSFER_REASON_SALE = "01"
TRANSPORT_PUBLIC = "01"
GOODS_UNIT = "ZZ"
# Recipient document printed when the shipment has none.
UNKNOWN_RECIPIENT_DNI = "00000000"
OTHER_DOCUMENT_TYPE = "0"

# Statuses that block a second guide for the same shipment.
ACTIVE_STATUSES = frozenset(
    {InvoiceRecordStatus.PENDING, InvoiceRecordStatus.ACCEPTED, InvoiceRecordStatus.ERROR}
)

_UBIGEO_RE = re.compile(r"^\d{6}$")
_PLATE_RE = re.compile(r"^[A-Z0-9]{3}-?[A-Z0-9]{3}$")


@dataclass(frozen=True, slots=True)
class GuidePlace:
    """Departure or arrival point: district code (ubigeo) and street address."""

    ubigeo: str
    address: str

    @classmethod
    def from_location(cls, location: Mapping[str, Any]) -> "GuidePlace":
        """
        Raises:
            ConfigurationError: the location lacks a valid ubigeo or address
        """

        ubigeo = str(location.get("ubigeo") or "").strip()
        address = str(location.get("address") or "").strip()
        if not _UBIGEO_RE.fullmatch(ubigeo) or not address:
            raise ConfigurationError(
                f"Location {location.get('name') or location.get('id')} has no ubigeo/address for dispatch guides",
                {"location_id": str(location.get("id"))},
            )
        return cls(ubigeo=ubigeo, address=address)


@dataclass(frozen=True, slots=True)
class TransportDetails:
    carrier_ruc: str
    carrier_name: str
    driver_document_type: IdentityDocumentType
    driver_document_number: str
    driver_name: str
    transfer_start_date: date
    driver_license: Optional[str] = None
    vehicle_plate: Optional[str] = None
    transfer_reason: str = TRANSFER_REASON_SALE
    transport_mode: str = TRANSPORT_PUBLIC

    @classmethod
    def create(
        cls,
        carrier_ruc: str,
        carrier_name: str,
        driver_document_number: str,
        driver_name: str,
        transfer_start_date: date,
        driver_document_type: Optional[str] = None,
        driver_license: Optional[str] = None,
        vehicle_plate: Optional[str] = None,
    ) -> "TransportDetails":
        """
        Validate and normalize the transport block.

        Raises:
            ValidationError: missing carrier or driver data, malformed plate
        """

        ruc, _ = normalize_document(carrier_ruc, IdentityDocumentType.RUC.value, field="carrier_ruc")
        if not (carrier_name or "").strip():
            raise ValidationError("Carrier name is required", fields={"carrier_name": "required"})
        driver_number, driver_type = normalize_document(
            driver_document_number, driver_document_type, field="driver_document_number"
        )
        if not (driver_name or "").strip():
            raise ValidationError("Driver name is required", fields={"driver_name": "required"})

        plate = (vehicle_plate or "").strip().upper() or None
        if plate is not None and not _PLATE_RE.fullmatch(plate):
            raise ValidationError(f"Malformed vehicle plate: {vehicle_plate!r}", fields={"vehicle_plate": "invalid"})

        return cls(
            carrier_ruc=ruc,
            carrier_name=carrier_name.strip(),
            driver_document_type=driver_type,
            driver_document_number=driver_number,
            driver_name=driver_name.strip(),
            transfer_start_date=transfer_start_date,
            driver_license=(driver_license or "").strip() or None,
            vehicle_plate=plate,
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "carrier_ruc": self.carrier_ruc,
            "carrier_name": self.carrier_name,
            "driver_document_type": self.driver_document_type.value,
            "driver_document_number": self.driver_document_number,
            "driver_name": self.driver_name,
            "driver_license": self.driver_license,
            "vehicle_plate": self.vehicle_plate,
            "transfer_start_date": self.transfer_start_date.isoformat(),
            "transfer_reason": self.transfer_reason,
            "transport_mode": self.transport_mode,
        }

    @classmethod
    def from_json(cls, value: Mapping[str, Any]) -> "TransportDetails":
        return cls(
            carrier_ruc=str(value["carrier_ruc"]),
            carrier_name=str(value["carrier_name"]),
            driver_document_type=IdentityDocumentType(str(value["driver_document_type"])),
            driver_document_number=str(value["driver_document_number"]),
            driver_name=str(value["driver_name"]),
            transfer_start_date=date.fromisoformat(str(value["transfer_start_date"])),
            driver_license=value.get("driver_license"),
            vehicle_plate=value.get("vehicle_plate"),
            transfer_reason=str(value.get("transfer_reason") or TRANSFER_REASON_SALE),
            transport_mode=str(value.get("transport_mode") or TRANSPORT_PUBLIC),
        )


@dataclass(frozen=True, slots=True)
class GuideItem:
    code: str
    description: str
    quantity: Decimal = Decimal("1")


@dataclass(frozen=True, slots=True)
class DispatchGuide:
    """A numbered dispatch guide ready to be submitted to the gateway."""

    series: str
    number: int
    issue_date: date
    recipient: InvoiceParty
    origin: GuidePlace
    destination: GuidePlace
    transport: TransportDetails
    weight_kg: Decimal
    items: Tuple[GuideItem, ...]
    packages: int = 1
    note: Optional[str] = None

    def __post_init__(self) -> None:
        validate_series(self.series)
        if self.number < 1:
            raise ValueError("guide number must be positive")
        if not self.items:
            raise ValueError("a dispatch guide needs at least one item")
        if self.weight_kg <= 0 or self.packages < 1:
            raise ValidationError("Gross weight and package count must be positive", fields={"weight_kg": "> 0"})
        if self.transport.transfer_start_date < self.issue_date:
            raise ValidationError(
                "The transfer cannot start before the guide is issued",
                fields={"transfer_start_date": f">= {self.issue_date.isoformat()}"},
            )

    @property
    def full_number(self) -> str:
        return format_series_number(self.series, self.number)

    @classmethod
    def for_shipment(
        cls,
        shipment: Shipment,
        number: int,
        issue_date: date,
        origin: GuidePlace,
        destination: GuidePlace,
        transport: TransportDetails,
        series: str = DISPATCH_GUIDE_SERIES,
        note: Optional[str] = None,
    ) -> "DispatchGuide":
        """One item, one package: the parcel itself, addressed to its recipient."""

        package = shipment.package
        return cls(
            series=series,
            number=number,
            issue_date=issue_date,
            recipient=recipient_party(shipment),
            origin=origin,
            destination=destination,
            transport=transport,
            weight_kg=package.weight_kg,
            items=(GuideItem(code=shipment.code, description=f"{package.kind}: {package.description or 'Parcel'}"),),
            note=note,
        )

    def to_gateway_payload(self) -> Dict[str, Any]:
        """Flat payload of the provider's despatch-documents endpoint."""

        transport = self.transport
        payload: Dict[str, Any] = {
            "tipo": "09",
            "serie": self.series,
            "numero": self.number,
            "fecha_emision": self.issue_date.isoformat(),
            "receptor_tipo": self.recipient.document_type,
            "receptor_documento": self.recipient.document_number,
            "receptor_nombre": self.recipient.name,
            "origen_ubigeo": self.origin.ubigeo,
            "origen_direccion": self.origin.address,
            "destino_ubigeo": self.destination.ubigeo,
            "destino_direccion": self.destination.address,
            "transporte_tipo": transport.transport_mode,
            "envio_tipo": transport.transfer_reason,
            "envio_fecha": transport.transfer_start_date.isoformat(),
            "envio_peso": float(self.weight_kg),
            "envio_cantidad_bultos": self.packages,
            "transportista_tipo": IdentityDocumentType.RUC.value,
            "transportista_documento": transport.carrier_ruc,
            "transportista_nombre": transport.carrier_name,
            "conductor_tipo": transport.driver_document_type.value,
            "conductor_documento": transport.driver_document_number,
            "conductor_nombre": transport.driver_name,
            "incluir_pdf": True,
            "items": [
                {
                    "codigo": item.code,
                    "descripcion": item.description,
                    "unidad_medida": GOODS_UNIT,
                    "cantidad": float(item.quantity),
                }
                for item in self.items
            ],
        }
        if self.note:
            payload["observaciones"] = self.note
        if transport.driver_license:
            payload["conductor_licencia"] = transport.driver_license
        if transport.vehicle_plate:
            payload["vehiculo_placa"] = transport.vehicle_plate
        return payload


def recipient_party(shipment: Shipment) -> InvoiceParty:
    """
    The recipient as printed on the guide. DNI and RUC numbers keep their
    type, any other document prints as type 0, a missing one as an unknown DNI.
    """

    recipient = shipment.recipient
    number = recipient.document_number or ""
    if number.isdigit() and len(number) in (8, 11):
        number, document_type = normalize_document(number, field="recipient_document")
        return InvoiceParty(document_type=document_type.value, document_number=number, name=recipient.full_name)
    if number:
        return InvoiceParty(document_type=OTHER_DOCUMENT_TYPE, document_number=number, name=recipient.full_name)
    return InvoiceParty(
        document_type=IdentityDocumentType.DNI.value,
        document_number=UNKNOWN_RECIPIENT_DNI,
        name=recipient.full_name,
    )


__all__ = [
    "DISPATCH_GUIDE_SERIES",
    "ACTIVE_STATUSES",
    "GuidePlace",
    "TransportDetails",
    "GuideItem",
    "DispatchGuide",
    "recipient_party",
]
