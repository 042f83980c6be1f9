"""
Domain: customers and identity documents (pure).

A customer is keyed by the number of their identity document (national ID).
The same key owns the loyalty account, for both ticket and parcel sales.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import ValidationError


class IdentityDocumentType(str, Enum):
    """Identity document codes used by the tax authority."""

    DNI = "1"  # national identity card, 8 digits
    RUC = "6"  # taxpayer registry number, 11 digits


_DOCUMENT_LENGTH = {
    IdentityDocumentType.DNI: 8,
    IdentityDocumentType.RUC: 11,
}


def normalize_document(
    number: Optional[str],
    document_type: Optional[str] = None,
    *,
    field: str = "document_number",
) -> tuple[str, IdentityDocumentType]:
    """
    Validate an identity document number and resolve its type.

    When no type is given it is inferred from the length (8 = DNI, 11 = RUC).

    Raises:
        ValidationError: missing, non-numeric or wrong-length number
    """

    value = (number or "").strip()
    if not value:
        raise ValidationError("Document number is required", fields={field: "required"})
    if not value.isdigit():
        raise ValidationError("Document number must contain only digits", fields={field: "digits only"})

    if document_type is None or document_type == "":
        inferred = next((t for t, n in _DOCUMENT_LENGTH.items() if n == len(value)), None)
        if inferred is None:
            raise ValidationError(
                "Document number must have 8 (DNI) or 11 (RUC) digits",
                fields={field: "invalid length"},
            )
        return value, inferred

    try:
        doc_type = IdentityDocumentType(str(document_type))
    except ValueError:
        raise ValidationError(
            f"Unsupported document type: {document_type}",
            fields={"document_type": "must be 1 (DNI) or 6 (RUC)"},
        )
    if len(value) != _DOCUMENT_LENGTH[doc_type]:
        raise ValidationError(
            f"{doc_type.name} must have {_DOCUMENT_LENGTH[doc_type]} digits",
            fields={field: "invalid length"},
        )
    return value, doc_type


_PHONE_RE = re.compile(r"^\+?\d{6,15}$")


@dataclass(frozen=True, slots=True)
class Customer:
    """Buyer of a ticket or sender of a parcel."""

    national_id: str
    document_type: IdentityDocumentType
    full_name: str
    phone: Optional[str] = None

    @classmethod
    def create(
        cls,
        full_name: Optional[str],
        document_number: Optional[str],
        phone: Optional[str] = None,
        document_type: Optional[str] = None,
        *,
        phone_required: bool = False,
        prefix: str = "",
    ) -> "Customer":
        fields: dict[str, str] = {}
        name = (full_name or "").strip()
        if not name:
            fields[f"{prefix}full_name"] = "required"
        phone_value = (phone or "").strip() or None
        if phone_value is None and phone_required:
            fields[f"{prefix}phone"] = "required"
        elif phone_value is not None and not _PHONE_RE.match(phone_value.replace(" ", "")):
            fields[f"{prefix}phone"] = "invalid phone number"
        if fields:
            raise ValidationError("Invalid customer data", fields=fields)

        number, doc_type = normalize_document(
            document_number, document_type, field=f"{prefix}document_number"
        )
        return cls(national_id=number, document_type=doc_type, full_name=name, phone=phone_value)


@dataclass(frozen=True, slots=True)
class InvoiceCustomer:
    """Business the FACTURA is issued to."""

    ruc: str
    business_name: str
    address: Optional[str] = None

    @classmethod
    def create(
        cls, ruc: Optional[str], business_name: Optional[str], address: Optional[str] = None
    ) -> "InvoiceCustomer":
        number, _ = normalize_document(ruc, IdentityDocumentType.RUC.value, field="invoice_customer.ruc")
        name = (business_name or "").strip()
        if not name:
            raise ValidationError(
                "Business name is required for a FACTURA",
                fields={"invoice_customer.business_name": "required"},
            )
        return cls(ruc=number, business_name=name, address=(address or "").strip() or None)


__all__ = ["IdentityDocumentType", "normalize_document", "Customer", "InvoiceCustomer"]
