"""Invoice gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- FakeInvoiceGateway for development and testing (INVOICE_GATEWAY=fake, default)
- KeyfacilGateway for production (INVOICE_GATEWAY=keyfacil)
"""

import os
from pathlib import Path

from dotenv import load_dotenv

from domain.errors import ConfigurationError
from invoicing.fake_adapter import FakeInvoiceGateway
from invoicing.keyfacil_adapter import DEFAULT_BASE_URL, KeyfacilGateway
from invoicing.port import InvoiceGateway

load_dotenv(dotenv_path=Path(__file__).parent.parent / ".env")

_current_gateway: InvoiceGateway | None = None


def _gateway_from_env() -> InvoiceGateway:
    kind = os.getenv("INVOICE_GATEWAY", "fake").strip().lower()
    if kind == "fake":
        return FakeInvoiceGateway()
    if kind == "keyfacil":
        token = os.getenv("KEYFACIL_TOKEN")
        if not token:
            raise ConfigurationError(
                "Missing environment variable: KEYFACIL_TOKEN. "
                "Set KEYFACIL_TOKEN or use INVOICE_GATEWAY=fake."
            )
        return KeyfacilGateway(
            token=token,
            base_url=os.getenv("KEYFACIL_BASE_URL", DEFAULT_BASE_URL),
            timeout_seconds=float(os.getenv("KEYFACIL_TIMEOUT_SECONDS", "15")),
        )
    raise ConfigurationError(f"Unknown INVOICE_GATEWAY: {kind!r} (expected 'fake' or 'keyfacil')")


def get_gateway() -> InvoiceGateway:
    """Return the current invoice gateway, built from the environment on first use."""
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = _gateway_from_env()
    return _current_gateway


def set_gateway(gateway: InvoiceGateway) -> None:
    """Override the active invoice gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to the environment-configured gateway."""
    global _current_gateway
    _current_gateway = None
