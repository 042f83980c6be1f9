"""
Pytest configuration.

Adds the project root to the Python path so tests can import domain,
repositories, services, invoicing and api, and provides the shared fixtures:
an in-memory database seeded with master data, the fake invoice gateway and
a proof store writing to a temporary directory.
"""

import base64
import sys
from pathlib import Path

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.actor import Actor  # noqa: E402
from invoicing import reset_gateway, set_gateway  # noqa: E402
from invoicing.fake_adapter import FakeInvoiceGateway  # noqa: E402
from repositories.client import reset_client, set_client  # noqa: E402
from services.proof_storage import ProofStore, reset_proof_store, set_proof_store  # noqa: E402
from tests.fakes import FakeTransitDatabase, seed_counters  # noqa: E402

ORIGIN_ID = "11111111-1111-1111-1111-111111111111"
DESTINATION_ID = "22222222-2222-2222-2222-222222222222"
OTHER_LOCATION_ID = "33333333-3333-3333-3333-333333333333"
ROUTE_ID = "44444444-4444-4444-4444-444444444444"
SCHEDULE_ID = "55555555-5555-5555-5555-555555555555"
BASE_PRICE_ID = "66666666-6666-6666-6666-666666666666"

# Smallest valid JPEG header plus padding; only the signature is inspected.
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 60
JPEG_BASE64 = base64.b64encode(JPEG_BYTES).decode()


@pytest.fixture
def db():
    database = FakeTransitDatabase(
        {
            "locations": [
                {"id": ORIGIN_ID, "name": "Juliaca", "ubigeo": "211101", "address": "Jr. Mariano Nunez 210"},
                {"id": DESTINATION_ID, "name": "Puno", "ubigeo": "210101", "address": "Av. El Sol 415"},
                {"id": OTHER_LOCATION_ID, "name": "Arequipa", "ubigeo": "040101", "address": "Av. Ejercito 710"},
            ],
            "routes": [
                {
                    "id": ROUTE_ID,
                    "origin_location_id": ORIGIN_ID,
                    "destination_location_id": DESTINATION_ID,
                    "price": "100.00",
                    "active": True,
                }
            ],
            "schedules": [
                {"id": SCHEDULE_ID, "route_id": ROUTE_ID, "departure_time": "23:30:00", "capacity": 2, "enabled": True}
            ],
            "parcel_base_prices": [{"id": BASE_PRICE_ID, "amount": "10.00", "active": True}],
            "parcel_tariffs": [{"id": "t1", "price_per_kg": "2.00", "price_per_cm3": "0.001", "active": True}],
            "system_settings": [
                {"id": "s1", "active": True, "soles_per_point": "10", "points_per_sol_discount": "10"}
            ],
        }
    )
    seed_counters(database)
    set_client(database)
    yield database
    reset_client()


@pytest.fixture
def gateway():
    fake = FakeInvoiceGateway()
    set_gateway(fake)
    yield fake
    reset_gateway()


@pytest.fixture
def proof_store(tmp_path):
    store = ProofStore(tmp_path / "proofs", max_bytes=1024)
    set_proof_store(store)
    yield store
    reset_proof_store()


@pytest.fixture
def origin_actor() -> Actor:
    return Actor(user_id="clerk-origin", location_id=ORIGIN_ID)


@pytest.fixture
def destination_actor() -> Actor:
    return Actor(user_id="clerk-destination", location_id=DESTINATION_ID)


@pytest.fixture
def admin_actor() -> Actor:
    return Actor(user_id="admin", location_id=None, can_override_price=True)
