"""
Public Tracking Endpoint.

No actor identity required; returns a reduced view of the shipment.
"""

from fastapi import APIRouter

from api.models import TrackingResponse
from services import shipment_service

router = APIRouter()


@router.get(
    "/tracking/{code}",
    response_model=TrackingResponse,
    summary="Track Shipment",
    description="Public status and history of a shipment by its ENC code."
)
def track_shipment(code: str):
    """
    Returns status, origin, destination and the status history.

    Personal data, actor ids, proof paths and the security code are never
    included.
    """
    return TrackingResponse.from_domain(shipment_service.track(code))
