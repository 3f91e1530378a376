from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from rentals.dependencies import get_current_user_id, get_rental_service
from rentals.schemas.common import ERROR_RESPONSES, SuccessResponse, success_response
from rentals.services.rental_service import RentalService

router = APIRouter(prefix="/vehicles", responses=ERROR_RESPONSES)


@router.get(
    "/available",
    summary="List vehicles free to reserve",
    response_model=SuccessResponse,
)
def list_available_vehicles(
    model:   Optional[str] = Query(None, description="Case-insensitive model filter"),
    service: RentalService = Depends(get_rental_service),
    user_id: str           = Depends(get_current_user_id),
):
    return success_response("Available vehicles retrieved", service.list_available_vehicles(model))


@router.get(
    "/{vehicle_id}/availability",
    summary="Check a vehicle for a rental window",
    response_model=SuccessResponse,
)
def check_availability(
    vehicle_id: str,
    startAt:    datetime      = Query(...),
    endAt:      datetime      = Query(...),
    service:    RentalService = Depends(get_rental_service),
    user_id:    str           = Depends(get_current_user_id),
):
    return success_response("Availability checked", service.check_availability(vehicle_id, startAt, endAt))
