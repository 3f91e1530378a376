from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from rentals.dependencies import get_current_user_id, get_rental_service
from rentals.schemas.common import (
    ERROR_RESPONSES, PaginatedResponse, SuccessResponse, success_response, paginated_response,
)
from rentals.schemas.rental import PaymentRequest, RenewRequest, RentalCreateRequest
from rentals.services.rental_service import RentalService

router = APIRouter(prefix="/rentals", responses=ERROR_RESPONSES)


@router.get(
    "",
    summary="List rentals",
    response_model=PaginatedResponse,
)
def list_rentals(
    page:      int                = Query(1, ge=1),
    limit:     int                = Query(20, ge=1, le=100),
    status:    Optional[str]      = Query(None, description="pending | active | ended | canceled | returned"),
    vehicleId: Optional[str]      = Query(None),
    userId:    Optional[str]      = Query(None),
    startDate: Optional[datetime] = Query(None, description="Rentals starting at or after"),
    endDate:   Optional[datetime] = Query(None, description="Rentals starting at or before"),
    service:   RentalService      = Depends(get_rental_service),
    user_id:   str                = Depends(get_current_user_id),
):
    data, total = service.list_rentals(
        page, limit,
        vehicle_id=vehicleId, user_id=userId, status=status,
        start_date=startDate, end_date=endDate,
    )
    return paginated_response("Rentals retrieved successfully", data, total, page, limit)


@router.get(
    "/{rental_id}",
    summary="Get rental detail",
    response_model=SuccessResponse,
)
def get_rental(
    rental_id: str,
    service:   RentalService = Depends(get_rental_service),
    user_id:   str           = Depends(get_current_user_id),
):
    return success_response("Rental retrieved", service.get_rental(rental_id))


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Reserve a vehicle and pay",
    response_model=SuccessResponse,
)
def create_rental(
    body:    RentalCreateRequest,
    service: RentalService = Depends(get_rental_service),
    user_id: str           = Depends(get_current_user_id),
):
    data = service.create_rental(user_id, body.vehicleId, body.startAt, body.endAt, body.paymentAmount)
    message = "Rental created successfully" if data["status"] == "active" \
        else "Rental reserved, payment pending"
    return success_response(message, data)


@router.post(
    "/{rental_id}/payment",
    summary="Retry payment for a pending rental",
    response_model=SuccessResponse,
)
def retry_payment(
    rental_id: str,
    body:      PaymentRequest,
    service:   RentalService = Depends(get_rental_service),
    user_id:   str           = Depends(get_current_user_id),
):
    data = service.retry_payment(rental_id, body.paymentAmount)
    message = "Rental activated" if data["status"] == "active" else "Payment still pending"
    return success_response(message, data)


@router.patch(
    "/{rental_id}/renew",
    summary="Extend an active rental",
    response_model=SuccessResponse,
)
def renew_rental(
    rental_id: str,
    body:      RenewRequest,
    service:   RentalService = Depends(get_rental_service),
    user_id:   str           = Depends(get_current_user_id),
):
    return success_response("Rental renewed", service.renew_rental(rental_id, body.additionalDays))


@router.patch(
    "/{rental_id}/end",
    summary="End an active rental",
    response_model=SuccessResponse,
)
def end_rental(
    rental_id: str,
    service:   RentalService = Depends(get_rental_service),
    user_id:   str           = Depends(get_current_user_id),
):
    return success_response("Rental ended", service.end_rental(rental_id))


@router.patch(
    "/{rental_id}/return",
    summary="Return the vehicle of an ended rental",
    response_model=SuccessResponse,
)
def return_rental(
    rental_id: str,
    service:   RentalService = Depends(get_rental_service),
    user_id:   str           = Depends(get_current_user_id),
):
    return success_response("Rental returned", service.return_rental(rental_id))


@router.patch(
    "/{rental_id}/cancel",
    summary="Cancel a rental that is not active",
    response_model=SuccessResponse,
)
def cancel_rental(
    rental_id: str,
    service:   RentalService = Depends(get_rental_service),
    user_id:   str           = Depends(get_current_user_id),
):
    return success_response("Rental canceled", service.cancel_rental(rental_id))
