import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, TypeVar

from rentals.domain import Rental, RentalStatus, Vehicle
from rentals.repositories.base import RentalFilters, UnitOfWorkFactory, VehicleFilters
from rentals.services.availability_service import AvailabilityResolver
from rentals.services.transaction_service import RentalTransactionOrchestrator
from rentals.utils import events
from rentals.utils.clock import as_utc
from rentals.utils.events import EventPublisher
from rentals.utils.exceptions import (
    AppException, ConcurrencyConflict, InvalidInput, InvalidStateTransition, NotFound, PaymentFailed,
)
from rentals.utils.payments import PaymentGateway

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _serialize(r: Rental) -> dict:
    return {
        "id":           r.id,
        "vehicleId":    r.vehicle_id,
        "userId":       r.user_id,
        "status":       r.status.value,
        "startAt":      r.start_at.isoformat(),
        "endAt":        r.end_at.isoformat(),
        "renewedCount": r.renewed_count,
        "paymentRef":   r.payment_ref,
        "createdAt":    r.created_at.isoformat(),
        "updatedAt":    r.updated_at.isoformat(),
    }


def _serialize_vehicle(v: Vehicle) -> dict:
    return {
        "id":              v.id,
        "plate":           v.plate,
        "model":           v.model,
        "status":          v.status.value,
        "currentRentalId": v.current_rental_id,
    }


def _event_payload(r: Rental, **extra) -> dict:
    payload = {
        "rentalId":  r.id,
        "vehicleId": r.vehicle_id,
        "userId":    r.user_id,
        "status":    r.status.value,
    }
    payload.update(extra)
    return payload


class RentalService:
    """
    Use cases on top of the transaction orchestrator: payment, events,
    bounded retry of concurrency conflicts, and read queries.
    Events go out only after the orchestrator call has committed.
    """

    def __init__(
        self,
        orchestrator:     RentalTransactionOrchestrator,
        resolver:         AvailabilityResolver,
        uow_factory:      UnitOfWorkFactory,
        payments:         PaymentGateway,
        publisher:        EventPublisher,
        conflict_retries: int = 3,
    ):
        self.orchestrator     = orchestrator
        self.resolver         = resolver
        self.uow_factory      = uow_factory
        self.payments         = payments
        self.publisher        = publisher
        self.conflict_retries = max(1, conflict_retries)

    # ─── Commands ─────────────────────────────────────────────────────────────
    def create_rental(
        self, user_id: str, vehicle_id: str, start: datetime, end: datetime,
        payment_amount: Decimal,
    ) -> dict:
        if payment_amount < 0:
            raise InvalidInput("Payment amount cannot be negative", field="paymentAmount")

        rental = self._retry_conflicts(
            "initiate rental",
            lambda: self.orchestrator.initiate_rental(vehicle_id, user_id, start, end),
        )
        # No lock is held here; the vehicle stays reserved while we charge
        rental = self._charge_and_activate(rental, payment_amount)

        self._publish(events.RENTAL_STARTED, _event_payload(
            rental, startAt=rental.start_at.isoformat(), endAt=rental.end_at.isoformat(),
        ))
        return _serialize(rental)

    def retry_payment(self, rental_id: str, payment_amount: Decimal) -> dict:
        """Second chance for a reservation left pending by a failed charge."""
        if payment_amount < 0:
            raise InvalidInput("Payment amount cannot be negative", field="paymentAmount")
        rental = self._load(rental_id)
        if not rental.is_pending():
            raise InvalidStateTransition("pay for", rental.status.value)

        rental = self._charge_and_activate(rental, payment_amount)
        if rental.is_active():
            self._publish(events.RENTAL_ACTIVATED, _event_payload(rental, paymentRef=rental.payment_ref))
        return _serialize(rental)

    def renew_rental(self, rental_id: str, additional_days: int) -> dict:
        rental = self._retry_conflicts(
            "renew rental", lambda: self.orchestrator.renew_rental(rental_id, additional_days),
        )
        self._publish(events.RENTAL_RENEWED, _event_payload(
            rental, endAt=rental.end_at.isoformat(), renewedCount=rental.renewed_count,
        ))
        return _serialize(rental)

    def end_rental(self, rental_id: str) -> dict:
        rental = self._retry_conflicts("end rental", lambda: self.orchestrator.end_rental(rental_id))
        self._publish(events.RENTAL_ENDED, _event_payload(rental))
        return _serialize(rental)

    def return_rental(self, rental_id: str) -> dict:
        result = self._retry_conflicts("return rental", lambda: self.orchestrator.return_rental(rental_id))
        if not result.vehicle_released:
            logger.error(f"[ANOMALY] Rental {rental_id} returned but vehicle "
                         f"{result.rental.vehicle_id} was not found; needs manual reconciliation")
        self._publish(events.RENTAL_RETURNED, _event_payload(
            result.rental, vehicleReleased=result.vehicle_released,
        ))
        data = _serialize(result.rental)
        data["vehicleReleased"] = result.vehicle_released
        return data

    def cancel_rental(self, rental_id: str) -> dict:
        result = self._retry_conflicts("cancel rental", lambda: self.orchestrator.cancel_rental(rental_id))
        if not result.vehicle_released:
            logger.error(f"[ANOMALY] Rental {rental_id} canceled but vehicle "
                         f"{result.rental.vehicle_id} was not found; needs manual reconciliation")
        self._publish(events.RENTAL_CANCELED, _event_payload(
            result.rental, vehicleReleased=result.vehicle_released,
        ))
        data = _serialize(result.rental)
        data["vehicleReleased"] = result.vehicle_released
        return data

    # ─── Queries ──────────────────────────────────────────────────────────────
    def get_rental(self, rental_id: str) -> dict:
        return _serialize(self._load(rental_id))

    def list_rentals(
        self, page: int, limit: int,
        vehicle_id: str | None = None, user_id: str | None = None, status: str | None = None,
        start_date: datetime | None = None, end_date: datetime | None = None,
    ) -> tuple[list[dict], int]:
        try:
            status_filter = RentalStatus(status) if status else None
        except ValueError:
            raise InvalidInput(f"Unknown rental status '{status}'", field="status")

        filters = RentalFilters(
            vehicle_id=vehicle_id,
            user_id=user_id,
            status=status_filter,
            start_from=as_utc(start_date) if start_date else None,
            start_to=as_utc(end_date) if end_date else None,
        )
        with self.uow_factory() as uow:
            items, total = uow.rentals.find_all(filters, page=page, limit=limit)
        return [_serialize(r) for r in items], total

    def check_availability(self, vehicle_id: str, start: datetime, end: datetime) -> dict:
        result = self.resolver.is_vehicle_available(vehicle_id, start, end)
        return {"vehicleId": vehicle_id, "available": result.available, "reason": result.reason}

    def list_available_vehicles(self, model: str | None = None) -> list[dict]:
        vehicles = self.resolver.query_available_vehicles(VehicleFilters(model=model))
        return [_serialize_vehicle(v) for v in vehicles]

    # ─── Helpers ──────────────────────────────────────────────────────────────
    def _load(self, rental_id: str) -> Rental:
        with self.uow_factory() as uow:
            rental = uow.rentals.find_by_id(rental_id)
        if rental is None:
            raise NotFound("Rental")
        return rental

    def _charge_and_activate(self, rental: Rental, amount: Decimal) -> Rental:
        """
        Charge, then activate. A failed charge leaves the rental pending and
        the vehicle held, so the caller can retry payment or cancel.
        """
        try:
            charge = self.payments.create_charge(amount, rental.id)
        except PaymentFailed as e:
            logger.warning(f"Payment failed for rental {rental.id}, keeping it pending: {e.message}")
            return rental

        if not charge.succeeded:
            logger.warning(f"Charge {charge.id} for rental {rental.id} is {charge.status}, keeping it pending")
            return rental

        try:
            return self._retry_conflicts(
                "activate rental", lambda: self.orchestrator.activate_rental(rental.id, charge.id),
            )
        except AppException as e:
            logger.error(f"[ANOMALY] Charge {charge.id} succeeded but rental {rental.id} was not activated "
                         f"({e.message}); refund or reconcile the charge")
            raise

    def _retry_conflicts(self, label: str, operation: Callable[[], T]) -> T:
        for attempt in range(1, self.conflict_retries + 1):
            try:
                return operation()
            except ConcurrencyConflict as e:
                if attempt == self.conflict_retries:
                    logger.warning(f"Giving up on {label} after {attempt} conflicting attempts")
                    raise
                logger.warning(f"Conflict on {label} (attempt {attempt}/{self.conflict_retries}): {e.message}")

    def _publish(self, event_name: str, payload: dict) -> None:
        try:
            self.publisher.publish(event_name, payload)
        except Exception as e:
            # The rental change is already committed; a lost event is an ops issue
            logger.error(f"Error publishing {event_name} for rental {payload.get('rentalId')}: {e}",
                         exc_info=True)
