"""
Rental transaction orchestrator.

The only component that writes Vehicle and Rental records. Every operation
runs in one unit of work, so a failure at any step leaves both records at
their last committed state.

Serialization:
- initiate_rental holds the vehicle lock across availability check, rental
  insert and vehicle update.
- activate/renew/end/return/cancel hold the rental lock; renew, return and
  cancel also take the vehicle lock (always rental first, then vehicle).
- With vehicle_locks/rental_locks set to None (store-backed atomicity) the
  same sequences rely on row locks and version checks in the store; a lost
  race surfaces as ConcurrencyConflict.
"""

import logging
from contextlib import nullcontext
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import uuid4

from rentals.domain import Rental, RentalStatus, Vehicle, VehicleStatus
from rentals.repositories.base import AbstractUnitOfWork, UnitOfWorkFactory
from rentals.services.availability_service import AvailabilityResolver, REASON_OVERLAPPING
from rentals.utils.clock import Clock, as_utc, utc_now
from rentals.utils.exceptions import (
    AppException, InvalidInput, InvalidStateTransition, NotFound, VehicleUnavailable,
)
from rentals.utils.locks import KeyedLock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReleaseResult:
    """
    Outcome of an operation that gives a vehicle back.
    vehicle_released is False when the vehicle record was missing: the rental
    update still stands, and the caller must escalate the inconsistency.
    """
    rental:           Rental
    vehicle_released: bool


class RentalTransactionOrchestrator:

    def __init__(
        self,
        uow_factory:   UnitOfWorkFactory,
        resolver:      AvailabilityResolver | None = None,
        clock:         Clock = utc_now,
        vehicle_locks: KeyedLock | None = None,
        rental_locks:  KeyedLock | None = None,
        lock_timeout:  float | None = None,
    ):
        self._uow_factory   = uow_factory
        self._resolver      = resolver or AvailabilityResolver(uow_factory)
        self._clock         = clock
        self._vehicle_locks = vehicle_locks
        self._rental_locks  = rental_locks
        self._lock_timeout  = lock_timeout

    # ─── Reserve ──────────────────────────────────────────────────────────────
    def initiate_rental(
        self, vehicle_id: str, user_id: str, start: datetime, end: datetime,
        timeout: float | None = None,
    ) -> Rental:
        now = self._clock()
        start, end = as_utc(start), as_utc(end)
        if not user_id:
            raise InvalidInput("User id is required", field="userId")
        if start <= now:
            raise InvalidInput("Start time must be in the future", field="startAt")
        if end <= start:
            raise InvalidInput("End time must be after start time", field="endAt")

        with self._hold(self._vehicle_locks, vehicle_id, timeout):
            with self._uow_factory() as uow:
                # This vehicle object carries the version the check saw into the update
                vehicle = uow.vehicles.find_by_id(vehicle_id, lock=True)
                availability = self._resolver.check_vehicle(uow, vehicle_id, vehicle, start, end)
                if not availability.available:
                    logger.info(f"Reservation refused for vehicle {vehicle_id}: {availability.reason}")
                    raise VehicleUnavailable(availability.reason)

                rental = uow.rentals.create(Rental(
                    id=str(uuid4()),
                    vehicle_id=vehicle_id,
                    user_id=user_id,
                    start_at=start,
                    end_at=end,
                    status=RentalStatus.PENDING,
                    created_at=now,
                    updated_at=now,
                ))
                self._sync_vehicle_hold(uow, vehicle)

        logger.info(f"Rental {rental.id} reserved vehicle {vehicle_id} for user {user_id}")
        return rental

    # ─── Activate ─────────────────────────────────────────────────────────────
    def activate_rental(self, rental_id: str, payment_ref: str, timeout: float | None = None) -> Rental:
        if not payment_ref:
            raise InvalidInput("Payment reference is required", field="paymentRef")

        with self._hold(self._rental_locks, rental_id, timeout):
            with self._uow_factory() as uow:
                rental = self._load(uow, rental_id)
                self._apply(rental.activate(payment_ref, at=self._clock()))
                rental = uow.rentals.update(rental.id, rental)

        logger.info(f"Rental {rental_id} activated (payment {payment_ref})")
        return rental

    # ─── Renew ────────────────────────────────────────────────────────────────
    def renew_rental(self, rental_id: str, additional_days: int, timeout: float | None = None) -> Rental:
        with self._hold(self._rental_locks, rental_id, timeout):
            vehicle_id = self._vehicle_of(rental_id)
            if isinstance(additional_days, bool) or not isinstance(additional_days, int) \
                    or additional_days <= 0:
                raise InvalidInput("Additional days must be a positive integer", field="additionalDays")

            with self._hold(self._vehicle_locks, vehicle_id, timeout):
                with self._uow_factory() as uow:
                    rental = self._load(uow, rental_id)
                    if not rental.can_be_renewed():
                        raise InvalidStateTransition("renew", rental.status.value)

                    try:
                        new_end = rental.end_at + timedelta(days=additional_days)
                    except OverflowError:
                        raise InvalidInput("Additional days is out of range", field="additionalDays")

                    # Read before the overlap search; its version guards the extension
                    vehicle = uow.vehicles.find_by_id(vehicle_id, lock=True)
                    clashes = [
                        r for r in uow.rentals.find_overlapping(vehicle_id, rental.end_at, new_end)
                        if r.id != rental.id
                    ]
                    if clashes:
                        logger.info(f"Renewal of {rental_id} refused, extension collides with "
                                    f"{[r.id for r in clashes]}")
                        raise VehicleUnavailable(REASON_OVERLAPPING)

                    self._apply(rental.renew(new_end, at=self._clock()))
                    rental = uow.rentals.update(rental.id, rental)
                    if vehicle is not None:
                        uow.vehicles.update(vehicle.id, vehicle)

        logger.info(f"Rental {rental_id} renewed until {rental.end_at.isoformat()} "
                    f"(renewal #{rental.renewed_count})")
        return rental

    # ─── End ──────────────────────────────────────────────────────────────────
    def end_rental(self, rental_id: str, timeout: float | None = None) -> Rental:
        # Vehicle stays held until the rental is returned
        with self._hold(self._rental_locks, rental_id, timeout):
            with self._uow_factory() as uow:
                rental = self._load(uow, rental_id)
                self._apply(rental.end(at=self._clock()))
                rental = uow.rentals.update(rental.id, rental)

        logger.info(f"Rental {rental_id} ended")
        return rental

    # ─── Return / Cancel ──────────────────────────────────────────────────────
    def return_rental(self, rental_id: str, timeout: float | None = None) -> ReleaseResult:
        return self._release(rental_id, "return", lambda r, at: r.mark_as_returned(at=at), timeout)

    def cancel_rental(self, rental_id: str, timeout: float | None = None) -> ReleaseResult:
        """
        Cancel any rental that is not active. Compensation path for a
        reservation whose payment never went through.
        """
        return self._release(rental_id, "cancel", lambda r, at: r.cancel(at=at), timeout)

    def _release(self, rental_id, action, transition, timeout) -> ReleaseResult:
        with self._hold(self._rental_locks, rental_id, timeout):
            vehicle_id = self._vehicle_of(rental_id)
            with self._hold(self._vehicle_locks, vehicle_id, timeout):
                with self._uow_factory() as uow:
                    rental = self._load(uow, rental_id)
                    already_released = rental.is_terminal()
                    self._apply(transition(rental, self._clock()))
                    rental = uow.rentals.update(rental.id, rental)
                    if already_released:
                        vehicle = None
                    else:
                        vehicle = uow.vehicles.find_by_id(vehicle_id, lock=True)
                        if vehicle is not None:
                            vehicle = self._sync_vehicle_hold(uow, vehicle, released_rental_id=rental.id)

        if already_released:
            # A terminal rental gave its vehicle back when it got there
            logger.info(f"Rental {rental_id} {rental.status.value}; vehicle was already released")
            return ReleaseResult(rental, vehicle_released=True)

        if vehicle is None:
            logger.error(
                f"Data inconsistency: vehicle {vehicle_id} missing while trying to {action} "
                f"rental {rental_id}; rental is {rental.status.value} but no vehicle was released"
            )
            return ReleaseResult(rental, vehicle_released=False)

        logger.info(f"Rental {rental_id} {rental.status.value}; vehicle {vehicle_id} is {vehicle.status.value}")
        return ReleaseResult(rental, vehicle_released=True)

    # ─── Helpers ──────────────────────────────────────────────────────────────
    def _hold(self, locks: KeyedLock | None, key: str, timeout: float | None):
        if locks is None:
            return nullcontext()
        return locks.hold(key, timeout if timeout is not None else self._lock_timeout)

    def _vehicle_of(self, rental_id: str) -> str:
        # A rental never changes vehicle, so this can be read ahead of the vehicle lock
        with self._uow_factory() as uow:
            return self._load(uow, rental_id, lock=False).vehicle_id

    @staticmethod
    def _load(uow: AbstractUnitOfWork, rental_id: str, lock: bool = True) -> Rental:
        rental = uow.rentals.find_by_id(rental_id, lock=lock)
        if rental is None:
            raise NotFound("Rental")
        return rental

    @staticmethod
    def _apply(error: AppException | None) -> None:
        if error is not None:
            raise error

    @staticmethod
    def _sync_vehicle_hold(
        uow: AbstractUnitOfWork, vehicle: Vehicle, released_rental_id: str | None = None,
    ) -> Vehicle:
        """
        Point the vehicle at the rental that holds it and write it back.

        The update always goes out, from the object the caller read, so a
        concurrent writer on the same vehicle fails the version check.
        The current reference is kept while it names a non-terminal rental
        other than the one being released. Otherwise the vehicle moves to the
        earliest pending/active rental, or becomes available when none is
        left. Vehicles under maintenance keep their status.
        """
        if vehicle.status == VehicleStatus.MAINTENANCE:
            logger.info(f"Vehicle {vehicle.id} is under maintenance, leaving its status as is")
            return uow.vehicles.update(vehicle.id, vehicle)

        current = vehicle.current_rental_id
        if vehicle.status == VehicleStatus.RENTED and current and current != released_rental_id:
            held = uow.rentals.find_by_id(current)
            if held is not None and not held.is_terminal():
                return uow.vehicles.update(vehicle.id, vehicle)

        live = uow.rentals.find_active_or_pending_by_vehicle(vehicle.id)
        if live:
            vehicle.mark_as_rented(live[0].id)
        else:
            vehicle.mark_as_available()
        return uow.vehicles.update(vehicle.id, vehicle)
