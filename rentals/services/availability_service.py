import logging
from dataclasses import dataclass
from datetime import datetime

from rentals.domain import Vehicle
from rentals.repositories.base import AbstractUnitOfWork, UnitOfWorkFactory, VehicleFilters
from rentals.utils.clock import as_utc
from rentals.utils.exceptions import InvalidInput

logger = logging.getLogger(__name__)

REASON_NOT_FOUND             = "not found"
REASON_VEHICLE_NOT_AVAILABLE = "vehicle not available"
REASON_OVERLAPPING           = "overlapping rental periods"


@dataclass(frozen=True)
class Availability:
    available: bool
    reason:    str | None = None


AVAILABLE = Availability(True)


class AvailabilityResolver:
    """
    Read-only answers to "can this vehicle be booked for [start, end)?".

    check_window() runs inside a caller-supplied unit of work so the
    transaction orchestrator can evaluate the window and write the
    reservation in the same atomic unit.
    """

    def __init__(self, uow_factory: UnitOfWorkFactory):
        self._uow_factory = uow_factory

    def is_vehicle_available(self, vehicle_id: str, start: datetime, end: datetime) -> Availability:
        with self._uow_factory() as uow:
            return self.check_window(uow, vehicle_id, start, end)

    def check_window(
        self,
        uow: AbstractUnitOfWork,
        vehicle_id: str,
        start: datetime,
        end: datetime,
        exclude_rental_id: str | None = None,
    ) -> Availability:
        vehicle = uow.vehicles.find_by_id(vehicle_id)
        return self.check_vehicle(uow, vehicle_id, vehicle, start, end, exclude_rental_id)

    def check_vehicle(
        self,
        uow: AbstractUnitOfWork,
        vehicle_id: str,
        vehicle: Vehicle | None,
        start: datetime,
        end: datetime,
        exclude_rental_id: str | None = None,
    ) -> Availability:
        """
        Window check against a vehicle the caller already loaded. Writers pass
        the same object on to their update so the store compares against the
        version this answer was based on.
        """
        start, end = as_utc(start), as_utc(end)
        if end <= start:
            raise InvalidInput("End time must be after start time", field="endAt")

        if vehicle is None:
            return Availability(False, REASON_NOT_FOUND)

        if not vehicle.is_reservable():
            return Availability(False, REASON_VEHICLE_NOT_AVAILABLE)

        overlapping = [
            r for r in uow.rentals.find_overlapping(vehicle_id, start, end)
            if r.id != exclude_rental_id
        ]
        if overlapping:
            logger.debug(
                f"Vehicle {vehicle_id} window {start.isoformat()}..{end.isoformat()} "
                f"collides with {[r.id for r in overlapping]}"
            )
            return Availability(False, REASON_OVERLAPPING)

        return AVAILABLE

    def query_available_vehicles(self, filters: VehicleFilters | None = None) -> list[Vehicle]:
        """Vehicles flagged AVAILABLE that also hold no pending/active rental."""
        with self._uow_factory() as uow:
            candidates = uow.vehicles.find_available(filters or VehicleFilters())
            result = []
            for vehicle in candidates:
                if uow.rentals.find_active_or_pending_by_vehicle(vehicle.id):
                    logger.warning(f"Vehicle {vehicle.id} is flagged available but holds a live rental")
                    continue
                result.append(vehicle)
            return result
