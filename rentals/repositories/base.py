"""
Store contract

The orchestrator and the availability resolver only talk to these
interfaces. Concrete stores (in-memory, SQLAlchemy) implement them.

Write semantics shared by every implementation:
- update() is a compare-and-set on the entity's version. If the stored
  version differs from entity.version the write is rejected with
  ConcurrencyConflict. A successful update returns a copy carrying the
  bumped version.
- Nothing is visible to other units of work before commit(); an exception
  inside the `with` block rolls every staged write back.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from rentals.domain import Rental, RentalStatus, Vehicle


@dataclass
class RentalFilters:
    vehicle_id:     Optional[str]          = None
    user_id:        Optional[str]          = None
    status:         Optional[RentalStatus] = None
    start_from:     Optional[datetime]     = None   # start_at >= start_from
    start_to:       Optional[datetime]     = None   # start_at <= start_to


@dataclass
class VehicleFilters:
    model: Optional[str] = None   # case-insensitive substring


class RentalStore(ABC):

    @abstractmethod
    def create(self, rental: Rental) -> Rental:
        pass

    @abstractmethod
    def find_by_id(self, rental_id: str, lock: bool = False) -> Optional[Rental]:
        """lock=True asks the store to hold the record until commit, where supported."""
        pass

    @abstractmethod
    def update(self, rental_id: str, rental: Rental) -> Rental:
        pass

    @abstractmethod
    def find_active_or_pending_by_vehicle(self, vehicle_id: str) -> List[Rental]:
        """Pending/active rentals on the vehicle, earliest start first."""
        pass

    @abstractmethod
    def find_overlapping(self, vehicle_id: str, start: datetime, end: datetime) -> List[Rental]:
        """Pending/active rentals whose [start_at, end_at) overlaps [start, end)."""
        pass

    @abstractmethod
    def find_all(
        self, filters: RentalFilters, page: int = 1, limit: int = 20,
    ) -> Tuple[List[Rental], int]:
        """Newest first. Returns (page items, total matching)."""
        pass


class VehicleStore(ABC):

    @abstractmethod
    def create(self, vehicle: Vehicle) -> Vehicle:
        pass

    @abstractmethod
    def find_by_id(self, vehicle_id: str, lock: bool = False) -> Optional[Vehicle]:
        pass

    @abstractmethod
    def find_by_plate(self, plate: str) -> Optional[Vehicle]:
        pass

    @abstractmethod
    def update(self, vehicle_id: str, vehicle: Vehicle) -> Vehicle:
        pass

    @abstractmethod
    def find_available(self, filters: VehicleFilters) -> List[Vehicle]:
        """Vehicles whose status is AVAILABLE, narrowed by filters."""
        pass


class AbstractUnitOfWork(ABC):
    """
    One atomic unit over both stores.

    Usage:
        with uow_factory() as uow:
            vehicle = uow.vehicles.find_by_id(vehicle_id, lock=True)
            ...
            uow.rentals.create(rental)
            uow.vehicles.update(vehicle.id, vehicle)
        # committed here, or rolled back if the block raised
    """

    rentals:  RentalStore
    vehicles: VehicleStore

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.commit()
        else:
            self.rollback()

    @abstractmethod
    def commit(self):
        pass

    @abstractmethod
    def rollback(self):
        pass


UnitOfWorkFactory = Callable[[], AbstractUnitOfWork]
