"""
Process-local store.

Used by the test-suite and by single-node deployments with
STORE_BACKEND=memory. Writes are staged per unit of work and applied under
one store-wide lock at commit, after every staged write passed its version
check, so a unit of work lands completely or not at all.
"""

import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from rentals.domain import LIVE_STATUSES, Rental, Vehicle, VehicleStatus
from rentals.repositories.base import (
    AbstractUnitOfWork,
    RentalFilters,
    RentalStore,
    VehicleFilters,
    VehicleStore,
)
from rentals.utils.exceptions import ConcurrencyConflict, DuplicateEntryException

logger = logging.getLogger(__name__)

# Staged write: (entity, version expected in the committed store; None = insert)
_Staged = Tuple[object, Optional[int]]


class InMemoryStore:

    def __init__(self):
        self._vehicles: Dict[str, Vehicle] = {}
        self._rentals:  Dict[str, Rental]  = {}
        self._lock = threading.RLock()

    def unit_of_work(self) -> "InMemoryUnitOfWork":
        return InMemoryUnitOfWork(self)

    def add_vehicle(self, vehicle: Vehicle) -> Vehicle:
        """Seed helper for fleet data, which this service does not own."""
        with self.unit_of_work() as uow:
            created = uow.vehicles.create(vehicle)
        return created


class InMemoryUnitOfWork(AbstractUnitOfWork):

    def __init__(self, store: InMemoryStore):
        self._store = store
        self._staged_vehicles: Dict[str, _Staged] = {}
        self._staged_rentals:  Dict[str, _Staged] = {}
        self.vehicles = InMemoryVehicleRepository(self)
        self.rentals  = InMemoryRentalRepository(self)

    # ─── Views (committed state overlaid with this unit's staged writes) ─────
    def _vehicle_view(self) -> Dict[str, Vehicle]:
        with self._store._lock:
            view = dict(self._store._vehicles)
        view.update({k: v for k, (v, _) in self._staged_vehicles.items()})
        return view

    def _rental_view(self) -> Dict[str, Rental]:
        with self._store._lock:
            view = dict(self._store._rentals)
        view.update({k: r for k, (r, _) in self._staged_rentals.items()})
        return view

    # ─── Staging ──────────────────────────────────────────────────────────────
    @staticmethod
    def _stage_insert(staged: Dict[str, _Staged], view: dict, key: str, entity, kind: str):
        if key in view:
            raise DuplicateEntryException(f"{kind} {key} already exists", field="id")
        staged[key] = (replace(entity), None)
        return replace(entity)

    @staticmethod
    def _stage_update(staged: Dict[str, _Staged], view: dict, key: str, entity, kind: str):
        current = view.get(key)
        if current is None or current.version != entity.version:
            raise ConcurrencyConflict(f"{kind} {key} was modified concurrently")
        expected = staged[key][1] if key in staged else current.version
        bumped = replace(entity, version=entity.version + 1)
        staged[key] = (bumped, expected)
        return replace(bumped)

    # ─── Commit / Rollback ────────────────────────────────────────────────────
    def commit(self):
        store = self._store
        try:
            with store._lock:
                self._check(store._vehicles, self._staged_vehicles, "Vehicle")
                self._check(store._rentals, self._staged_rentals, "Rental")
                for key, (vehicle, _) in self._staged_vehicles.items():
                    store._vehicles[key] = vehicle
                for key, (rental, _) in self._staged_rentals.items():
                    store._rentals[key] = rental
        finally:
            self._clear()

    def rollback(self):
        if self._staged_vehicles or self._staged_rentals:
            logger.debug(
                f"Discarding {len(self._staged_vehicles)} vehicle and "
                f"{len(self._staged_rentals)} rental staged writes"
            )
        self._clear()

    @staticmethod
    def _check(committed: dict, staged: Dict[str, _Staged], kind: str):
        for key, (_, expected) in staged.items():
            current = committed.get(key)
            if expected is None:
                if current is not None:
                    raise ConcurrencyConflict(f"{kind} {key} was created concurrently")
            elif current is None or current.version != expected:
                raise ConcurrencyConflict(f"{kind} {key} was modified concurrently")

    def _clear(self):
        self._staged_vehicles.clear()
        self._staged_rentals.clear()


class InMemoryVehicleRepository(VehicleStore):

    def __init__(self, uow: InMemoryUnitOfWork):
        self._uow = uow

    def create(self, vehicle: Vehicle) -> Vehicle:
        view = self._uow._vehicle_view()
        if any(v.plate == vehicle.plate for v in view.values()):
            raise DuplicateEntryException("Plate number already registered", field="plate")
        return self._uow._stage_insert(self._uow._staged_vehicles, view, vehicle.id, vehicle, "Vehicle")

    def find_by_id(self, vehicle_id: str, lock: bool = False) -> Optional[Vehicle]:
        # lock is a no-op here: commit-time version checks cover this store
        v = self._uow._vehicle_view().get(vehicle_id)
        return replace(v) if v else None

    def find_by_plate(self, plate: str) -> Optional[Vehicle]:
        for v in self._uow._vehicle_view().values():
            if v.plate == plate:
                return replace(v)
        return None

    def update(self, vehicle_id: str, vehicle: Vehicle) -> Vehicle:
        return self._uow._stage_update(
            self._uow._staged_vehicles, self._uow._vehicle_view(), vehicle_id, vehicle, "Vehicle",
        )

    def find_available(self, filters: VehicleFilters) -> List[Vehicle]:
        kw = filters.model.lower() if filters.model else None
        items = [
            v for v in self._uow._vehicle_view().values()
            if v.status == VehicleStatus.AVAILABLE
            and (kw is None or kw in v.model.lower())
        ]
        return [replace(v) for v in sorted(items, key=lambda v: v.plate)]


class InMemoryRentalRepository(RentalStore):

    def __init__(self, uow: InMemoryUnitOfWork):
        self._uow = uow

    def create(self, rental: Rental) -> Rental:
        return self._uow._stage_insert(
            self._uow._staged_rentals, self._uow._rental_view(), rental.id, rental, "Rental",
        )

    def find_by_id(self, rental_id: str, lock: bool = False) -> Optional[Rental]:
        r = self._uow._rental_view().get(rental_id)
        return replace(r) if r else None

    def update(self, rental_id: str, rental: Rental) -> Rental:
        return self._uow._stage_update(
            self._uow._staged_rentals, self._uow._rental_view(), rental_id, rental, "Rental",
        )

    def find_active_or_pending_by_vehicle(self, vehicle_id: str) -> List[Rental]:
        items = [
            r for r in self._uow._rental_view().values()
            if r.vehicle_id == vehicle_id and r.status in LIVE_STATUSES
        ]
        return [replace(r) for r in sorted(items, key=lambda r: r.start_at)]

    def find_overlapping(self, vehicle_id: str, start: datetime, end: datetime) -> List[Rental]:
        return [r for r in self.find_active_or_pending_by_vehicle(vehicle_id) if r.overlaps(start, end)]

    def find_all(
        self, filters: RentalFilters, page: int = 1, limit: int = 20,
    ) -> Tuple[List[Rental], int]:
        items = list(self._uow._rental_view().values())

        if filters.vehicle_id:     items = [r for r in items if r.vehicle_id == filters.vehicle_id]
        if filters.user_id:        items = [r for r in items if r.user_id == filters.user_id]
        if filters.status:         items = [r for r in items if r.status == filters.status]
        if filters.start_from:     items = [r for r in items if r.start_at >= filters.start_from]
        if filters.start_to:       items = [r for r in items if r.start_at <= filters.start_to]

        items.sort(key=lambda r: r.created_at, reverse=True)
        offset = (page - 1) * limit
        return [replace(r) for r in items[offset:offset + limit]], len(items)
