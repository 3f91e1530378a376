"""
SQLAlchemy store.

Row locks (SELECT ... FOR UPDATE) are taken when callers pass lock=True;
dialects without row locking (SQLite) ignore them and rely on the version
check in update(). Timestamps are written as UTC and read back as aware UTC
datetimes regardless of what the driver returns.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, sessionmaker

from rentals.domain import LIVE_STATUSES, Rental, Vehicle, VehicleStatus
from rentals.models.rental import RentalRecord
from rentals.models.vehicle import VehicleRecord
from rentals.repositories.base import (
    AbstractUnitOfWork,
    RentalFilters,
    RentalStore,
    VehicleFilters,
    VehicleStore,
)
from rentals.utils.clock import as_utc
from rentals.utils.exceptions import ConcurrencyConflict

logger = logging.getLogger(__name__)


# ─── Mapping ──────────────────────────────────────────────────────────────────
def _vehicle_to_entity(rec: VehicleRecord) -> Vehicle:
    return Vehicle(
        id=rec.id,
        plate=rec.plate,
        model=rec.model,
        status=rec.status,
        current_rental_id=rec.currentRentalId,
        version=rec.version,
    )


def _rental_to_entity(rec: RentalRecord) -> Rental:
    return Rental(
        id=rec.id,
        vehicle_id=rec.vehicleId,
        user_id=rec.userId,
        status=rec.status,
        start_at=as_utc(rec.startAt),
        end_at=as_utc(rec.endAt),
        renewed_count=rec.renewedCount,
        payment_ref=rec.paymentRef,
        created_at=as_utc(rec.createdAt),
        updated_at=as_utc(rec.updatedAt),
        version=rec.version,
    )


def _rental_values(r: Rental) -> dict:
    return {
        "vehicleId":    r.vehicle_id,
        "userId":       r.user_id,
        "status":       r.status,
        "startAt":      as_utc(r.start_at),
        "endAt":        as_utc(r.end_at),
        "renewedCount": r.renewed_count,
        "paymentRef":   r.payment_ref,
        "createdAt":    as_utc(r.created_at),
        "updatedAt":    as_utc(r.updated_at),
    }


# ─── Repositories ─────────────────────────────────────────────────────────────
class SqlVehicleRepository(VehicleStore):

    def __init__(self, session: Session):
        self.session = session

    def create(self, vehicle: Vehicle) -> Vehicle:
        rec = VehicleRecord(
            id=vehicle.id,
            plate=vehicle.plate,
            model=vehicle.model,
            status=vehicle.status,
            currentRentalId=vehicle.current_rental_id,
            version=vehicle.version,
        )
        self.session.add(rec)
        self.session.flush()
        return _vehicle_to_entity(rec)

    def find_by_id(self, vehicle_id: str, lock: bool = False) -> Optional[Vehicle]:
        stmt = select(VehicleRecord).where(VehicleRecord.id == vehicle_id)\
                                    .execution_options(populate_existing=True)
        if lock:
            stmt = stmt.with_for_update()
        rec = self.session.execute(stmt).scalar_one_or_none()
        return _vehicle_to_entity(rec) if rec else None

    def find_by_plate(self, plate: str) -> Optional[Vehicle]:
        stmt = select(VehicleRecord).where(VehicleRecord.plate == plate)\
                                    .execution_options(populate_existing=True)
        rec = self.session.execute(stmt).scalar_one_or_none()
        return _vehicle_to_entity(rec) if rec else None

    def update(self, vehicle_id: str, vehicle: Vehicle) -> Vehicle:
        stmt = (
            update(VehicleRecord)
            .where(VehicleRecord.id == vehicle_id, VehicleRecord.version == vehicle.version)
            .values(
                plate=vehicle.plate,
                model=vehicle.model,
                status=vehicle.status,
                currentRentalId=vehicle.current_rental_id,
                version=vehicle.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        if result.rowcount != 1:
            logger.warning(f"Version check failed for vehicle {vehicle_id} (expected v{vehicle.version})")
            raise ConcurrencyConflict(f"Vehicle {vehicle_id} was modified concurrently")
        return Vehicle(
            id=vehicle.id, plate=vehicle.plate, model=vehicle.model, status=vehicle.status,
            current_rental_id=vehicle.current_rental_id, version=vehicle.version + 1,
        )

    def find_available(self, filters: VehicleFilters) -> List[Vehicle]:
        q = select(VehicleRecord).where(VehicleRecord.status == VehicleStatus.AVAILABLE)
        if filters.model:
            q = q.where(VehicleRecord.model.ilike(f"%{filters.model}%"))
        q = q.order_by(VehicleRecord.plate).execution_options(populate_existing=True)
        return [_vehicle_to_entity(rec) for rec in self.session.execute(q).scalars().all()]


class SqlRentalRepository(RentalStore):

    def __init__(self, session: Session):
        self.session = session

    def create(self, rental: Rental) -> Rental:
        rec = RentalRecord(id=rental.id, version=rental.version, **_rental_values(rental))
        self.session.add(rec)
        self.session.flush()
        return _rental_to_entity(rec)

    def find_by_id(self, rental_id: str, lock: bool = False) -> Optional[Rental]:
        stmt = select(RentalRecord).where(RentalRecord.id == rental_id)\
                                   .execution_options(populate_existing=True)
        if lock:
            stmt = stmt.with_for_update()
        rec = self.session.execute(stmt).scalar_one_or_none()
        return _rental_to_entity(rec) if rec else None

    def update(self, rental_id: str, rental: Rental) -> Rental:
        stmt = (
            update(RentalRecord)
            .where(RentalRecord.id == rental_id, RentalRecord.version == rental.version)
            .values(version=rental.version + 1, **_rental_values(rental))
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        if result.rowcount != 1:
            logger.warning(f"Version check failed for rental {rental_id} (expected v{rental.version})")
            raise ConcurrencyConflict(f"Rental {rental_id} was modified concurrently")
        return self.find_by_id(rental_id)

    def find_active_or_pending_by_vehicle(self, vehicle_id: str) -> List[Rental]:
        q = select(RentalRecord).where(
            RentalRecord.vehicleId == vehicle_id,
            RentalRecord.status.in_(LIVE_STATUSES),
        ).order_by(RentalRecord.startAt).execution_options(populate_existing=True)
        return [_rental_to_entity(rec) for rec in self.session.execute(q).scalars().all()]

    def find_overlapping(self, vehicle_id: str, start: datetime, end: datetime) -> List[Rental]:
        q = select(RentalRecord).where(
            RentalRecord.vehicleId == vehicle_id,
            RentalRecord.status.in_(LIVE_STATUSES),
            RentalRecord.startAt < as_utc(end),
            RentalRecord.endAt   > as_utc(start),
        ).order_by(RentalRecord.startAt).execution_options(populate_existing=True)
        return [_rental_to_entity(rec) for rec in self.session.execute(q).scalars().all()]

    def find_all(
        self, filters: RentalFilters, page: int = 1, limit: int = 20,
    ) -> Tuple[List[Rental], int]:
        q = select(RentalRecord)

        if filters.vehicle_id:     q = q.where(RentalRecord.vehicleId == filters.vehicle_id)
        if filters.user_id:        q = q.where(RentalRecord.userId == filters.user_id)
        if filters.status:         q = q.where(RentalRecord.status == filters.status)
        if filters.start_from:     q = q.where(RentalRecord.startAt >= as_utc(filters.start_from))
        if filters.start_to:       q = q.where(RentalRecord.startAt <= as_utc(filters.start_to))

        total = self.session.execute(select(func.count()).select_from(q.subquery())).scalar_one()
        items = self.session.execute(
            q.order_by(RentalRecord.createdAt.desc())
             .offset((page - 1) * limit).limit(limit)
             .execution_options(populate_existing=True)
        ).scalars().all()
        return [_rental_to_entity(rec) for rec in items], total


# ─── Unit of Work ─────────────────────────────────────────────────────────────
class SqlUnitOfWork(AbstractUnitOfWork):
    """One session, one transaction. Closed on exit either way."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self.session: Session | None = None

    def __enter__(self):
        self.session  = self._session_factory()
        self.vehicles = SqlVehicleRepository(self.session)
        self.rentals  = SqlRentalRepository(self.session)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            super().__exit__(exc_type, exc_val, exc_tb)
        except Exception:
            self.rollback()
            raise
        finally:
            self.session.close()

    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()
