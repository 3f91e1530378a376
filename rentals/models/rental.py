from sqlalchemy import Column, Integer, String, ForeignKey, TIMESTAMP, Enum, Index
from rentals.database import Base
from rentals.domain import RentalStatus


class RentalRecord(Base):
    __tablename__ = "rentals"

    id           = Column(String(36), primary_key=True)
    vehicleId    = Column(String(36), ForeignKey("vehicles.id"), nullable=False)
    userId       = Column(String(64), nullable=False)
    status       = Column(Enum(RentalStatus), default=RentalStatus.PENDING, nullable=False)
    startAt      = Column(TIMESTAMP(timezone=True), nullable=False)
    endAt        = Column(TIMESTAMP(timezone=True), nullable=False)
    renewedCount = Column(Integer, default=0, nullable=False)
    paymentRef   = Column(String(100), nullable=True)
    version      = Column(Integer, default=0, nullable=False)
    # Set by the domain clock, not the database, so tests can pin time
    createdAt    = Column(TIMESTAMP(timezone=True), nullable=False)
    updatedAt    = Column(TIMESTAMP(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_rental_vehicle_status", "vehicleId", "status"),
        Index("idx_rental_period", "startAt", "endAt"),
        Index("idx_rental_user", "userId"),
        Index("idx_rental_status_created", "status", "createdAt"),
    )

    def __repr__(self):
        return f"<RentalRecord id={self.id} status={self.status} vehicleId={self.vehicleId}>"
