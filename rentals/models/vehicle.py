from sqlalchemy import Column, Integer, String, Enum, TIMESTAMP
from sqlalchemy.sql import func
from rentals.database import Base
from rentals.domain import VehicleStatus


class VehicleRecord(Base):
    __tablename__ = "vehicles"

    id              = Column(String(36), primary_key=True)
    plate           = Column(String(20), unique=True, nullable=False, index=True)
    model           = Column(String(100), nullable=False)
    status          = Column(Enum(VehicleStatus), default=VehicleStatus.AVAILABLE, nullable=False, index=True)
    currentRentalId = Column(String(36), nullable=True)
    version         = Column(Integer, default=0, nullable=False)
    createdAt       = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)
    updatedAt       = Column(TIMESTAMP(timezone=True), server_default=func.now(),
                             onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<VehicleRecord id={self.id} plate={self.plate} status={self.status}>"
