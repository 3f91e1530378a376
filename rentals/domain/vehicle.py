import enum
from dataclasses import dataclass


class VehicleStatus(str, enum.Enum):
    AVAILABLE   = "available"
    RENTED      = "rented"
    MAINTENANCE = "maintenance"    # set by fleet management only


@dataclass
class Vehicle:
    """
    A physical asset in the rental pool.

    Invariant: status == RENTED <=> current_rental_id points at a rental that
    is not in a terminal state. Only the transaction orchestrator calls the
    mark_* methods, and only after the availability check passed inside its
    atomic unit, so they do not validate the prior state themselves.
    """
    id:                str
    plate:             str
    model:             str
    status:            VehicleStatus = VehicleStatus.AVAILABLE
    current_rental_id: str | None    = None
    version:           int           = 0

    def is_available(self) -> bool:
        return self.status == VehicleStatus.AVAILABLE and self.current_rental_id is None

    def is_reservable(self) -> bool:
        """
        True when further windows may be booked on this vehicle.
        A rented vehicle is still reservable; the overlap search decides
        whether the requested window collides with what it is held for.
        """
        if self.is_available():
            return True
        return self.status == VehicleStatus.RENTED and self.current_rental_id is not None

    def mark_as_rented(self, rental_id: str) -> None:
        self.status            = VehicleStatus.RENTED
        self.current_rental_id = rental_id

    def mark_as_available(self) -> None:
        self.status            = VehicleStatus.AVAILABLE
        self.current_rental_id = None

    def __repr__(self):
        return f"<Vehicle id={self.id} plate={self.plate} status={self.status.value}>"
