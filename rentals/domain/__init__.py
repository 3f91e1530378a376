"""
Domain entities. Plain dataclasses with no persistence concerns; the stores
in rentals/repositories map them to and from storage.
"""

from rentals.domain.vehicle import Vehicle, VehicleStatus
from rentals.domain.rental import (
    LIVE_STATUSES,
    TERMINAL_STATUSES,
    Rental,
    RentalStatus,
    windows_overlap,
)

__all__ = [
    "Vehicle",
    "VehicleStatus",
    "Rental",
    "RentalStatus",
    "LIVE_STATUSES",
    "TERMINAL_STATUSES",
    "windows_overlap",
]
