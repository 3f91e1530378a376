"""
Rental entity and its lifecycle state machine.

    PENDING ──activate──> ACTIVE ──renew──> ACTIVE
       │                    │
       ├──end──> ENDED <────┘ end
       │           │
       │           └──mark_as_returned──> RETURNED   (also from ACTIVE)
       └──cancel──> CANCELED   (from every state except ACTIVE)

Guards fail closed: a transition attempted from a disallowed state returns an
InvalidStateTransition and leaves the entity untouched. Transition methods
never raise; the caller decides what to do with the returned error.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime

from rentals.utils.clock import as_utc, utc_now
from rentals.utils.exceptions import AppException, InvalidInput, InvalidStateTransition


class RentalStatus(str, enum.Enum):
    PENDING  = "pending"     # reserved, waiting for payment
    ACTIVE   = "active"      # paid
    ENDED    = "ended"       # usage over, vehicle not back yet
    CANCELED = "canceled"
    RETURNED = "returned"


LIVE_STATUSES     = (RentalStatus.PENDING, RentalStatus.ACTIVE)
TERMINAL_STATUSES = (RentalStatus.RETURNED, RentalStatus.CANCELED)


def windows_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open interval test: [a_start, a_end) and [b_start, b_end) share an instant."""
    return a_start < b_end and b_start < a_end


@dataclass
class Rental:
    id:            str
    vehicle_id:    str
    user_id:       str
    start_at:      datetime
    end_at:        datetime
    status:        RentalStatus  = RentalStatus.PENDING
    renewed_count: int           = 0
    payment_ref:   str | None    = None
    created_at:    datetime      = field(default_factory=utc_now)
    updated_at:    datetime      = field(default_factory=utc_now)
    version:       int           = 0

    def __post_init__(self):
        self.start_at = as_utc(self.start_at)
        self.end_at   = as_utc(self.end_at)
        if self.end_at <= self.start_at:
            raise InvalidInput("End time must be after start time", field="endAt")

    # ─── Queries ──────────────────────────────────────────────────────────────
    def is_pending(self) -> bool:
        return self.status == RentalStatus.PENDING

    def is_active(self) -> bool:
        return self.status == RentalStatus.ACTIVE

    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def can_be_renewed(self) -> bool:
        return self.status == RentalStatus.ACTIVE

    def can_be_ended(self) -> bool:
        return self.status in (RentalStatus.PENDING, RentalStatus.ACTIVE)

    def can_be_returned(self) -> bool:
        return self.status in (RentalStatus.ACTIVE, RentalStatus.ENDED)

    def can_be_canceled(self) -> bool:
        # Active rentals are ended first
        return self.status != RentalStatus.ACTIVE

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return windows_overlap(self.start_at, self.end_at, start, end)

    # ─── Transitions ──────────────────────────────────────────────────────────
    def activate(self, payment_ref: str, at: datetime | None = None) -> AppException | None:
        if not self.is_pending():
            return InvalidStateTransition("activate", self.status.value)
        self.payment_ref = payment_ref
        self.status      = RentalStatus.ACTIVE
        self._touch(at)
        return None

    def renew(self, new_end_at: datetime, at: datetime | None = None) -> AppException | None:
        if not self.can_be_renewed():
            return InvalidStateTransition("renew", self.status.value)
        new_end_at = as_utc(new_end_at)
        if new_end_at <= self.end_at:
            return InvalidInput("New end time must be after the current end time", field="endAt")
        self.end_at         = new_end_at
        self.renewed_count += 1
        self._touch(at)
        return None

    def end(self, at: datetime | None = None) -> AppException | None:
        if not self.can_be_ended():
            return InvalidStateTransition("end", self.status.value)
        self.status = RentalStatus.ENDED
        self._touch(at)
        return None

    def mark_as_returned(self, at: datetime | None = None) -> AppException | None:
        if not self.can_be_returned():
            return InvalidStateTransition("return", self.status.value)
        self.status = RentalStatus.RETURNED
        self._touch(at)
        return None

    def cancel(self, at: datetime | None = None) -> AppException | None:
        if not self.can_be_canceled():
            return InvalidStateTransition("cancel", self.status.value)
        self.status = RentalStatus.CANCELED
        self._touch(at)
        return None

    def _touch(self, at: datetime | None) -> None:
        self.updated_at = as_utc(at) if at else utc_now()

    def __repr__(self):
        return f"<Rental id={self.id} status={self.status.value} vehicleId={self.vehicle_id}>"
