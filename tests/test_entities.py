from datetime import datetime, timedelta, timezone

import pytest

from rentals.domain import Rental, RentalStatus, Vehicle, VehicleStatus, windows_overlap
from rentals.utils.exceptions import InvalidInput, InvalidStateTransition

from tests.conftest import D1, NOW, days


def make_rental(status=RentalStatus.PENDING, **kw):
    return Rental(id="r1", vehicle_id="v1", user_id="u1", start_at=D1, end_at=D1 + days(7),
                  status=status, **kw)


# ─── Vehicle ──────────────────────────────────────────────────────────────────
def test_new_vehicle_is_available():
    v = Vehicle(id="v1", plate="B 1", model="Avanza")
    assert v.is_available()
    assert v.is_reservable()


def test_mark_as_rented_and_back():
    v = Vehicle(id="v1", plate="B 1", model="Avanza")
    v.mark_as_rented("r1")
    assert v.status == VehicleStatus.RENTED
    assert v.current_rental_id == "r1"
    assert not v.is_available()
    assert v.is_reservable()

    v.mark_as_available()
    assert v.status == VehicleStatus.AVAILABLE
    assert v.current_rental_id is None


def test_vehicle_in_maintenance_is_not_reservable():
    v = Vehicle(id="v1", plate="B 1", model="Avanza", status=VehicleStatus.MAINTENANCE)
    assert not v.is_available()
    assert not v.is_reservable()


def test_rented_vehicle_without_reference_is_not_reservable():
    v = Vehicle(id="v1", plate="B 1", model="Avanza", status=VehicleStatus.RENTED)
    assert not v.is_reservable()


# ─── Rental construction ──────────────────────────────────────────────────────
def test_rental_rejects_empty_window():
    with pytest.raises(InvalidInput):
        Rental(id="r1", vehicle_id="v1", user_id="u1", start_at=D1, end_at=D1)


def test_rental_treats_naive_datetimes_as_utc():
    naive = datetime(2030, 1, 2, 9, 0)
    r = Rental(id="r1", vehicle_id="v1", user_id="u1", start_at=naive, end_at=naive + timedelta(days=1))
    assert r.start_at == D1
    assert r.start_at.tzinfo is not None


def test_rental_converts_offsets_to_utc():
    jakarta = timezone(timedelta(hours=7))
    r = Rental(id="r1", vehicle_id="v1", user_id="u1",
               start_at=datetime(2030, 1, 2, 16, 0, tzinfo=jakarta),
               end_at=datetime(2030, 1, 3, 16, 0, tzinfo=jakarta))
    assert r.start_at == D1


@pytest.mark.parametrize("a, b, expected", [
    ((0, 7), (2, 3), True),
    ((0, 7), (7, 9), False),   # touching windows do not overlap
    ((2, 4), (0, 3), True),
    ((5, 6), (0, 5), False),
])
def test_windows_overlap_is_half_open(a, b, expected):
    assert windows_overlap(D1 + days(a[0]), D1 + days(a[1]), D1 + days(b[0]), D1 + days(b[1])) is expected


# ─── Transitions ──────────────────────────────────────────────────────────────
def test_activate_pending_rental():
    r = make_rental()
    assert r.activate("pay_1", at=NOW) is None
    assert r.status == RentalStatus.ACTIVE
    assert r.payment_ref == "pay_1"
    assert r.updated_at == NOW


def test_activate_active_rental_returns_error_and_changes_nothing():
    r = make_rental(status=RentalStatus.ACTIVE, payment_ref="pay_1")
    error = r.activate("pay_2")
    assert isinstance(error, InvalidStateTransition)
    assert r.status == RentalStatus.ACTIVE
    assert r.payment_ref == "pay_1"


def test_renew_extends_end_and_counts():
    r = make_rental(status=RentalStatus.ACTIVE)
    old_end = r.end_at
    assert r.renew(old_end + days(3)) is None
    assert r.end_at == old_end + days(3)
    assert r.renewed_count == 1


def test_renew_requires_later_end():
    r = make_rental(status=RentalStatus.ACTIVE)
    error = r.renew(r.end_at)
    assert isinstance(error, InvalidInput)
    assert r.renewed_count == 0


@pytest.mark.parametrize("status", [RentalStatus.PENDING, RentalStatus.ENDED, RentalStatus.RETURNED])
def test_renew_only_from_active(status):
    r = make_rental(status=status)
    assert isinstance(r.renew(r.end_at + days(1)), InvalidStateTransition)


@pytest.mark.parametrize("status, allowed", [
    (RentalStatus.PENDING, True),
    (RentalStatus.ACTIVE, True),
    (RentalStatus.ENDED, False),
    (RentalStatus.CANCELED, False),
])
def test_end_guard(status, allowed):
    r = make_rental(status=status)
    error = r.end()
    assert (error is None) is allowed
    assert r.status == (RentalStatus.ENDED if allowed else status)


@pytest.mark.parametrize("status, allowed", [
    (RentalStatus.ACTIVE, True),
    (RentalStatus.ENDED, True),
    (RentalStatus.PENDING, False),
    (RentalStatus.RETURNED, False),
])
def test_return_guard(status, allowed):
    r = make_rental(status=status)
    error = r.mark_as_returned()
    assert (error is None) is allowed
    assert r.status == (RentalStatus.RETURNED if allowed else status)


@pytest.mark.parametrize("status, allowed", [
    (RentalStatus.PENDING, True),
    (RentalStatus.ENDED, True),
    (RentalStatus.RETURNED, True),
    (RentalStatus.CANCELED, True),
    (RentalStatus.ACTIVE, False),
])
def test_cancel_guard(status, allowed):
    r = make_rental(status=status)
    error = r.cancel()
    assert (error is None) is allowed
    assert r.status == (RentalStatus.CANCELED if allowed else status)


def test_error_message_names_operation_and_status():
    error = make_rental(status=RentalStatus.RETURNED).end()
    assert error.message == "Cannot end a rental in returned status"
