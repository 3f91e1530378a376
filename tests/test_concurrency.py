import threading

import pytest

from rentals.domain import Rental, RentalStatus
from rentals.repositories import RentalFilters
from rentals.services.transaction_service import RentalTransactionOrchestrator
from rentals.utils.exceptions import ConcurrencyConflict, VehicleUnavailable
from rentals.utils.locks import KeyedLock

from tests.conftest import D1, NOW, days, interleaved

CALLERS = 8


def race(target, count=CALLERS):
    """Start `count` threads on target(i) together; return (results, errors)."""
    barrier = threading.Barrier(count)
    results, errors = [], []
    guard = threading.Lock()

    def run(i):
        barrier.wait()
        try:
            value = target(i)
        except Exception as e:
            with guard:
                errors.append(e)
        else:
            with guard:
                results.append(value)

    threads = [threading.Thread(target=run, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return results, errors


def count_live(uow_factory, vehicle_id="v1"):
    with uow_factory() as uow:
        return len(uow.rentals.find_active_or_pending_by_vehicle(vehicle_id))


@pytest.fixture(params=["process", "store"])
def contended(request, uow_factory, resolver):
    if request.param == "process":
        vehicle_locks, rental_locks = KeyedLock("vehicle"), KeyedLock("rental")
    else:
        vehicle_locks = rental_locks = None
    return RentalTransactionOrchestrator(
        uow_factory, resolver=resolver, clock=lambda: NOW,
        vehicle_locks=vehicle_locks, rental_locks=rental_locks, lock_timeout=5.0,
    )


def test_only_one_overlapping_reservation_wins(contended, uow_factory):
    results, errors = race(lambda i: contended.initiate_rental("v1", f"u{i}", D1, D1 + days(3)))

    assert len(results) == 1
    assert len(errors) == CALLERS - 1
    assert all(isinstance(e, (VehicleUnavailable, ConcurrencyConflict)) for e in errors)
    assert count_live(uow_factory) == 1


def test_process_locks_report_unavailability_to_losers(orchestrator):
    _, errors = race(lambda i: orchestrator.initiate_rental("v1", f"u{i}", D1, D1 + days(3)))
    assert errors and all(isinstance(e, VehicleUnavailable) for e in errors)


def test_disjoint_windows_all_succeed_under_process_locks(orchestrator, uow_factory, read_vehicle):
    results, errors = race(
        lambda i: orchestrator.initiate_rental("v1", f"u{i}", D1 + days(2 * i), D1 + days(2 * i + 1)),
    )

    assert errors == []
    assert len(results) == CALLERS
    assert count_live(uow_factory) == CALLERS
    held = read_vehicle("v1").current_rental_id
    assert held in {r.id for r in results}


def test_different_vehicles_do_not_block_each_other(contended):
    results, errors = race(
        lambda i: contended.initiate_rental(f"v{i % 2 + 1}", f"u{i}", D1 + days(i), D1 + days(i) + days(0.5)),
        count=2,
    )
    assert errors == []
    assert len(results) == 2


def test_concurrent_activation_applies_once(orchestrator, read_rental):
    rental = orchestrator.initiate_rental("v1", "u1", D1, D1 + days(3))
    results, errors = race(lambda i: orchestrator.activate_rental(rental.id, f"pay_{i}"))

    assert len(results) == 1
    stored = read_rental(rental.id)
    assert stored.status == RentalStatus.ACTIVE
    assert stored.payment_ref == results[0].payment_ref


# ─── Store-level compare-and-set ──────────────────────────────────────────────
def test_memory_store_rejects_stale_commit(uow_factory, read_vehicle):
    first, second = uow_factory(), uow_factory()
    a = first.vehicles.find_by_id("v1")
    b = second.vehicles.find_by_id("v1")

    a.mark_as_rented("r1")
    first.vehicles.update(a.id, a)
    b.mark_as_rented("r2")
    second.vehicles.update(b.id, b)

    first.commit()
    with pytest.raises(ConcurrencyConflict):
        second.commit()

    assert read_vehicle("v1").current_rental_id == "r1"


def test_memory_store_commit_is_all_or_nothing(uow_factory):
    first, second = uow_factory(), uow_factory()
    second.rentals.create(Rental(id="r9", vehicle_id="v1", user_id="u1", start_at=D1, end_at=D1 + days(1)))
    stale = second.vehicles.find_by_id("v1")
    second.vehicles.update(stale.id, stale)

    v = first.vehicles.find_by_id("v1")
    first.vehicles.update(v.id, v)
    first.commit()

    with pytest.raises(ConcurrencyConflict):
        second.commit()

    with uow_factory() as uow:
        assert uow.rentals.find_by_id("r9") is None
        assert uow.rentals.find_all(RentalFilters())[1] == 0


# ─── Writes landing between check and update (store mode) ─────────────────────
def store_mode(uow_factory):
    return RentalTransactionOrchestrator(uow_factory, clock=lambda: NOW)


def test_reservation_committed_after_check_fails_the_late_writer(uow_factory):
    rival = store_mode(uow_factory)
    late = store_mode(interleaved(
        uow_factory, lambda: rival.initiate_rental("v1", "u2", D1 + days(1), D1 + days(2)),
    ))

    with pytest.raises(ConcurrencyConflict):
        late.initiate_rental("v1", "u1", D1, D1 + days(7))

    with uow_factory() as uow:
        live = uow.rentals.find_active_or_pending_by_vehicle("v1")
    assert [r.user_id for r in live] == ["u2"]


def test_reservation_committed_during_renewal_fails_the_renewal(uow_factory, read_rental):
    plain = store_mode(uow_factory)
    rental = plain.initiate_rental("v1", "u1", D1, D1 + days(7))
    plain.activate_rental(rental.id, "pay_1")

    late = store_mode(interleaved(
        uow_factory, lambda: plain.initiate_rental("v1", "u2", D1 + days(8), D1 + days(9)),
    ))
    with pytest.raises(ConcurrencyConflict):
        late.renew_rental(rental.id, 3)

    assert read_rental(rental.id).end_at == D1 + days(7)
    assert count_live(uow_factory) == 2
