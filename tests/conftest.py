from datetime import datetime, timedelta, timezone

import pytest

from rentals.domain import Vehicle
from rentals.repositories import InMemoryStore
from rentals.services.availability_service import AvailabilityResolver
from rentals.services.transaction_service import RentalTransactionOrchestrator
from rentals.utils.events import EventPublisher
from rentals.utils.exceptions import PaymentFailed
from rentals.utils.locks import KeyedLock
from rentals.utils.payments import Charge, PaymentGateway

NOW = datetime(2030, 1, 1, 9, 0, tzinfo=timezone.utc)
D1  = NOW + timedelta(days=1)


def days(n: float) -> timedelta:
    return timedelta(days=n)


# ─── Fakes ────────────────────────────────────────────────────────────────────
class FakeGateway(PaymentGateway):
    """Plays back outcomes in order: a charge status, or "error" to raise PaymentFailed."""

    def __init__(self, *outcomes: str):
        self.outcomes = list(outcomes)
        self.calls = []

    def create_charge(self, amount, rental_id):
        self.calls.append((amount, rental_id))
        outcome = self.outcomes.pop(0) if self.outcomes else "succeeded"
        if outcome == "error":
            raise PaymentFailed("card declined")
        return Charge(id=f"ch_{len(self.calls)}", status=outcome)


class RecordingPublisher(EventPublisher):

    def __init__(self, fail: bool = False):
        self.events = []
        self.fail = fail

    def publish(self, event_name, payload):
        if self.fail:
            raise RuntimeError("broker down")
        self.events.append((event_name, payload))

    @property
    def names(self):
        return [name for name, _ in self.events]


# ─── Interleaving ─────────────────────────────────────────────────────────────
def interleaved(uow_factory, competitor):
    """
    Wrap uow_factory so that the first overlap search in any unit it opens
    runs competitor() before returning. competitor commits through the plain
    factory, landing its writes between that unit's check and its updates.
    """
    pending = [competitor]

    class InterleavedUnit:

        def __enter__(self):
            self.uow = uow_factory().__enter__()
            search = self.uow.rentals.find_overlapping

            def find_overlapping(*args, **kwargs):
                found = search(*args, **kwargs)
                if pending:
                    pending.pop()()
                return found

            self.uow.rentals.find_overlapping = find_overlapping
            return self.uow

        def __exit__(self, exc_type, exc_val, exc_tb):
            return self.uow.__exit__(exc_type, exc_val, exc_tb)

    return InterleavedUnit


# ─── Store & services ─────────────────────────────────────────────────────────
@pytest.fixture
def store():
    s = InMemoryStore()
    s.add_vehicle(Vehicle(id="v1", plate="B 1001 AA", model="Toyota Avanza"))
    s.add_vehicle(Vehicle(id="v2", plate="B 1002 AA", model="Honda Jazz"))
    return s


@pytest.fixture
def uow_factory(store):
    return store.unit_of_work


@pytest.fixture
def resolver(uow_factory):
    return AvailabilityResolver(uow_factory)


@pytest.fixture
def orchestrator(uow_factory, resolver):
    return RentalTransactionOrchestrator(
        uow_factory,
        resolver=resolver,
        clock=lambda: NOW,
        vehicle_locks=KeyedLock("vehicle"),
        rental_locks=KeyedLock("rental"),
        lock_timeout=2.0,
    )


@pytest.fixture
def read_vehicle(uow_factory):
    def read(vehicle_id):
        with uow_factory() as uow:
            return uow.vehicles.find_by_id(vehicle_id)
    return read


@pytest.fixture
def read_rental(uow_factory):
    def read(rental_id):
        with uow_factory() as uow:
            return uow.rentals.find_by_id(rental_id)
    return read
