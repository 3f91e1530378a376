import pytest

from rentals.domain import Rental, RentalStatus, Vehicle, VehicleStatus
from rentals.repositories import VehicleFilters
from rentals.services.availability_service import (
    REASON_NOT_FOUND, REASON_OVERLAPPING, REASON_VEHICLE_NOT_AVAILABLE,
)
from rentals.utils.exceptions import InvalidInput

from tests.conftest import D1, days


def seed_rental(uow_factory, rental_id="r1", vehicle_id="v1", start=D1, end=None,
                status=RentalStatus.PENDING, hold=True):
    with uow_factory() as uow:
        uow.rentals.create(Rental(id=rental_id, vehicle_id=vehicle_id, user_id="u1",
                                  start_at=start, end_at=end or start + days(7), status=status))
        if hold:
            vehicle = uow.vehicles.find_by_id(vehicle_id)
            vehicle.mark_as_rented(rental_id)
            uow.vehicles.update(vehicle.id, vehicle)


def test_free_vehicle_is_available(resolver):
    result = resolver.is_vehicle_available("v1", D1, D1 + days(2))
    assert result.available
    assert result.reason is None


def test_unknown_vehicle(resolver):
    result = resolver.is_vehicle_available("nope", D1, D1 + days(2))
    assert not result.available
    assert result.reason == REASON_NOT_FOUND


def test_vehicle_in_maintenance(store, resolver):
    store.add_vehicle(Vehicle(id="v3", plate="B 1003 AA", model="Avanza", status=VehicleStatus.MAINTENANCE))
    result = resolver.is_vehicle_available("v3", D1, D1 + days(2))
    assert result.reason == REASON_VEHICLE_NOT_AVAILABLE


def test_overlapping_window_is_refused(uow_factory, resolver):
    seed_rental(uow_factory)
    result = resolver.is_vehicle_available("v1", D1 + days(2), D1 + days(3))
    assert not result.available
    assert result.reason == REASON_OVERLAPPING


def test_touching_window_is_available(uow_factory, resolver):
    seed_rental(uow_factory)
    assert resolver.is_vehicle_available("v1", D1 + days(7), D1 + days(9)).available


def test_terminal_rentals_do_not_block(uow_factory, resolver):
    seed_rental(uow_factory, status=RentalStatus.CANCELED, hold=False)
    assert resolver.is_vehicle_available("v1", D1, D1 + days(2)).available


def test_empty_window_is_invalid(resolver):
    with pytest.raises(InvalidInput):
        resolver.is_vehicle_available("v1", D1, D1)


def test_answer_is_stable_without_writes(uow_factory, resolver):
    seed_rental(uow_factory)
    first = resolver.is_vehicle_available("v1", D1, D1 + days(1))
    second = resolver.is_vehicle_available("v1", D1, D1 + days(1))
    assert first == second


def test_query_available_vehicles(uow_factory, resolver):
    seed_rental(uow_factory, vehicle_id="v2")
    assert [v.id for v in resolver.query_available_vehicles()] == ["v1"]


def test_query_available_vehicles_filters_by_model(resolver):
    assert [v.id for v in resolver.query_available_vehicles(VehicleFilters(model="jazz"))] == ["v2"]


def test_query_skips_vehicle_flagged_available_with_live_rental(uow_factory, resolver):
    seed_rental(uow_factory, hold=False)
    assert [v.id for v in resolver.query_available_vehicles()] == ["v2"]
