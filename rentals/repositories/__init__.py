from rentals.repositories.base import (
    AbstractUnitOfWork,
    RentalFilters,
    RentalStore,
    UnitOfWorkFactory,
    VehicleFilters,
    VehicleStore,
)
from rentals.repositories.memory import InMemoryStore, InMemoryUnitOfWork
from rentals.repositories.sql import SqlUnitOfWork

__all__ = [
    "AbstractUnitOfWork",
    "RentalFilters",
    "RentalStore",
    "UnitOfWorkFactory",
    "VehicleFilters",
    "VehicleStore",
    "InMemoryStore",
    "InMemoryUnitOfWork",
    "SqlUnitOfWork",
]
