"""
Import all models here so that:
1. Alembic can auto-detect them when generating migrations
2. Foreign keys between tables resolve correctly

Order matters: import parent tables before child tables.
"""

from rentals.models.vehicle import VehicleRecord
from rentals.models.rental import RentalRecord

__all__ = [
    "VehicleRecord",
    "RentalRecord",
]
