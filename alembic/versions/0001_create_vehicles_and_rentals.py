"""create vehicles and rentals

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00

"""
from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

vehicle_status = sa.Enum("AVAILABLE", "RENTED", "MAINTENANCE", name="vehiclestatus")
rental_status = sa.Enum("PENDING", "ACTIVE", "ENDED", "CANCELED", "RETURNED", name="rentalstatus")


def upgrade() -> None:
    op.create_table(
        "vehicles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("plate", sa.String(20), nullable=False),
        sa.Column("model", sa.String(100), nullable=False),
        sa.Column("status", vehicle_status, nullable=False),
        sa.Column("currentRentalId", sa.String(36), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("createdAt", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updatedAt", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_vehicles_plate", "vehicles", ["plate"], unique=True)
    op.create_index("ix_vehicles_status", "vehicles", ["status"])

    op.create_table(
        "rentals",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("vehicleId", sa.String(36), sa.ForeignKey("vehicles.id"), nullable=False),
        sa.Column("userId", sa.String(64), nullable=False),
        sa.Column("status", rental_status, nullable=False),
        sa.Column("startAt", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("endAt", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("renewedCount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("paymentRef", sa.String(100), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("createdAt", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updatedAt", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("idx_rental_vehicle_status", "rentals", ["vehicleId", "status"])
    op.create_index("idx_rental_period", "rentals", ["startAt", "endAt"])
    op.create_index("idx_rental_user", "rentals", ["userId"])
    op.create_index("idx_rental_status_created", "rentals", ["status", "createdAt"])


def downgrade() -> None:
    op.drop_table("rentals")
    op.drop_table("vehicles")
    vehicle_status.drop(op.get_bind(), checkfirst=True)
    rental_status.drop(op.get_bind(), checkfirst=True)
