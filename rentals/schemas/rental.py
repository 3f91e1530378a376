from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator, model_validator

from rentals.utils.clock import as_utc


class RentalCreateRequest(BaseModel):
    vehicleId:     str
    startAt:       datetime
    endAt:         datetime
    paymentAmount: Decimal = Field(default=Decimal("0"), ge=0)

    @field_validator("vehicleId")
    @classmethod
    def check_vehicle_id(cls, v):
        if not v.strip(): raise ValueError("vehicleId cannot be empty")
        return v.strip()

    @model_validator(mode="after")
    def check_dates(self) -> "RentalCreateRequest":
        # "start in the future" needs the service clock, so it is checked there
        if as_utc(self.endAt) <= as_utc(self.startAt):
            raise ValueError("endAt must be after startAt")
        return self


MAX_RENEWAL_DAYS = 3650


class RenewRequest(BaseModel):
    # Positivity is enforced by the orchestrator so every caller gets the same error
    additionalDays: int = Field(le=MAX_RENEWAL_DAYS)


class PaymentRequest(BaseModel):
    paymentAmount: Decimal = Field(ge=0)
