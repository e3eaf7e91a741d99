"""Negotiation schemas - Pydantic models for hire and booking request payloads"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class HireRequest(BaseModel):
    worker_id: str
    amount: float = Field(gt=0)
    # ISO-8601; parsed by the service so a bad value surfaces as a validation error
    scheduled_date: str

    @field_validator("worker_id")
    @classmethod
    def validate_worker_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("worker_id is required")
        return v


class BookingRequestCreate(BaseModel):
    job_id: str
    worker_id: str
    amount: float = Field(gt=0)
    scheduled_date: Optional[str] = None
    note: Optional[str] = Field(default=None, max_length=2000)
    worker_rate_ngn: Optional[float] = Field(default=None, ge=0)


class CounterOfferRequest(BaseModel):
    amount: float = Field(gt=0)
    note: Optional[str] = Field(default=None, max_length=2000)


class BookingSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    job_id: str
    client_id: str
    worker_id: str
    amount_ngn: float
    commission_ngn: float
    worker_amount_ngn: float
    status: str
    payment_status: str
    negotiation_rounds: int = 0
    booking_request_id: Optional[str] = None
    scheduled_date: Optional[datetime] = None


class BookingResult(BaseModel):
    """Outcome of hire / request acceptance"""

    success: bool = True
    created: bool
    booking: BookingSummary
    saga: dict


class BookingRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    job_id: str
    client_id: str
    worker_id: str
    proposed_amount_ngn: float
    worker_rate_ngn: Optional[float] = None
    negotiation_note: Optional[str] = None
    counter_offer_ngn: Optional[float] = None
    counter_note: Optional[str] = None
    status: str
    scheduled_date: Optional[datetime] = None
    expires_at: datetime
    created_at: Optional[datetime] = None
