"""Escrow schemas - Pydantic models for payment endpoints"""

from typing import Optional

from pydantic import BaseModel, field_validator

from ..negotiation.schemas import BookingSummary


class InitializePaymentRequest(BaseModel):
    booking_id: str


class InitializePaymentResponse(BaseModel):
    success: bool = True
    link: str
    tx_ref: str


class VerifyPaymentRequest(BaseModel):
    transaction_id: str
    booking_id: str

    @field_validator("transaction_id", "booking_id", mode="before")
    @classmethod
    def coerce_str(cls, v):
        # Flutterwave redirects carry numeric transaction ids
        if isinstance(v, int):
            return str(v)
        return v


class VerifyPaymentResponse(BaseModel):
    success: bool = True
    already_verified: bool = False
    message: str
    booking: BookingSummary
    saga: Optional[dict] = None
