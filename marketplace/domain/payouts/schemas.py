"""Payout schemas - Pydantic models for payouts and bank details"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class PayoutCreate(BaseModel):
    job_id: str
    booking_id: str
    worker_id: str
    amount: float
    bank_name: Optional[str] = None
    bank_code: Optional[str] = None
    account_number: Optional[str] = None
    account_name: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("bank_code", "account_number", mode="before")
    @classmethod
    def strip_codes(cls, v):
        if isinstance(v, (int, float)):
            v = str(v)
        return v.strip() if isinstance(v, str) else v


class PayoutResult(BaseModel):
    success: bool = True
    reference: str
    transfer_id: Optional[str] = None
    amount: float
    saga: dict


class BankVerificationRequest(BaseModel):
    account_number: Optional[str] = None
    bank_name: Optional[str] = None
    bank_code: Optional[str] = None
    account_name: Optional[str] = None


class BankDetailsUpdate(BaseModel):
    bank_name: str = Field(min_length=1)
    account_number: str
    account_name: str = Field(min_length=1)
    bank_code: Optional[str] = None


class BankDetailsResponse(BaseModel):
    worker_id: str
    bank_name: Optional[str] = None
    bank_code: Optional[str] = None
    bank_account_number: Optional[str] = None
    account_name: Optional[str] = None
    bank_details_verified: bool = False
    bank_details_updated_at: Optional[datetime] = None


class PendingPayout(BaseModel):
    booking_id: str
    job_id: str
    job_title: str
    worker_id: str
    amount_ngn: float
    commission_ngn: float
    worker_amount_ngn: float
    completed_at: Optional[datetime] = None
    bank_name: Optional[str] = None
    bank_code: Optional[str] = None
    account_number: Optional[str] = None
    account_name: Optional[str] = None
    bank_details_verified: bool = False


class MarkPaidRequest(BaseModel):
    payment_reference: str = Field(min_length=1)
    notes: Optional[str] = None
