"""Job domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

URGENCY_LEVELS = {"urgent", "today", "this_week", "flexible"}


class JobCreate(BaseModel):
    """Schema for posting a new job"""

    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = None
    location_city: Optional[str] = None
    location_area: Optional[str] = None
    location_address: Optional[str] = None
    budget_min_ngn: Optional[float] = Field(default=None, ge=0)
    budget_max_ngn: Optional[float] = Field(default=None, ge=0)
    urgency: str = "flexible"
    scheduled_date: Optional[datetime] = None

    @field_validator("urgency")
    @classmethod
    def validate_urgency(cls, v: str) -> str:
        if v not in URGENCY_LEVELS:
            raise ValueError(f"urgency must be one of {sorted(URGENCY_LEVELS)}")
        return v

    @model_validator(mode="after")
    def validate_budget_range(self):
        if (
            self.budget_min_ngn is not None
            and self.budget_max_ngn is not None
            and self.budget_min_ngn > self.budget_max_ngn
        ):
            raise ValueError("budget_min_ngn cannot exceed budget_max_ngn")
        return self


class JobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    client_id: str
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    location_city: Optional[str] = None
    budget_min_ngn: Optional[float] = None
    budget_max_ngn: Optional[float] = None
    urgency: Optional[str] = None
    status: str
    assigned_worker_id: Optional[str] = None
    final_amount_ngn: Optional[float] = None
    scheduled_date: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ApplicationCreate(BaseModel):
    proposed_amount: Optional[float] = Field(default=None, gt=0)
    cover_letter: Optional[str] = None


class ApplicationUpdate(BaseModel):
    """Workers may only withdraw their own application"""

    status: str

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v != "withdrawn":
            raise ValueError("status must be 'withdrawn'")
        return v


class ApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    job_id: str
    worker_id: str
    status: str
    proposed_amount: Optional[float] = None
    cover_letter: Optional[str] = None
    created_at: Optional[datetime] = None
