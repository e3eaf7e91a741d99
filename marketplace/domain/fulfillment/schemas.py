"""Fulfillment schemas - Pydantic models for job progress and reviews"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

JOB_STATUSES = {"open", "assigned", "in_progress", "completed", "cancelled"}


class JobStatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v not in JOB_STATUSES:
            raise ValueError(f"status must be one of {sorted(JOB_STATUSES)}")
        return v


class CompletionSubmission(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=5000)


class ReviewCreate(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=5000)
    punctuality: Optional[int] = Field(default=None, ge=1, le=5)
    quality: Optional[int] = Field(default=None, ge=1, le=5)
    communication: Optional[int] = Field(default=None, ge=1, le=5)


class ReviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    booking_id: str
    worker_id: str
    client_id: str
    rating: int
    comment: Optional[str] = None
    punctuality: Optional[int] = None
    quality: Optional[int] = None
    communication: Optional[int] = None
    created_at: Optional[datetime] = None
