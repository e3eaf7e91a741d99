"""Fulfillment router - job progress, completion and review endpoints"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import Profile
from ..jobs.schemas import JobResponse
from ..negotiation.schemas import BookingSummary
from .schemas import CompletionSubmission, JobStatusUpdate, ReviewCreate, ReviewResponse
from .service import FulfillmentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/fulfillment", tags=["Fulfillment"])


def get_fulfillment_service(db: Session = Depends(get_db)) -> FulfillmentService:
    """Dependency injection for FulfillmentService"""
    return FulfillmentService(db)


@router.patch("/jobs/{job_id}/status")
async def update_job_status(
    job_id: str,
    data: JobStatusUpdate,
    current_user: Profile = Depends(get_current_user),
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    job, saga = await service.update_job_status(current_user, job_id, data.status)
    return {
        "success": True,
        "job": JobResponse.model_validate(job),
        "saga": saga.to_dict() if saga else None,
    }


@router.delete("/jobs/{job_id}")
async def delete_job(
    job_id: str,
    current_user: Profile = Depends(get_current_user),
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    return service.delete_job(current_user, job_id)


@router.post("/bookings/{booking_id}/completion", response_model=BookingSummary)
async def submit_job_completion(
    booking_id: str,
    data: CompletionSubmission,
    current_user: Profile = Depends(get_current_user),
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    """Worker marks the work done and asks the client to confirm"""
    return service.submit_job_completion(current_user, booking_id, data.notes)


@router.post("/bookings/{booking_id}/reviews", response_model=ReviewResponse, status_code=201)
async def create_review(
    booking_id: str,
    data: ReviewCreate,
    current_user: Profile = Depends(get_current_user),
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    return service.create_review(current_user, booking_id, data)


@router.get("/workers/{worker_id}/reviews", response_model=list[ReviewResponse])
async def get_worker_reviews(
    worker_id: str,
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    return service.get_worker_reviews(worker_id)
