"""Job router - FastAPI endpoints for job posting and applications"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import Profile
from .schemas import (
    ApplicationCreate,
    ApplicationResponse,
    ApplicationUpdate,
    JobCreate,
    JobResponse,
)
from .service import JobService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])


def get_job_service(db: Session = Depends(get_db)) -> JobService:
    """Dependency injection for JobService"""
    return JobService(db)


@router.get("", response_model=list[JobResponse])
async def list_my_jobs(
    current_user: Profile = Depends(get_current_user),
    service: JobService = Depends(get_job_service),
):
    """Jobs posted by the current client"""
    return service.list_my_jobs(current_user)


@router.post("", response_model=JobResponse, status_code=201)
async def create_job(
    data: JobCreate,
    current_user: Profile = Depends(get_current_user),
    service: JobService = Depends(get_job_service),
):
    return service.create_job(data, current_user)


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    current_user: Profile = Depends(get_current_user),
    service: JobService = Depends(get_job_service),
):
    return service.get_job(job_id)


@router.post("/{job_id}/applications", response_model=ApplicationResponse, status_code=201)
async def apply_for_job(
    job_id: str,
    data: ApplicationCreate,
    current_user: Profile = Depends(get_current_user),
    service: JobService = Depends(get_job_service),
):
    """Apply to an open job (workers only, one application per job)"""
    return service.apply_for_job(job_id, data, current_user)


@router.get("/{job_id}/applications", response_model=list[ApplicationResponse])
async def list_applications(
    job_id: str,
    current_user: Profile = Depends(get_current_user),
    service: JobService = Depends(get_job_service),
):
    return service.list_applications(job_id, current_user)


@router.patch("/applications/{application_id}", response_model=ApplicationResponse)
async def update_application(
    application_id: str,
    data: ApplicationUpdate,
    current_user: Profile = Depends(get_current_user),
    service: JobService = Depends(get_job_service),
):
    return service.update_application(application_id, data, current_user)
