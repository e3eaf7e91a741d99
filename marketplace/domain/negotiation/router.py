"""Negotiation router - hire and booking request endpoints"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import Booking, Profile
from ...services.saga import SagaResult
from .schemas import (
    BookingRequestCreate,
    BookingRequestResponse,
    BookingResult,
    BookingSummary,
    CounterOfferRequest,
    HireRequest,
)
from .service import NegotiationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/negotiation", tags=["Negotiation"])


def get_negotiation_service(db: Session = Depends(get_db)) -> NegotiationService:
    """Dependency injection for NegotiationService"""
    return NegotiationService(db)


def _booking_result(booking: Booking, created: bool, saga: SagaResult) -> BookingResult:
    return BookingResult(
        created=created,
        booking=BookingSummary.model_validate(booking),
        saga=saga.to_dict(),
    )


@router.post("/jobs/{job_id}/hire", response_model=BookingResult)
async def hire_worker(
    job_id: str,
    data: HireRequest,
    current_user: Profile = Depends(get_current_user),
    service: NegotiationService = Depends(get_negotiation_service),
):
    """Create (or refresh) the pending-payment booking for an applicant"""
    booking, created, saga = await service.hire(
        current_user, job_id, data.worker_id, data.amount, data.scheduled_date
    )
    return _booking_result(booking, created, saga)


@router.post("/requests", response_model=BookingRequestResponse, status_code=201)
async def send_booking_request(
    data: BookingRequestCreate,
    current_user: Profile = Depends(get_current_user),
    service: NegotiationService = Depends(get_negotiation_service),
):
    return service.send_booking_request(current_user, data)


@router.get("/requests", response_model=list[BookingRequestResponse])
async def list_booking_requests(
    current_user: Profile = Depends(get_current_user),
    service: NegotiationService = Depends(get_negotiation_service),
):
    return service.list_booking_requests(current_user)


@router.post("/requests/{request_id}/accept", response_model=BookingResult)
async def accept_booking_request(
    request_id: str,
    current_user: Profile = Depends(get_current_user),
    service: NegotiationService = Depends(get_negotiation_service),
):
    booking, created, saga = await service.accept_booking_request(current_user, request_id)
    return _booking_result(booking, created, saga)


@router.post("/requests/{request_id}/reject", response_model=BookingRequestResponse)
async def reject_booking_request(
    request_id: str,
    current_user: Profile = Depends(get_current_user),
    service: NegotiationService = Depends(get_negotiation_service),
):
    return service.reject_booking_request(current_user, request_id)


@router.post("/requests/{request_id}/counter", response_model=BookingRequestResponse)
async def send_counter_offer(
    request_id: str,
    data: CounterOfferRequest,
    current_user: Profile = Depends(get_current_user),
    service: NegotiationService = Depends(get_negotiation_service),
):
    return service.send_counter_offer(current_user, request_id, data.amount, data.note)


@router.post("/requests/{request_id}/accept-counter", response_model=BookingResult)
async def accept_counter_offer(
    request_id: str,
    current_user: Profile = Depends(get_current_user),
    service: NegotiationService = Depends(get_negotiation_service),
):
    booking, created, saga = await service.accept_counter_offer(current_user, request_id)
    return _booking_result(booking, created, saga)
