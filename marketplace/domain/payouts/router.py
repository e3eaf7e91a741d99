"""
Payout Routes for releasing escrowed funds to workers
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import Profile, Worker
from ...services.flutterwave_service import FlutterwaveService, get_gateway
from ..negotiation.schemas import BookingSummary
from .schemas import (
    BankDetailsResponse,
    BankDetailsUpdate,
    BankVerificationRequest,
    MarkPaidRequest,
    PayoutCreate,
    PayoutResult,
    PendingPayout,
)
from .service import PayoutService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payouts", tags=["Payouts"])


def get_payout_service(
    db: Session = Depends(get_db),
    gateway: FlutterwaveService = Depends(get_gateway),
) -> PayoutService:
    """Dependency injection for PayoutService"""
    return PayoutService(db, gateway)


def _bank_details(worker: Worker) -> BankDetailsResponse:
    return BankDetailsResponse(
        worker_id=worker.id,
        bank_name=worker.bank_name,
        bank_code=worker.bank_code,
        bank_account_number=worker.bank_account_number,
        account_name=worker.account_name,
        bank_details_verified=worker.bank_details_verified,
        bank_details_updated_at=worker.bank_details_updated_at,
    )


@router.post("", response_model=PayoutResult)
async def process_payout(
    data: PayoutCreate,
    current_user: Profile = Depends(get_current_user),
    service: PayoutService = Depends(get_payout_service),
):
    """Transfer a completed booking's worker share (admin only)"""
    return await service.process_payout(current_user, data)


@router.get("/pending", response_model=list[PendingPayout])
async def get_pending_payouts(
    current_user: Profile = Depends(get_current_user),
    service: PayoutService = Depends(get_payout_service),
):
    """Completed, paid bookings still holding the worker's funds"""
    return service.get_pending_payouts(current_user)


@router.post("/bookings/{booking_id}/mark-paid", response_model=BookingSummary)
async def mark_booking_as_paid(
    booking_id: str,
    data: MarkPaidRequest,
    current_user: Profile = Depends(get_current_user),
    service: PayoutService = Depends(get_payout_service),
):
    return service.mark_booking_as_paid(current_user, booking_id, data.payment_reference, data.notes)


@router.post("/workers/{worker_id}/verify-bank")
async def verify_bank(
    worker_id: str,
    data: BankVerificationRequest,
    current_user: Profile = Depends(get_current_user),
    service: PayoutService = Depends(get_payout_service),
):
    return await service.verify_bank(
        current_user,
        worker_id,
        account_number=data.account_number,
        bank_name=data.bank_name,
        bank_code=data.bank_code,
        account_name=data.account_name,
    )


@router.put("/workers/{worker_id}/bank-details", response_model=BankDetailsResponse)
async def update_bank_details(
    worker_id: str,
    data: BankDetailsUpdate,
    current_user: Profile = Depends(get_current_user),
    service: PayoutService = Depends(get_payout_service),
):
    return _bank_details(service.update_bank_details(current_user, worker_id, data))
