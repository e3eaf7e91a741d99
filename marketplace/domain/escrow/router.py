"""Escrow router - payment initialization and verification endpoints"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import Profile
from ...services.flutterwave_service import FlutterwaveService, get_gateway
from .schemas import (
    InitializePaymentRequest,
    InitializePaymentResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from .service import EscrowService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


def get_escrow_service(
    db: Session = Depends(get_db),
    gateway: FlutterwaveService = Depends(get_gateway),
) -> EscrowService:
    """Dependency injection for EscrowService"""
    return EscrowService(db, gateway)


@router.post("/initialize", response_model=InitializePaymentResponse)
async def initialize_payment(
    data: InitializePaymentRequest,
    current_user: Profile = Depends(get_current_user),
    service: EscrowService = Depends(get_escrow_service),
):
    """Open a hosted checkout for a booking and return the redirect link"""
    return await service.initialize_payment(current_user, data.booking_id)


@router.post("/verify", response_model=VerifyPaymentResponse)
async def verify_payment(
    data: VerifyPaymentRequest,
    current_user: Profile = Depends(get_current_user),
    service: EscrowService = Depends(get_escrow_service),
):
    """Confirm the gateway transaction after the checkout redirect"""
    return await service.verify_payment(current_user, data.transaction_id, data.booking_id)
