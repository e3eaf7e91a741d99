"""
Flutterwave Webhook Handler
Confirms escrow charges and settles worker transfers
"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ..database import get_db
from ..domain.escrow.service import EscrowService
from ..domain.payouts.service import PayoutService
from ..services.flutterwave_service import FlutterwaveService, get_gateway
from ..webhook_security import parse_webhook_body, verify_flutterwave_webhook

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/flutterwave", tags=["webhooks"])


@router.post("")
async def handle_flutterwave_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway: FlutterwaveService = Depends(get_gateway),
):
    """
    Handle Flutterwave webhook events

    Events handled:
    - charge.completed - client escrow payment (re-verified with the gateway)
    - transfer.completed - worker payout settled or failed
    """
    _, raw_body = await verify_flutterwave_webhook(request)
    payload = parse_webhook_body(raw_body)

    event = payload.get("event") or payload.get("event.type")
    logger.info(f"📥 Flutterwave webhook: {event}")

    if event == "charge.completed":
        result = await EscrowService(db, gateway).handle_charge_webhook(payload)
    elif event == "transfer.completed":
        result = PayoutService(db, gateway).handle_transfer_webhook(payload)
    else:
        logger.info(f"ℹ️ Unhandled Flutterwave event: {event}")
        result = {"status": "ignored", "reason": "unhandled_event"}

    return {"ok": True, "event": event, **result}


@router.get("")
async def webhook_health():
    return {"status": "ok", "message": "Flutterwave webhook endpoint is running"}
