"""
Webhook Security Module

Verification for inbound payment gateway webhooks:
- Constant-time comparison of the shared secret hash
- Raw body read before parsing so the payload seen is the payload verified
"""

import hmac
import json
import logging
from typing import Optional

from fastapi import HTTPException, Request

from .config import FLUTTERWAVE_SECRET_HASH

logger = logging.getLogger(__name__)

FLUTTERWAVE_SIGNATURE_HEADER = "verif-hash"


def constant_time_compare(a: Optional[str], b: Optional[str]) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


async def verify_flutterwave_webhook(
    request: Request,
    secret_hash: Optional[str] = None,
    raise_on_failure: bool = True,
) -> tuple[bool, bytes]:
    """
    Verify a Flutterwave webhook.

    Flutterwave echoes the secret hash configured on the dashboard in the
    'verif-hash' header; there is no body signature.

    Returns:
        Tuple of (is_valid, raw_body)
    """
    secret_hash = secret_hash if secret_hash is not None else FLUTTERWAVE_SECRET_HASH
    raw_body = await request.body()
    received = request.headers.get(FLUTTERWAVE_SIGNATURE_HEADER, "")

    if not secret_hash:
        logger.error("❌ FLUTTERWAVE_SECRET_HASH not configured, rejecting webhook")
        if raise_on_failure:
            raise HTTPException(status_code=503, detail="Webhook verification not configured")
        return False, raw_body

    if not received:
        logger.warning("🚫 Flutterwave webhook missing verif-hash header")
        if raise_on_failure:
            raise HTTPException(status_code=401, detail="Missing webhook signature")
        return False, raw_body

    if not constant_time_compare(secret_hash, received):
        logger.warning("🚫 Flutterwave webhook verif-hash mismatch")
        if raise_on_failure:
            raise HTTPException(status_code=401, detail="Invalid webhook signature")
        return False, raw_body

    logger.debug("✅ Flutterwave webhook verified")
    return True, raw_body


def parse_webhook_body(raw_body: bytes) -> dict:
    """Decode a verified webhook body, rejecting anything but a JSON object"""
    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        logger.warning(f"🚫 Webhook body is not valid JSON: {e}")
        raise HTTPException(status_code=400, detail="Invalid webhook payload") from e

    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid webhook payload")
    return payload
