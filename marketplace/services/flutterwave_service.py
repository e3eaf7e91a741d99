"""Flutterwave service - Integration with the Flutterwave v3 API"""

import logging
from typing import Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel

from ..config import (
    CURRENCY,
    FLUTTERWAVE_BASE_URL,
    FLUTTERWAVE_SECRET_KEY,
    GATEWAY_TIMEOUT_SECONDS,
)
from ..errors import GatewayError, GatewayNotConfigured

logger = logging.getLogger(__name__)


class PaymentLink(BaseModel):
    """Hosted checkout session"""

    link: str
    reference: str


class GatewayTransaction(BaseModel):
    """Authoritative transaction state as reported by the gateway"""

    id: Optional[str] = None
    status: str
    amount: float
    reference: Optional[str] = None
    currency: Optional[str] = None
    meta: Optional[dict] = None


class TransferReceipt(BaseModel):
    transfer_id: Optional[str] = None
    status: Optional[str] = None
    reference: str


class ResolvedAccount(BaseModel):
    account_number: str
    account_name: str


def _error_message(body) -> str:
    """Pull the most readable message out of a Flutterwave error body"""
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
        if not message and isinstance(body.get("meta"), dict):
            message = body["meta"].get("authorization")
        if message:
            return str(message)
    return str(body)


class FlutterwaveService:
    """Service for Flutterwave API operations"""

    def __init__(
        self,
        secret_key: Optional[str] = FLUTTERWAVE_SECRET_KEY,
        base_url: str = FLUTTERWAVE_BASE_URL,
        timeout: float = GATEWAY_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

        if not self.secret_key:
            logger.warning(
                "FLUTTERWAVE_SECRET_KEY not set; payment endpoints will fail until configured"
            )

    def is_available(self) -> bool:
        """Check if the gateway secret is configured"""
        return bool(self.secret_key)

    def _require_configured(self) -> None:
        if not self.secret_key:
            raise GatewayNotConfigured("Payment provider not configured (missing secret key)")

    async def _request(self, method: str, path: str, action: str, payload: Optional[dict] = None) -> dict:
        """
        Perform one authenticated call. No retries: a transient failure is
        surfaced to the caller as a GatewayError.
        """
        self._require_configured()

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self.transport
            ) as http_client:
                response = await http_client.request(
                    method,
                    path,
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {self.secret_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Flutterwave {action} request failed: {e}")
            raise GatewayError(f"Flutterwave {action} failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {"message": response.text}

        if response.status_code >= 400 or (isinstance(body, dict) and body.get("status") == "error"):
            message = _error_message(body)
            logger.error(f"❌ Flutterwave {action} rejected (HTTP {response.status_code}): {message}")
            raise GatewayError(f"Flutterwave {action} failed: {message}", gateway_status=response.status_code)

        return body

    async def create_payment(
        self,
        amount: float,
        reference: str,
        redirect_url: str,
        customer: dict,
        metadata: dict,
        currency: str = CURRENCY,
        title: str = "Escrow Payment",
        description: Optional[str] = None,
    ) -> PaymentLink:
        """Create a hosted payment session and return its checkout link"""
        payload = {
            "tx_ref": reference,
            "amount": amount,
            "currency": currency,
            "redirect_url": redirect_url,
            "payment_options": "card,banktransfer,ussd,mobilemoney",
            "customer": customer,
            "meta": metadata,
            "customizations": {"title": title, "description": description or title},
        }
        body = await self._request("POST", "/payments", "init", payload)

        data = body.get("data") or {}
        link = data.get("link") or ((body.get("meta") or {}).get("authorization") or {}).get("redirect")
        if not link:
            raise GatewayError("No payment link returned by Flutterwave")

        logger.info(f"✅ Flutterwave payment session created for {reference}")
        return PaymentLink(link=link, reference=reference)

    async def verify_transaction(self, transaction_id: str) -> GatewayTransaction:
        """Fetch the authoritative status of a transaction"""
        body = await self._request(
            "GET", f"/transactions/{quote(str(transaction_id), safe='')}/verify", "verify"
        )

        data = body.get("data") or {}
        status = data.get("status") or body.get("status")
        if not status:
            raise GatewayError("Unexpected verify response structure from Flutterwave")

        amount = data.get("amount")
        if amount is None:
            amount = data.get("charged_amount", 0)

        return GatewayTransaction(
            id=str(data["id"]) if data.get("id") is not None else str(transaction_id),
            status=str(status),
            amount=float(amount or 0),
            reference=data.get("tx_ref") or data.get("flw_ref"),
            currency=data.get("currency"),
            meta=data.get("meta"),
        )

    async def transfer(
        self,
        bank_code: str,
        account_number: str,
        amount: float,
        reference: str,
        narration: str,
        beneficiary_name: str,
        callback_url: Optional[str] = None,
        currency: str = CURRENCY,
    ) -> TransferReceipt:
        """Send a bank transfer to a beneficiary account"""
        payload = {
            "account_bank": bank_code,
            "account_number": account_number,
            "amount": amount,
            "narration": narration,
            "currency": currency,
            "debit_currency": currency,
            "reference": reference,
            "beneficiary_name": beneficiary_name,
        }
        if callback_url:
            payload["callback_url"] = callback_url

        body = await self._request("POST", "/transfers", "transfer", payload)
        if body.get("status") != "success":
            raise GatewayError(f"Transfer failed: {_error_message(body)}")

        data = body.get("data") or {}
        logger.info(f"✅ Flutterwave transfer queued: {reference}")
        return TransferReceipt(
            transfer_id=str(data["id"]) if data.get("id") is not None else None,
            status=data.get("status"),
            reference=reference,
        )

    async def resolve_account(self, bank_code: str, account_number: str) -> ResolvedAccount:
        """Resolve the registered account name behind an account number"""
        body = await self._request(
            "POST",
            "/accounts/resolve",
            "account resolve",
            {"account_number": account_number, "account_bank": bank_code},
        )
        if body.get("status") != "success":
            raise GatewayError(_error_message(body) or "Bank provider verification failed")

        data = body.get("data") or {}
        account_name = data.get("account_name")
        if not account_name:
            raise GatewayError("Bank provider returned no account name")

        return ResolvedAccount(
            account_number=str(data.get("account_number") or account_number),
            account_name=account_name,
        )


# Singleton instance
flutterwave_service = FlutterwaveService()


def get_gateway() -> FlutterwaveService:
    """Dependency injection for the payment gateway client"""
    return flutterwave_service
