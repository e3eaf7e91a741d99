"""
Payout service - release escrowed funds to workers

A payout needs all three of: escrow paid, job completed, funds not yet
released. Once the gateway accepts the transfer the money has moved, so
from that point a ledger failure is reported as ReconciliationRequired with
the transfer reference instead of being retried.
"""

import logging
import secrets
import time
from typing import Optional

from sqlalchemy.orm import Session

from ...authorization import ADMIN, AuthorizationGuard
from ...config import API_URL
from ...errors import (
    AccountNameMismatch,
    GatewayNotConfigured,
    NotFound,
    PreconditionFailed,
    ReconciliationRequired,
    Unauthorized,
    ValidationFailed,
)
from ...models import (
    JOB_COMPLETED,
    PAYMENT_PAID,
    PAYOUT_COMPLETED,
    PAYOUT_FAILED,
    PAYOUT_PROCESSING,
    Booking,
    Job,
    Profile,
    Worker,
)
from ...services.banks import ensure_transfer_allowed, get_bank_code
from ...services.flutterwave_service import FlutterwaveService
from ...services.notification_service import create_notification, format_naira, notify
from ...services.saga import Saga, SagaAborted
from ...shared.validators import normalize_account_name, sanitize_account_number, utcnow
from ..jobs.repository import JobRepository
from ..negotiation.repository import BookingRepository
from .repository import AuditLogRepository, PayoutRepository, WorkerRepository
from .schemas import BankDetailsUpdate, PayoutCreate

logger = logging.getLogger(__name__)


def build_payout_reference(job_id: str) -> str:
    """CRD-<job prefix>-<epoch ms><random hex>"""
    return f"CRD-{job_id[:8]}-{int(time.time() * 1000)}{secrets.token_hex(3)}"


class PayoutService:
    """Service layer for worker payouts and payout destinations"""

    def __init__(self, db: Session, gateway: FlutterwaveService):
        self.db = db
        self.gateway = gateway
        self.guard = AuthorizationGuard(db)
        self.bookings = BookingRepository()
        self.jobs = JobRepository()
        self.workers = WorkerRepository()
        self.payouts = PayoutRepository()
        self.audit = AuditLogRepository()

    def _require_gateway(self) -> None:
        if not self.gateway.is_available():
            raise GatewayNotConfigured("Payment provider not configured (missing secret key)")

    def _get_worker(self, worker_id: str) -> Worker:
        worker = self.workers.get_worker(self.db, worker_id)
        if not worker:
            raise NotFound("Worker profile not found")
        return worker

    @staticmethod
    def check_release_preconditions(booking: Booking, job: Job) -> None:
        """Each condition on its own is enough to block a payout"""
        if booking.payment_status != PAYMENT_PAID:
            raise PreconditionFailed("Client payment has not been received for this booking", code="escrow_not_paid")
        if job.status != JOB_COMPLETED:
            raise PreconditionFailed(
                f"Job must be completed before payout (current status: {job.status})",
                code="job_not_completed",
            )
        if booking.worker_paid:
            raise PreconditionFailed("Worker has already been paid for this booking", code="already_paid_out")

    # ------------------------------------------------------------------
    # Payout
    # ------------------------------------------------------------------

    async def process_payout(self, caller: Profile, data: PayoutCreate) -> dict:
        admin = self.guard.require_role(caller, ADMIN)
        self._require_gateway()

        # Bank gating happens before anything can reach the gateway
        bank_code = ensure_transfer_allowed(data.bank_code or get_bank_code(data.bank_name))

        account_number = sanitize_account_number(data.account_number)
        if not account_number or not data.account_name:
            raise PreconditionFailed("Worker bank details are incomplete", code="missing_bank_details")

        booking = self.bookings.get_booking(self.db, data.booking_id)
        if not booking:
            raise NotFound("Booking not found")
        job = self.jobs.get_job(self.db, data.job_id)
        if not job:
            raise NotFound("Job not found")
        if booking.job_id != job.id or booking.worker_id != data.worker_id:
            raise ValidationFailed("Booking does not belong to this job and worker", code="booking_mismatch")

        self.check_release_preconditions(booking, job)

        if data.amount <= 0 or data.amount > booking.worker_amount_ngn:
            raise ValidationFailed(
                f"Payout amount must be between ₦1 and {format_naira(booking.worker_amount_ngn)}",
                code="invalid_amount",
                worker_amount_ngn=booking.worker_amount_ngn,
            )

        reference = build_payout_reference(job.id)
        logger.info(f"💸 Sending payout {reference}: {format_naira(data.amount)} to worker {data.worker_id}")

        receipt = await self.gateway.transfer(
            bank_code=bank_code,
            account_number=account_number,
            amount=data.amount,
            reference=reference,
            narration=f"Payment for {job.title}"[:100],
            beneficiary_name=data.account_name,
            callback_url=f"{API_URL}/webhooks/flutterwave",
        )

        saga = self._payout_saga(admin, booking, job, data, reference, receipt.transfer_id, bank_code, account_number)
        try:
            result = await saga.run()
        except SagaAborted as e:
            raise ReconciliationRequired(
                f"Payment processed (Ref: {reference}) but recording failed. "
                f"Please mark the booking as paid manually.",
                reference=reference,
                transfer_id=receipt.transfer_id,
                booking_id=booking.id,
                failed_step=e.step,
                furthest_step=e.furthest_step,
            ) from e

        return {
            "success": True,
            "reference": reference,
            "transfer_id": receipt.transfer_id,
            "amount": data.amount,
            "saga": result.to_dict(),
        }

    def _payout_saga(
        self,
        admin: Profile,
        booking: Booking,
        job: Job,
        data: PayoutCreate,
        reference: str,
        transfer_id: Optional[str],
        bank_code: str,
        account_number: str,
    ) -> Saga:
        def record_payout():
            now = utcnow()
            return self.payouts.record_release(
                self.db,
                booking,
                {
                    "worker_paid": True,
                    "worker_paid_at": now,
                    "payment_reference": reference,
                    "admin_notes": data.notes,
                },
                booking_id=booking.id,
                job_id=job.id,
                worker_id=booking.worker_id,
                admin_id=admin.id,
                amount=data.amount,
                status=PAYOUT_PROCESSING,
                reference=reference,
                transfer_id=transfer_id,
                bank_name=data.bank_name,
                bank_code=bank_code,
                account_number=account_number,
                account_name=data.account_name,
                notes=data.notes,
            )

        def credit_earnings():
            if not self.workers.credit_earnings(self.db, booking.worker_id, data.amount):
                raise NotFound(f"Worker profile {booking.worker_id} not found")
            return data.amount

        saga = Saga("worker_payout", on_step_error=self.db.rollback)
        saga.step("record_payout", record_payout, critical=True)
        saga.step("credit_earnings", credit_earnings)
        saga.step(
            "write_audit_log",
            lambda: self.audit.record(
                self.db,
                admin.id,
                "worker_payout",
                "booking",
                booking.id,
                {
                    "job_id": job.id,
                    "worker_id": booking.worker_id,
                    "amount": data.amount,
                    "reference": reference,
                    "transfer_id": transfer_id,
                    "bank_code": bank_code,
                },
            ),
        )
        saga.step(
            "notify_worker",
            lambda: create_notification(
                self.db,
                booking.worker_id,
                "payout_sent",
                "Payout Sent",
                f"{format_naira(data.amount)} for \"{job.title}\" is on its way to your bank account",
                {"booking_id": booking.id, "job_id": job.id, "amount": data.amount, "reference": reference},
            ),
        )
        return saga

    # ------------------------------------------------------------------
    # Bank details
    # ------------------------------------------------------------------

    async def verify_bank(
        self,
        caller: Profile,
        worker_id: str,
        account_number: Optional[str] = None,
        bank_name: Optional[str] = None,
        bank_code: Optional[str] = None,
        account_name: Optional[str] = None,
    ) -> dict:
        """
        Confirm the account on file belongs to the worker: the name the bank
        resolves must match the name given, ignoring case and spacing.
        """
        if caller is None or (caller.id != worker_id and not self.guard.has_role(caller, ADMIN)):
            raise Unauthorized("Not authorized to verify these bank details")

        worker = self._get_worker(worker_id)
        self._require_gateway()

        number = sanitize_account_number(account_number or worker.bank_account_number)
        if not number:
            raise ValidationFailed("Account number must be 10 digits", code="invalid_account_number")

        name = bank_name or worker.bank_name
        code = ensure_transfer_allowed(bank_code or get_bank_code(name) or worker.bank_code)

        expected_name = account_name or worker.account_name
        if not expected_name:
            raise ValidationFailed("Account name is required", code="missing_account_name")

        resolved = await self.gateway.resolve_account(code, number)
        if normalize_account_name(resolved.account_name) != normalize_account_name(expected_name):
            logger.warning(f"🚫 Account name mismatch for worker {worker_id}")
            raise AccountNameMismatch(
                f"Account name mismatch. Bank returned: {resolved.account_name}",
                resolved_name=resolved.account_name,
            )

        self.workers.update_worker(
            self.db,
            worker,
            bank_name=name,
            bank_code=code,
            bank_account_number=number,
            account_name=expected_name,
            bank_details_verified=True,
            bank_details_updated_at=utcnow(),
        )
        logger.info(f"✅ Bank details verified for worker {worker_id}")
        return {"success": True, "verified": True, "account_name": resolved.account_name, "bank_code": code}

    def update_bank_details(self, caller: Profile, worker_id: str, data: BankDetailsUpdate) -> Worker:
        """Store new payout details; they must be verified again before use"""
        self.guard.require_owner(caller, worker_id, "worker profile")
        worker = self._get_worker(worker_id)

        number = sanitize_account_number(data.account_number)
        if not number:
            raise ValidationFailed("Account number must be 10 digits", code="invalid_account_number")

        worker = self.workers.update_worker(
            self.db,
            worker,
            bank_name=data.bank_name,
            bank_code=data.bank_code or get_bank_code(data.bank_name),
            bank_account_number=number,
            account_name=data.account_name.strip(),
            bank_details_verified=False,
            bank_details_updated_at=utcnow(),
        )
        logger.info(f"🏦 Bank details updated for worker {worker_id}")
        return worker

    # ------------------------------------------------------------------
    # Admin views and reconciliation
    # ------------------------------------------------------------------

    def get_pending_payouts(self, caller: Profile) -> list[dict]:
        self.guard.require_role(caller, ADMIN)

        pending = []
        for booking, job in self.payouts.get_pending_releases(self.db):
            worker = self.workers.get_worker(self.db, booking.worker_id)
            pending.append(
                {
                    "booking_id": booking.id,
                    "job_id": job.id,
                    "job_title": job.title,
                    "worker_id": booking.worker_id,
                    "amount_ngn": booking.amount_ngn,
                    "commission_ngn": booking.commission_ngn,
                    "worker_amount_ngn": booking.worker_amount_ngn,
                    "completed_at": booking.completed_at,
                    "bank_name": worker.bank_name if worker else None,
                    "bank_code": worker.bank_code if worker else None,
                    "account_number": worker.bank_account_number if worker else None,
                    "account_name": worker.account_name if worker else None,
                    "bank_details_verified": bool(worker and worker.bank_details_verified),
                }
            )
        return pending

    def mark_booking_as_paid(
        self, caller: Profile, booking_id: str, payment_reference: str, notes: Optional[str] = None
    ) -> Booking:
        """Record a release by hand after a ReconciliationRequired payout"""
        admin = self.guard.require_role(caller, ADMIN)

        booking = self.bookings.get_booking(self.db, booking_id)
        if not booking:
            raise NotFound("Booking not found")
        if booking.payment_status != PAYMENT_PAID:
            raise PreconditionFailed(
                "Client payment has not been received for this booking", code="escrow_not_paid"
            )
        if booking.worker_paid:
            raise PreconditionFailed("Worker has already been paid for this booking", code="already_paid_out")

        booking = self.bookings.update_booking(
            self.db,
            booking,
            worker_paid=True,
            worker_paid_at=utcnow(),
            payment_reference=payment_reference,
            admin_notes=notes or "Manually marked as paid by admin",
        )
        logger.info(f"📝 Booking {booking_id} manually marked as paid ({payment_reference})")

        try:
            self.audit.record(
                self.db,
                admin.id,
                "mark_booking_paid",
                "booking",
                booking.id,
                {"payment_reference": payment_reference, "notes": notes, "manual_override": True},
            )
        except Exception as e:
            self.db.rollback()
            logger.warning(f"⚠️ Failed to write audit log for booking {booking_id}: {e}")
        return booking

    # ------------------------------------------------------------------
    # Gateway callbacks
    # ------------------------------------------------------------------

    def handle_transfer_webhook(self, payload: dict) -> dict:
        """transfer.completed: settle the payout record for the reference"""
        data = payload.get("data") or {}
        reference = data.get("reference")
        status = str(data.get("status") or "").upper()
        transfer_id = data.get("id")

        if not reference:
            logger.warning("⚠️ transfer.completed without reference")
            return {"status": "ignored", "reason": "missing_reference"}

        payout = self.payouts.get_by_reference(self.db, reference)
        if not payout:
            logger.warning(f"⚠️ No payout found for transfer reference {reference}")
            return {"status": "ignored", "reason": "payout_not_found"}

        if payout.status in (PAYOUT_COMPLETED, PAYOUT_FAILED):
            logger.info(f"ℹ️ Transfer {reference} already settled as {payout.status}")
            return {"status": "ignored", "reason": "already_processed", "payout_status": payout.status}

        booking = self.bookings.get_booking(self.db, payout.booking_id)

        if status == "SUCCESSFUL":
            self.payouts.update_payout(
                self.db,
                payout,
                status=PAYOUT_COMPLETED,
                completed_at=utcnow(),
                transfer_id=str(transfer_id) if transfer_id is not None else payout.transfer_id,
            )
            if booking and not booking.worker_paid:
                self.bookings.update_booking(
                    self.db, booking, worker_paid=True, worker_paid_at=utcnow(), payment_reference=reference
                )
            notify(
                self.db,
                payout.worker_id,
                "payment_sent",
                "Payment Sent to Your Account",
                f"Your payment of {format_naira(payout.amount)} has been sent to your bank account.",
                {"booking_id": payout.booking_id, "job_id": payout.job_id, "amount": payout.amount, "reference": reference},
            )
            logger.info(f"✅ Transfer {reference} completed")
            return {"status": "processed", "payout_status": PAYOUT_COMPLETED}

        if status == "FAILED":
            self.payouts.update_payout(self.db, payout, status=PAYOUT_FAILED)
            logger.error(f"❌ Transfer {reference} failed at the gateway")
            notify(
                self.db,
                payout.admin_id or (booking.client_id if booking else payout.worker_id),
                "transfer_failed",
                "Worker Payment Failed",
                f"Payment transfer to worker failed. Reference: {reference}. Please contact support.",
                {"booking_id": payout.booking_id, "reference": reference, "transfer_id": transfer_id},
            )
            return {"status": "processed", "payout_status": PAYOUT_FAILED}

        logger.info(f"ℹ️ Transfer {reference} status: {status or 'unknown'}")
        return {"status": "ignored", "reason": f"transfer_status_{status.lower() or 'unknown'}"}
