"""
Escrow service - capture client payments for bookings

Booking payment state: pending_payment -> pending (gateway session) -> paid.
The booking row is the only state this module owns; the gateway transaction
is an external fact it reconciles against.
"""

import logging
import time
from typing import Optional

from sqlalchemy.orm import Session

from ...authorization import ADMIN, AuthorizationGuard
from ...config import APP_URL, CURRENCY, PAYMENT_AMOUNT_TOLERANCE
from ...errors import (
    AmountMismatch,
    GatewayNotConfigured,
    NotFound,
    NotSuccessful,
    PreconditionFailed,
    ReconciliationRequired,
    ReferenceMismatch,
    Unauthorized,
    ValidationFailed,
)
from ...models import (
    APPLICATION_HIRED,
    APPLICATION_REJECTED,
    BOOKING_CONFIRMED,
    BOOKING_PENDING_PAYMENT,
    JOB_ASSIGNED,
    JOB_OPEN,
    PAYMENT_PAID,
    PAYMENT_PENDING,
    Booking,
    Job,
    Profile,
)
from ...services.flutterwave_service import FlutterwaveService, GatewayTransaction
from ...services.notification_service import (
    create_notification,
    format_naira,
    log_worker_activity,
    notify,
)
from ...services.saga import Saga, SagaAborted
from ...shared.validators import utcnow
from ..jobs.repository import JobRepository
from ..negotiation.repository import BookingRepository
from ..negotiation.schemas import BookingSummary

logger = logging.getLogger(__name__)


def build_tx_ref(booking_id: str) -> str:
    return f"CHR-{booking_id}-{int(time.time() * 1000)}"


class EscrowService:
    """Service layer for escrow payment capture"""

    def __init__(self, db: Session, gateway: FlutterwaveService):
        self.db = db
        self.gateway = gateway
        self.bookings = BookingRepository()
        self.jobs = JobRepository()
        self.guard = AuthorizationGuard(db)

    def _get_booking(self, booking_id: str) -> Booking:
        booking = self.bookings.get_booking(self.db, booking_id)
        if not booking:
            raise NotFound("Booking not found")
        return booking

    @staticmethod
    def job_accepts_booking(job: Job, booking: Booking) -> bool:
        """Open, or already assigned to this booking's worker by an accepted request"""
        if job.status == JOB_OPEN:
            return True
        return job.status == JOB_ASSIGNED and job.assigned_worker_id == booking.worker_id

    def _require_gateway(self) -> None:
        if not self.gateway.is_available():
            raise GatewayNotConfigured("Payment provider not configured (missing secret key)")

    async def initialize_payment(self, caller: Profile, booking_id: str) -> dict:
        """
        Open a hosted checkout session for a booking.

        The ledger is only written after the gateway accepts the session.
        """
        self._require_gateway()

        booking = self._get_booking(booking_id)
        self.guard.require_owner(caller, booking.client_id, "booking")

        if not booking.amount_ngn or booking.amount_ngn <= 0:
            raise ValidationFailed("Booking amount must be greater than zero", code="invalid_amount")
        if booking.payment_status == PAYMENT_PAID:
            raise PreconditionFailed("This booking has already been paid", code="already_paid")

        job = self.jobs.get_job(self.db, booking.job_id)
        if not job:
            raise NotFound("Job not found")
        # A captured charge cannot be refused later, so the job must still be fillable now
        if not self.job_accepts_booking(job, booking):
            raise PreconditionFailed(
                f"Job is {job.status} and can no longer be paid for",
                code="job_not_open",
                job_status=job.status,
            )

        # Reuse the reference so a retried checkout maps to the same session
        tx_ref = booking.flw_tx_ref or build_tx_ref(booking.id)

        client = self.guard.get_profile(booking.client_id)
        customer = {
            "email": client.email if client else None,
            "name": (client.full_name if client else None) or "Customer",
            "phonenumber": client.phone if client else None,
        }
        metadata = {
            "booking_id": booking.id,
            "job_id": booking.job_id,
            "client_id": booking.client_id,
            "worker_id": booking.worker_id,
            "type": "escrow_payment",
        }

        payment = await self.gateway.create_payment(
            amount=booking.amount_ngn,
            reference=tx_ref,
            redirect_url=f"{APP_URL}/client/payment/verify?booking={booking.id}",
            customer=customer,
            metadata=metadata,
            currency=CURRENCY,
            title="Escrow Payment",
            description=f"Payment for {job.title}",
        )

        self.bookings.update_booking(
            self.db,
            booking,
            flw_tx_ref=tx_ref,
            payment_status=PAYMENT_PENDING,
            status=BOOKING_PENDING_PAYMENT,
        )
        logger.info(f"💳 Payment session opened for booking {booking.id} ({tx_ref})")

        return {"success": True, "link": payment.link, "tx_ref": tx_ref}

    def _authorize_verifier(self, caller: Optional[Profile], booking: Booking) -> None:
        # caller None = gateway webhook, already authenticated by its shared secret
        if caller is None:
            return
        if caller.id == booking.client_id or self.guard.has_role(caller, ADMIN):
            return
        raise Unauthorized("Not authorized to act on this booking")

    @staticmethod
    def check_transaction(booking: Booking, transaction: GatewayTransaction) -> None:
        """
        Fail closed on any disagreement between the gateway and the booking.

        Raises:
            NotSuccessful: gateway status is not "successful"
            AmountMismatch: charged amount differs by more than the tolerance
            ReferenceMismatch: recorded and gateway references differ
        """
        if (transaction.status or "").lower() != "successful":
            raise NotSuccessful(
                f"Payment not successful (status: {transaction.status})",
                gateway_status=transaction.status,
            )

        if abs(transaction.amount - booking.amount_ngn) > PAYMENT_AMOUNT_TOLERANCE:
            raise AmountMismatch(
                f"Payment amount mismatch: expected {format_naira(booking.amount_ngn)}, "
                f"received {format_naira(transaction.amount)}",
                expected=booking.amount_ngn,
                received=transaction.amount,
            )

        if booking.flw_tx_ref and transaction.reference and booking.flw_tx_ref != transaction.reference:
            raise ReferenceMismatch(
                "Payment reference does not match this booking",
                expected=booking.flw_tx_ref,
                received=transaction.reference,
            )

    async def verify_payment(self, caller: Optional[Profile], transaction_id: str, booking_id: str) -> dict:
        """
        Confirm a captured payment and advance the booking.

        Safe to call repeatedly: a booking already marked paid returns at once
        with no gateway call and no notifications.
        """
        booking = self._get_booking(booking_id)
        self._authorize_verifier(caller, booking)

        if booking.payment_status == PAYMENT_PAID:
            logger.info(f"ℹ️ Booking {booking.id} already paid; skipping verification")
            return {
                "success": True,
                "already_verified": True,
                "message": "Payment already verified",
                "booking": BookingSummary.model_validate(booking),
                "saga": None,
            }

        self._require_gateway()
        transaction = await self.gateway.verify_transaction(transaction_id)
        self.check_transaction(booking, transaction)

        saga = self._payment_confirmation_saga(booking, transaction)
        try:
            result = await saga.run()
        except SagaAborted as e:
            raise ReconciliationRequired(
                f"Payment verified (transaction {transaction_id}) but the booking could not be "
                f"updated. Do not charge again; contact support with this reference.",
                transaction_id=transaction_id,
                booking_id=booking.id,
                failed_step=e.step,
                furthest_step=e.furthest_step,
            ) from e

        logger.info(f"✅ Payment verified for booking {booking.id}: {format_naira(transaction.amount)}")
        return {
            "success": True,
            "already_verified": False,
            "message": "Payment verified successfully",
            "booking": BookingSummary.model_validate(booking),
            "saga": result.to_dict(),
        }

    def _payment_confirmation_saga(self, booking: Booking, transaction: GatewayTransaction) -> Saga:
        job = self.jobs.get_job(self.db, booking.job_id)
        job_title = job.title if job else "your job"
        amount = booking.amount_ngn

        def mark_booking_paid():
            return self.bookings.update_booking(
                self.db,
                booking,
                payment_status=PAYMENT_PAID,
                status=BOOKING_CONFIRMED,
                paid_at=utcnow(),
                flw_transaction_id=transaction.id,
                flw_tx_ref=booking.flw_tx_ref or transaction.reference,
            )

        def held_by_worker() -> bool:
            return bool(job) and job.status == JOB_ASSIGNED and job.assigned_worker_id == booking.worker_id

        def assign_job():
            if not job:
                raise NotFound("Job not found")
            if not self.job_accepts_booking(job, booking):
                # Money is already captured; an admin has to refund or reassign by hand
                logger.error(
                    f"❌ Booking {booking.id} paid but job {job.id} is {job.status} "
                    f"(assigned to {job.assigned_worker_id}); not reassigning"
                )
                raise PreconditionFailed(
                    f"Job is {job.status} and cannot be assigned",
                    code="job_not_open",
                    job_status=job.status,
                )
            return self.jobs.update_job(
                self.db,
                job,
                status=JOB_ASSIGNED,
                assigned_worker_id=booking.worker_id,
                final_amount_ngn=amount,
            )

        def hire_application():
            if not held_by_worker():
                return None
            application = self.jobs.get_application(self.db, booking.job_id, booking.worker_id)
            if not application:
                logger.info(f"ℹ️ No application to mark hired for booking {booking.id}")
                return None
            return self.jobs.update_application(self.db, application, status=APPLICATION_HIRED)

        def close_other_applications():
            if not held_by_worker():
                return 0
            competing = self.jobs.get_competing_applications(self.db, booking.job_id, booking.worker_id)
            for application in competing:
                self.jobs.update_application(self.db, application, status=APPLICATION_REJECTED)
                notify(
                    self.db,
                    application.worker_id,
                    "application_rejected",
                    "Position Filled",
                    f"\"{job_title}\" has been filled by another worker",
                    {"job_id": booking.job_id, "application_id": application.id},
                )
            return len(competing)

        saga = Saga("payment_confirmation", on_step_error=self.db.rollback)
        saga.step("mark_booking_paid", mark_booking_paid, critical=True)
        saga.step(
            "log_worker_activity",
            lambda: log_worker_activity(
                self.db,
                booking.worker_id,
                "payment_received",
                f"Client paid {format_naira(amount)} into escrow for \"{job_title}\"",
                {"booking_id": booking.id, "job_id": booking.job_id, "amount": booking.worker_amount_ngn},
            ),
        )
        saga.step("assign_job", assign_job)
        saga.step("hire_application", hire_application)
        saga.step("close_other_applications", close_other_applications)
        saga.step(
            "notify_worker",
            lambda: create_notification(
                self.db,
                booking.worker_id,
                "payment_confirmed",
                "Payment Confirmed",
                f"The client has paid for \"{job_title}\". You can start the job.",
                {"booking_id": booking.id, "job_id": booking.job_id, "amount": booking.worker_amount_ngn},
            ),
        )
        saga.step(
            "notify_client",
            lambda: create_notification(
                self.db,
                booking.client_id,
                "payment_successful",
                "Payment Successful",
                f"Your payment of {format_naira(amount)} is held in escrow until the job is complete",
                {"booking_id": booking.id, "job_id": booking.job_id, "transaction_id": transaction.id},
            ),
        )
        return saga

    async def handle_charge_webhook(self, payload: dict) -> dict:
        """
        charge.completed: locate the booking and re-verify with the gateway.
        The webhook body itself is never trusted for amounts or status.
        """
        data = payload.get("data") or {}
        meta = data.get("meta") or {}
        booking_id = meta.get("booking_id")
        tx_ref = data.get("tx_ref")
        transaction_id = data.get("id")

        booking = None
        if booking_id:
            booking = self.bookings.get_booking(self.db, booking_id)
        if not booking and tx_ref:
            booking = self.bookings.get_booking_by_tx_ref(self.db, tx_ref)

        if not booking:
            logger.warning(f"⚠️ charge.completed for unknown booking (tx_ref={tx_ref}, booking={booking_id})")
            return {"status": "ignored", "reason": "booking_not_found"}
        if transaction_id is None:
            logger.warning(f"⚠️ charge.completed without transaction id for booking {booking.id}")
            return {"status": "ignored", "reason": "missing_transaction_id"}

        try:
            result = await self.verify_payment(None, str(transaction_id), booking.id)
        except ValidationFailed as e:
            # Gateway disagrees with the booking; retrying will not change that
            logger.warning(f"🚫 Webhook charge for booking {booking.id} rejected: {e.message}")
            return {"status": "rejected", "code": e.code, "booking_id": booking.id}

        return {
            "status": "processed",
            "booking_id": booking.id,
            "already_verified": result["already_verified"],
        }
