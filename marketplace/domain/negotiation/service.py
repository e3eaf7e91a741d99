"""
Negotiation service - hire, booking requests and counter offers

Every path that fixes a price for a job/worker pair ends in
create_or_update_booking, which owns the booking post-conditions:

1. commission/worker split computed
2. the pair's pending_payment booking updated in place, or inserted
3. optionally the job assigned and the application hired (best-effort)
4. worker notified and activity logged (best-effort)
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...authorization import AuthorizationGuard
from ...config import BOOKING_REQUEST_TTL_HOURS, ENFORCE_BUDGET_BOUNDS
from ...errors import NotFound, PreconditionFailed, ValidationFailed
from ...models import (
    APPLICATION_HIRED,
    JOB_ASSIGNED,
    JOB_OPEN,
    PAYMENT_PENDING,
    REQUEST_ACCEPTED,
    REQUEST_COUNTERED,
    REQUEST_PENDING,
    REQUEST_REJECTED,
    Booking,
    BookingRequest,
    Job,
    Profile,
)
from ...services.notification_service import (
    create_notification,
    format_naira,
    log_worker_activity,
    notify,
)
from ...services.saga import Saga, SagaResult
from ...shared.pricing import split_amount
from ...shared.validators import parse_iso_datetime, utcnow
from ..jobs.repository import JobRepository
from .repository import BookingRepository
from .schemas import BookingRequestCreate, BookingRequestResponse

logger = logging.getLogger(__name__)


class NegotiationService:
    """Service layer for hiring and price negotiation"""

    def __init__(self, db: Session, enforce_budget: bool = ENFORCE_BUDGET_BOUNDS):
        self.db = db
        self.repo = BookingRepository()
        self.jobs = JobRepository()
        self.guard = AuthorizationGuard(db)
        self.enforce_budget = enforce_budget

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_job(self, job_id: str) -> Job:
        job = self.jobs.get_job(self.db, job_id)
        if not job:
            raise NotFound("Job not found")
        return job

    def _get_request(self, request_id: str) -> BookingRequest:
        booking_request = self.repo.get_booking_request(self.db, request_id)
        if not booking_request:
            raise NotFound("Booking request not found")
        return booking_request

    def check_budget(self, job: Job, amount: float) -> None:
        """Reject amounts outside the job's posted budget range"""
        if amount is None or amount <= 0:
            raise ValidationFailed("Amount must be greater than zero", code="invalid_amount")
        if not self.enforce_budget:
            return

        below = job.budget_min_ngn is not None and amount < job.budget_min_ngn
        above = job.budget_max_ngn is not None and amount > job.budget_max_ngn
        if below or above:
            raise ValidationFailed(
                f"Amount {format_naira(amount)} is outside the job budget "
                f"({format_naira(job.budget_min_ngn)} - {format_naira(job.budget_max_ngn)})",
                code="amount_outside_budget",
                budget_min_ngn=job.budget_min_ngn,
                budget_max_ngn=job.budget_max_ngn,
            )

    @staticmethod
    def _ensure_job_open(job: Job) -> None:
        if job.status != JOB_OPEN:
            raise PreconditionFailed(
                f"Job is {job.status}; only open jobs can be booked",
                code="job_not_open",
                job_status=job.status,
            )

    @staticmethod
    def _ensure_open(booking_request: BookingRequest, expected_status: str, now: datetime) -> None:
        status = booking_request.effective_status(now)
        if status != expected_status:
            raise PreconditionFailed(
                f"Booking request is {status}, expected {expected_status}",
                code=f"request_{status}",
            )

    # ------------------------------------------------------------------
    # Booking construction
    # ------------------------------------------------------------------

    async def create_or_update_booking(
        self,
        job: Job,
        client_id: str,
        worker_id: str,
        amount: float,
        scheduled_date: Optional[datetime],
        booking_request_id: Optional[str] = None,
        advance_assignment: bool = False,
        negotiation_rounds: int = 0,
    ) -> tuple[Booking, bool, SagaResult]:
        """
        Single construction path for bookings.

        Returns:
            (booking, created, saga_result)
        """
        commission, worker_amount = split_amount(amount)

        values = {
            "client_id": client_id,
            "amount_ngn": amount,
            "commission_ngn": commission,
            "worker_amount_ngn": worker_amount,
            "scheduled_date": scheduled_date,
            "payment_status": PAYMENT_PENDING,
        }
        if booking_request_id:
            values["booking_request_id"] = booking_request_id
            values["negotiated_amount"] = amount
            values["negotiation_rounds"] = negotiation_rounds

        booking, created = self.repo.upsert_pending_booking(self.db, job.id, worker_id, **values)
        logger.info(
            f"{'🆕 Created' if created else '🔁 Updated'} booking {booking.id} for job {job.id}: "
            f"{format_naira(amount)} (commission {format_naira(commission)})"
        )

        saga = Saga("booking_construction", on_step_error=self.db.rollback)
        if advance_assignment:
            saga.step("assign_job", lambda: self._assign_job(job, worker_id, amount))
            saga.step("hire_application", lambda: self._hire_application(job.id, worker_id))

        saga.step(
            "notify_worker",
            lambda: create_notification(
                self.db,
                worker_id,
                "booking_pending_payment",
                "New Booking",
                f"You've been selected for \"{job.title}\" at {format_naira(amount)}. "
                f"Work starts once the client completes payment.",
                {"booking_id": booking.id, "job_id": job.id, "amount": amount},
            ),
        )
        saga.step(
            "log_worker_activity",
            lambda: log_worker_activity(
                self.db,
                worker_id,
                "job_selected",
                f"Selected for \"{job.title}\"",
                {"booking_id": booking.id, "job_id": job.id, "amount": worker_amount},
            ),
        )

        result = await saga.run()
        return booking, created, result

    def _assign_job(self, job: Job, worker_id: str, amount: float) -> Job:
        # Only an open job moves to assigned; anything later is never pulled back
        if job.status != JOB_OPEN:
            logger.warning(f"⚠️ Job {job.id} is {job.status}; not assigning worker {worker_id}")
            raise PreconditionFailed(f"Job is {job.status} and cannot be assigned", code="job_not_open")
        return self.jobs.update_job(
            self.db,
            job,
            status=JOB_ASSIGNED,
            assigned_worker_id=worker_id,
            final_amount_ngn=amount,
        )

    def _hire_application(self, job_id: str, worker_id: str):
        application = self.jobs.get_application(self.db, job_id, worker_id)
        if not application:
            logger.info(f"ℹ️ No application from worker {worker_id} on job {job_id}; nothing to mark hired")
            return None
        return self.jobs.update_application(self.db, application, status=APPLICATION_HIRED)

    # ------------------------------------------------------------------
    # Direct hire
    # ------------------------------------------------------------------

    async def hire(
        self,
        caller: Profile,
        job_id: str,
        worker_id: str,
        amount: float,
        scheduled_date: str,
    ) -> tuple[Booking, bool, SagaResult]:
        """
        Hire an applicant. Leaves the job open and the application pending;
        both advance once payment is verified.
        """
        job = self._get_job(job_id)
        self.guard.require_owner(caller, job.client_id, "job")
        self._ensure_job_open(job)

        if not self.jobs.get_application(self.db, job_id, worker_id):
            raise NotFound("Application not found for this worker")

        parsed_date = parse_iso_datetime(scheduled_date)
        if parsed_date is None:
            raise ValidationFailed("scheduled_date must be an ISO-8601 timestamp", code="invalid_date")

        self.check_budget(job, amount)

        logger.info(f"🤝 Client {caller.id} hiring worker {worker_id} for job {job_id}")
        return await self.create_or_update_booking(job, caller.id, worker_id, amount, parsed_date)

    # ------------------------------------------------------------------
    # Booking requests
    # ------------------------------------------------------------------

    def send_booking_request(self, caller: Profile, data: BookingRequestCreate) -> BookingRequest:
        """Client offers a job to a specific worker"""
        job = self._get_job(data.job_id)
        self.guard.require_owner(caller, job.client_id, "job")

        self._ensure_job_open(job)

        scheduled_date = None
        if data.scheduled_date:
            scheduled_date = parse_iso_datetime(data.scheduled_date)
            if scheduled_date is None:
                raise ValidationFailed("scheduled_date must be an ISO-8601 timestamp", code="invalid_date")

        self.check_budget(job, data.amount)

        booking_request = self.repo.create_booking_request(
            self.db,
            job_id=job.id,
            client_id=caller.id,
            worker_id=data.worker_id,
            scheduled_date=scheduled_date,
            proposed_amount_ngn=data.amount,
            worker_rate_ngn=data.worker_rate_ngn,
            negotiation_note=data.note,
            status=REQUEST_PENDING,
            expires_at=utcnow() + timedelta(hours=BOOKING_REQUEST_TTL_HOURS),
        )
        logger.info(f"📨 Booking request {booking_request.id} sent to worker {data.worker_id}")

        notify(
            self.db,
            data.worker_id,
            "booking_request",
            "New Booking Request",
            f"{caller.full_name or 'A client'} wants to book you for \"{job.title}\" "
            f"at {format_naira(data.amount)}",
            {"booking_request_id": booking_request.id, "job_id": job.id, "amount": data.amount},
        )
        return booking_request

    async def accept_booking_request(self, caller: Profile, request_id: str) -> tuple[Booking, bool, SagaResult]:
        """Worker accepts the client's offer as proposed"""
        booking_request = self._get_request(request_id)
        self.guard.require_owner(caller, booking_request.worker_id, "booking request")
        self._ensure_open(booking_request, REQUEST_PENDING, utcnow())

        job = self._get_job(booking_request.job_id)
        self._ensure_job_open(job)
        self.repo.update_booking_request(self.db, booking_request, status=REQUEST_ACCEPTED)

        booking, created, saga = await self.create_or_update_booking(
            job,
            booking_request.client_id,
            booking_request.worker_id,
            booking_request.proposed_amount_ngn,
            booking_request.scheduled_date,
            booking_request_id=booking_request.id,
            advance_assignment=True,
        )

        notify(
            self.db,
            booking_request.client_id,
            "booking_confirmed",
            "Booking Accepted",
            f"{caller.full_name or 'The worker'} accepted \"{job.title}\". Complete payment to confirm.",
            {"booking_request_id": booking_request.id, "booking_id": booking.id, "job_id": job.id},
        )
        return booking, created, saga

    def reject_booking_request(self, caller: Profile, request_id: str) -> BookingRequest:
        booking_request = self._get_request(request_id)
        self.guard.require_owner(caller, booking_request.worker_id, "booking request")
        self._ensure_open(booking_request, REQUEST_PENDING, utcnow())

        booking_request = self.repo.update_booking_request(self.db, booking_request, status=REQUEST_REJECTED)
        logger.info(f"🚫 Booking request {request_id} rejected by worker {caller.id}")

        notify(
            self.db,
            booking_request.client_id,
            "booking_rejected",
            "Booking Request Declined",
            f"{caller.full_name or 'The worker'} declined your booking request",
            {"booking_request_id": booking_request.id, "job_id": booking_request.job_id},
        )
        return booking_request

    def send_counter_offer(
        self, caller: Profile, request_id: str, amount: float, note: Optional[str] = None
    ) -> BookingRequest:
        """Worker proposes a different price"""
        booking_request = self._get_request(request_id)
        self.guard.require_owner(caller, booking_request.worker_id, "booking request")
        self._ensure_open(booking_request, REQUEST_PENDING, utcnow())

        job = self._get_job(booking_request.job_id)
        self._ensure_job_open(job)
        self.check_budget(job, amount)

        booking_request = self.repo.update_booking_request(
            self.db,
            booking_request,
            status=REQUEST_COUNTERED,
            counter_offer_ngn=amount,
            counter_note=note,
        )
        logger.info(f"💬 Counter offer of {format_naira(amount)} on request {request_id}")

        notify(
            self.db,
            booking_request.client_id,
            "booking_counter_offer",
            "Counter Offer Received",
            f"{caller.full_name or 'The worker'} proposed {format_naira(amount)} for \"{job.title}\"",
            {
                "booking_request_id": booking_request.id,
                "job_id": job.id,
                "counter_amount": amount,
                "counter_note": note,
            },
        )
        return booking_request

    async def accept_counter_offer(self, caller: Profile, request_id: str) -> tuple[Booking, bool, SagaResult]:
        """Client accepts the worker's counter price"""
        booking_request = self._get_request(request_id)
        self.guard.require_owner(caller, booking_request.client_id, "booking request")
        self._ensure_open(booking_request, REQUEST_COUNTERED, utcnow())

        job = self._get_job(booking_request.job_id)
        self._ensure_job_open(job)
        amount = booking_request.counter_offer_ngn
        self.check_budget(job, amount)

        self.repo.update_booking_request(
            self.db, booking_request, status=REQUEST_ACCEPTED, proposed_amount_ngn=amount
        )

        booking, created, saga = await self.create_or_update_booking(
            job,
            booking_request.client_id,
            booking_request.worker_id,
            amount,
            booking_request.scheduled_date,
            booking_request_id=booking_request.id,
            advance_assignment=True,
            negotiation_rounds=1,
        )

        notify(
            self.db,
            booking_request.worker_id,
            "counter_offer_accepted",
            "Counter Offer Accepted",
            f"Your counter offer of {format_naira(amount)} for \"{job.title}\" was accepted",
            {"booking_request_id": booking_request.id, "booking_id": booking.id, "job_id": job.id},
        )
        return booking, created, saga

    def list_booking_requests(self, caller: Profile) -> list[BookingRequestResponse]:
        """Requests on either side of the negotiation, labeled with their effective status"""
        now = utcnow()
        return [
            BookingRequestResponse.model_validate(r).model_copy(update={"status": r.effective_status(now)})
            for r in self.repo.get_booking_requests_for(self.db, caller.id)
        ]
