"""Fulfillment service - job progress, deletion, completion and reviews"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...authorization import AuthorizationGuard
from ...errors import HasActiveBookings, NotFound, PreconditionFailed
from ...models import (
    ACTIVE_BOOKING_STATUSES,
    BOOKING_CANCELLED,
    BOOKING_COMPLETED,
    BOOKING_CONFIRMED,
    BOOKING_IN_PROGRESS,
    JOB_ASSIGNED,
    JOB_CANCELLED,
    JOB_COMPLETED,
    JOB_IN_PROGRESS,
    JOB_OPEN,
    PAYMENT_PAID,
    Booking,
    Job,
    Profile,
    Review,
)
from ...services.notification_service import create_notification, log_worker_activity, notify
from ...services.saga import Saga, SagaResult
from ...shared.validators import utcnow
from ..jobs.repository import JobRepository
from ..negotiation.repository import BookingRepository
from ..payouts.repository import WorkerRepository
from .repository import ReviewRepository
from .schemas import ReviewCreate

logger = logging.getLogger(__name__)

# Client-driven job transitions; open -> assigned happens on payment verification
JOB_TRANSITIONS = {
    JOB_OPEN: {JOB_CANCELLED},
    JOB_ASSIGNED: {JOB_IN_PROGRESS, JOB_CANCELLED},
    JOB_IN_PROGRESS: {JOB_COMPLETED, JOB_CANCELLED},
    JOB_COMPLETED: set(),
    JOB_CANCELLED: set(),
}


class FulfillmentService:
    """Service layer for work execution and completion"""

    def __init__(self, db: Session):
        self.db = db
        self.jobs = JobRepository()
        self.bookings = BookingRepository()
        self.reviews = ReviewRepository()
        self.workers = WorkerRepository()
        self.guard = AuthorizationGuard(db)

    def _get_owned_job(self, caller: Profile, job_id: str) -> Job:
        job = self.jobs.get_job(self.db, job_id)
        if not job:
            raise NotFound("Job not found")
        self.guard.require_owner(caller, job.client_id, "job")
        return job

    def _get_booking(self, booking_id: str) -> Booking:
        booking = self.bookings.get_booking(self.db, booking_id)
        if not booking:
            raise NotFound("Booking not found")
        return booking

    @staticmethod
    def _blocking_bookings(bookings: list[Booking]) -> list[Booking]:
        """Bookings that hold the job: work under way or escrow not yet released"""
        return [
            b
            for b in bookings
            if b.status in ACTIVE_BOOKING_STATUSES
            or (b.payment_status == PAYMENT_PAID and not b.worker_paid and b.status != BOOKING_CANCELLED)
        ]

    # ------------------------------------------------------------------
    # Job status
    # ------------------------------------------------------------------

    async def update_job_status(self, caller: Profile, job_id: str, status: str) -> tuple[Job, Optional[SagaResult]]:
        """
        Move a job through its lifecycle.

        in_progress needs a paid booking for the assigned worker; both
        in_progress and completed are mirrored onto that booking.
        """
        job = self._get_owned_job(caller, job_id)

        if status == job.status:
            return job, None
        if status not in JOB_TRANSITIONS.get(job.status, set()):
            raise PreconditionFailed(
                f"Cannot change job status from {job.status} to {status}",
                code="invalid_transition",
                current_status=job.status,
            )

        if status == JOB_CANCELLED:
            blocking = self._blocking_bookings(self.bookings.get_job_bookings(self.db, job.id))
            if blocking:
                raise HasActiveBookings(
                    "Cannot cancel a job with an active booking",
                    booking_ids=[b.id for b in blocking],
                )
            job = self.jobs.update_job(self.db, job, status=JOB_CANCELLED)
            logger.info(f"🛑 Job {job.id} cancelled by client {caller.id}")
            return job, None

        if status == JOB_IN_PROGRESS:
            booking = self.bookings.get_worker_booking(
                self.db, job.id, job.assigned_worker_id, BOOKING_CONFIRMED
            )
            if not booking or booking.payment_status != PAYMENT_PAID:
                raise PreconditionFailed(
                    "Payment must be verified before work starts", code="payment_required"
                )
        else:
            booking = self.bookings.get_worker_booking(
                self.db, job.id, job.assigned_worker_id, BOOKING_IN_PROGRESS
            )

        job = self.jobs.update_job(self.db, job, status=status)
        logger.info(f"🔄 Job {job.id} moved to {status}")

        result = await self._mirror_status(job, booking, status)
        return job, result

    async def _mirror_status(self, job: Job, booking: Optional[Booking], status: str) -> SagaResult:
        worker_id = job.assigned_worker_id
        started = status == JOB_IN_PROGRESS

        def mirror_booking():
            if not booking:
                logger.warning(f"⚠️ No booking to mirror {status} onto for job {job.id}")
                return None
            if started:
                return self.bookings.update_booking(self.db, booking, status=BOOKING_IN_PROGRESS)
            return self.bookings.update_booking(
                self.db, booking, status=BOOKING_COMPLETED, completed_at=utcnow()
            )

        saga = Saga(f"job_{status}", on_step_error=self.db.rollback)
        saga.step("mirror_booking", mirror_booking)
        if not started:
            saga.step("count_completed_job", lambda: self.workers.increment_completed_jobs(self.db, worker_id))
        saga.step(
            "notify_worker",
            lambda: create_notification(
                self.db,
                worker_id,
                "job_started" if started else "job_completed",
                "Job Started" if started else "Job Completed",
                f"\"{job.title}\" is now in progress"
                if started
                else f"\"{job.title}\" was marked complete. Your payout will be processed shortly.",
                {"job_id": job.id, "booking_id": booking.id if booking else None},
            ),
        )
        saga.step(
            "log_worker_activity",
            lambda: log_worker_activity(
                self.db,
                worker_id,
                "job_started" if started else "job_completed",
                f"{'Started' if started else 'Completed'} \"{job.title}\"",
                {"job_id": job.id, "booking_id": booking.id if booking else None},
            ),
        )
        return await saga.run()

    def delete_job(self, caller: Profile, job_id: str) -> dict:
        job = self._get_owned_job(caller, job_id)

        blocking = self._blocking_bookings(self.bookings.get_job_bookings(self.db, job.id))
        if blocking:
            raise HasActiveBookings(
                "Cannot delete a job with an active booking",
                booking_ids=[b.id for b in blocking],
            )

        self.jobs.delete_job(self.db, job)
        logger.info(f"🗑️ Job {job_id} deleted by client {caller.id}")
        return {"success": True, "message": "Job deleted"}

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def submit_job_completion(self, caller: Profile, booking_id: str, notes: Optional[str] = None) -> Booking:
        """Worker reports the work done; the client confirms by completing the job"""
        booking = self._get_booking(booking_id)
        self.guard.require_owner(caller, booking.worker_id, "booking")

        if booking.status != BOOKING_IN_PROGRESS:
            raise PreconditionFailed(
                "Only bookings in progress can be submitted for completion",
                code="not_in_progress",
            )

        booking = self.bookings.update_booking(
            self.db, booking, completion_notes=notes, completion_submitted_at=utcnow()
        )
        logger.info(f"📋 Completion submitted for booking {booking.id}")

        job = self.jobs.get_job(self.db, booking.job_id)
        notify(
            self.db,
            booking.client_id,
            "job_completion_submitted",
            "Job Ready for Review",
            f"The worker has finished \"{job.title if job else 'your job'}\". Please confirm completion.",
            {"booking_id": booking.id, "job_id": booking.job_id},
        )
        return booking

    # ------------------------------------------------------------------
    # Reviews
    # ------------------------------------------------------------------

    def create_review(self, caller: Profile, booking_id: str, data: ReviewCreate) -> Review:
        booking = self._get_booking(booking_id)
        self.guard.require_owner(caller, booking.client_id, "booking")

        if booking.status != BOOKING_COMPLETED:
            raise PreconditionFailed("Reviews can only be left for completed bookings", code="not_completed")

        if self.reviews.get_by_booking(self.db, booking.id):
            raise PreconditionFailed("Review already submitted for this booking", code="review_exists")

        try:
            review = self.reviews.create_review(
                self.db,
                booking_id=booking.id,
                worker_id=booking.worker_id,
                client_id=caller.id,
                rating=data.rating,
                comment=data.comment,
                punctuality=data.punctuality,
                quality=data.quality,
                communication=data.communication,
            )
        except IntegrityError as e:
            self.db.rollback()
            raise PreconditionFailed("Review already submitted for this booking", code="review_exists") from e

        logger.info(f"⭐ Review {review.id} ({data.rating}/5) for worker {booking.worker_id}")
        self._refresh_worker_rating(booking.worker_id)
        notify(
            self.db,
            booking.worker_id,
            "new_review",
            "New Review",
            f"You received a {data.rating}-star review",
            {"booking_id": booking.id, "review_id": review.id, "rating": data.rating},
        )
        return review

    def _refresh_worker_rating(self, worker_id: str) -> None:
        try:
            worker = self.workers.get_worker(self.db, worker_id)
            if not worker:
                logger.warning(f"⚠️ No worker profile for {worker_id}; rating not updated")
                return
            average, count = self.workers.get_rating_stats(self.db, worker_id)
            self.workers.update_worker(
                self.db,
                worker,
                rating=round(average or 0, 2),
                total_reviews=count,
            )
        except Exception as e:
            self.db.rollback()
            logger.warning(f"⚠️ Failed to update rating for worker {worker_id}: {e}")

    def get_worker_reviews(self, worker_id: str) -> list[Review]:
        return self.reviews.get_worker_reviews(self.db, worker_id)
