"""Job service - Business logic for job posting and applications"""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...authorization import CLIENT, WORKER, AuthorizationGuard
from ...errors import NotFound, PreconditionFailed
from ...models import APPLICATION_HIRED, APPLICATION_WITHDRAWN, JOB_OPEN, Application, Job, Profile
from ...services.notification_service import format_naira, notify, record_activity
from .repository import JobRepository
from .schemas import ApplicationCreate, ApplicationUpdate, JobCreate

logger = logging.getLogger(__name__)


class JobService:
    """Service layer for jobs and applications"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = JobRepository()
        self.guard = AuthorizationGuard(db)

    def get_job(self, job_id: str) -> Job:
        job = self.repo.get_job(self.db, job_id)
        if not job:
            raise NotFound("Job not found")
        return job

    def create_job(self, data: JobCreate, user: Profile) -> Job:
        """Post a new open job"""
        self.guard.require_role(user, CLIENT)
        logger.info(f"📥 Creating job for client {user.id}")
        return self.repo.create_job(self.db, user.id, **data.model_dump())

    def apply_for_job(self, job_id: str, data: ApplicationCreate, user: Profile) -> Application:
        """Worker applies to an open job, once"""
        self.guard.require_role(user, WORKER)
        job = self.get_job(job_id)

        if job.status != JOB_OPEN:
            raise PreconditionFailed("This job is no longer accepting applications", code="job_not_open")

        if self.repo.get_application(self.db, job_id, user.id):
            raise PreconditionFailed("You have already applied for this job", code="already_applied")

        try:
            application = self.repo.create_application(
                self.db,
                job_id,
                user.id,
                proposed_amount=data.proposed_amount,
                cover_letter=data.cover_letter,
            )
        except IntegrityError as e:
            self.db.rollback()
            raise PreconditionFailed("You have already applied for this job", code="already_applied") from e

        logger.info(f"✅ Worker {user.id} applied for job {job_id}")

        amount_text = f" for {format_naira(data.proposed_amount)}" if data.proposed_amount else ""
        notify(
            self.db,
            job.client_id,
            "new_application",
            "New Application",
            f"{user.full_name or 'A worker'} applied to your job \"{job.title}\"{amount_text}",
            {"job_id": job.id, "application_id": application.id, "worker_id": user.id},
        )
        record_activity(
            self.db,
            user.id,
            "job_applied",
            f"You applied for \"{job.title}\"",
            {"job_id": job.id, "application_id": application.id},
        )
        return application

    def update_application(self, application_id: str, data: ApplicationUpdate, user: Profile) -> Application:
        """Withdraw an application the caller owns"""
        application = self.repo.get_application_by_id(self.db, application_id)
        if not application:
            raise NotFound("Application not found")

        self.guard.require_owner(user, application.worker_id, "application")

        if application.status == APPLICATION_HIRED:
            raise PreconditionFailed("A hired application cannot be withdrawn")

        if data.status == APPLICATION_WITHDRAWN:
            logger.info(f"↩️ Worker {user.id} withdrew application {application_id}")
        return self.repo.update_application(self.db, application, status=data.status)

    def list_applications(self, job_id: str, user: Profile) -> list[Application]:
        job = self.get_job(job_id)
        self.guard.require_owner(user, job.client_id, "job")
        return self.repo.get_applications(self.db, job_id)

    def list_my_jobs(self, user: Profile) -> list[Job]:
        return self.repo.get_client_jobs(self.db, user.id)

    def pending_application_count(self, user: Profile) -> int:
        return self.repo.count_pending_applications(self.db, user.id)
