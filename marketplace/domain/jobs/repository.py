"""Job repository - Database operations for jobs and applications"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import APPLICATION_PENDING, JOB_OPEN, Application, Job


class JobRepository:
    """Repository for job and application database operations"""

    @staticmethod
    def get_job(db: Session, job_id: str) -> Optional[Job]:
        """Get job by ID"""
        return db.query(Job).filter(Job.id == job_id).first()

    @staticmethod
    def create_job(db: Session, client_id: str, **job_data) -> Job:
        """Create a new job"""
        job = Job(client_id=client_id, **job_data)
        db.add(job)
        db.commit()
        db.refresh(job)
        return job

    @staticmethod
    def update_job(db: Session, job: Job, **updates) -> Job:
        """Apply the given column updates and commit"""
        for key, value in updates.items():
            setattr(job, key, value)
        db.commit()
        db.refresh(job)
        return job

    @staticmethod
    def delete_job(db: Session, job: Job) -> None:
        """Delete a job (applications, requests and bookings cascade)"""
        db.delete(job)
        db.commit()

    @staticmethod
    def get_client_jobs(db: Session, client_id: str, status: Optional[str] = None) -> list[Job]:
        query = db.query(Job).filter(Job.client_id == client_id)
        if status:
            query = query.filter(Job.status == status)
        return query.order_by(Job.created_at.desc()).all()

    @staticmethod
    def get_application(db: Session, job_id: str, worker_id: str) -> Optional[Application]:
        """Get the application a worker made for a job"""
        return (
            db.query(Application)
            .filter(Application.job_id == job_id, Application.worker_id == worker_id)
            .first()
        )

    @staticmethod
    def get_application_by_id(db: Session, application_id: str) -> Optional[Application]:
        return db.query(Application).filter(Application.id == application_id).first()

    @staticmethod
    def create_application(db: Session, job_id: str, worker_id: str, **application_data) -> Application:
        application = Application(job_id=job_id, worker_id=worker_id, **application_data)
        db.add(application)
        db.commit()
        db.refresh(application)
        return application

    @staticmethod
    def update_application(db: Session, application: Application, **updates) -> Application:
        for key, value in updates.items():
            setattr(application, key, value)
        db.commit()
        db.refresh(application)
        return application

    @staticmethod
    def get_applications(db: Session, job_id: str) -> list[Application]:
        return (
            db.query(Application)
            .filter(Application.job_id == job_id)
            .order_by(Application.created_at.desc())
            .all()
        )

    @staticmethod
    def get_competing_applications(db: Session, job_id: str, hired_worker_id: str) -> list[Application]:
        """Pending applications from everyone but the hired worker"""
        return (
            db.query(Application)
            .filter(
                Application.job_id == job_id,
                Application.worker_id != hired_worker_id,
                Application.status == APPLICATION_PENDING,
            )
            .all()
        )

    @staticmethod
    def count_pending_applications(db: Session, client_id: str) -> int:
        """Pending applications across a client's open jobs"""
        return (
            db.query(Application)
            .join(Job, Job.id == Application.job_id)
            .filter(
                Job.client_id == client_id,
                Job.status == JOB_OPEN,
                Application.status == APPLICATION_PENDING,
            )
            .count()
        )
