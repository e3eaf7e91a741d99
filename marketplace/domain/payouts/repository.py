"""Payout repository - Database operations for workers, payouts and the audit log"""

from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from ...models import (
    JOB_COMPLETED,
    PAYMENT_PAID,
    AdminAuditLog,
    Booking,
    Job,
    Payout,
    Review,
    Worker,
)


class WorkerRepository:
    """Repository for worker profile and stats operations"""

    @staticmethod
    def get_worker(db: Session, worker_id: str) -> Optional[Worker]:
        return db.query(Worker).filter(Worker.id == worker_id).first()

    @staticmethod
    def update_worker(db: Session, worker: Worker, **updates) -> Worker:
        for key, value in updates.items():
            setattr(worker, key, value)
        db.commit()
        db.refresh(worker)
        return worker

    @staticmethod
    def credit_earnings(db: Session, worker_id: str, amount: float) -> int:
        """
        Add to the worker's lifetime earnings in a single UPDATE so concurrent
        payouts cannot lose increments.

        Returns:
            Number of rows updated (0 if the worker row does not exist)
        """
        result = db.execute(
            update(Worker)
            .where(Worker.id == worker_id)
            .values(total_earnings=Worker.total_earnings + amount)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return result.rowcount

    @staticmethod
    def increment_completed_jobs(db: Session, worker_id: str) -> int:
        result = db.execute(
            update(Worker)
            .where(Worker.id == worker_id)
            .values(total_jobs=Worker.total_jobs + 1)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return result.rowcount

    @staticmethod
    def get_rating_stats(db: Session, worker_id: str) -> tuple[Optional[float], int]:
        """Mean rating and review count across all of a worker's reviews"""
        average, count = (
            db.query(func.avg(Review.rating), func.count(Review.id))
            .filter(Review.worker_id == worker_id)
            .one()
        )
        return (float(average) if average is not None else None), int(count or 0)


class PayoutRepository:
    """Repository for payout records"""

    @staticmethod
    def record_release(db: Session, booking: Booking, booking_updates: dict, **payout_data) -> Payout:
        """Booking escrow-release markers and the payout row, in one commit"""
        for key, value in booking_updates.items():
            setattr(booking, key, value)
        payout = Payout(**payout_data)
        db.add(payout)
        db.commit()
        db.refresh(payout)
        return payout

    @staticmethod
    def get_by_reference(db: Session, reference: str) -> Optional[Payout]:
        return db.query(Payout).filter(Payout.reference == reference).first()

    @staticmethod
    def update_payout(db: Session, payout: Payout, **updates) -> Payout:
        for key, value in updates.items():
            setattr(payout, key, value)
        db.commit()
        db.refresh(payout)
        return payout

    @staticmethod
    def get_pending_releases(db: Session) -> list[tuple[Booking, Job]]:
        """Paid bookings on completed jobs whose funds have not been released"""
        return (
            db.query(Booking, Job)
            .join(Job, Job.id == Booking.job_id)
            .filter(
                Job.status == JOB_COMPLETED,
                Booking.payment_status == PAYMENT_PAID,
                Booking.worker_paid.is_(False),
            )
            .order_by(Booking.completed_at.asc())
            .all()
        )


class AuditLogRepository:
    """Repository for the append-only admin audit log"""

    @staticmethod
    def record(
        db: Session,
        admin_id: str,
        action: str,
        entity_type: str,
        entity_id: str,
        details: Optional[dict] = None,
    ) -> AdminAuditLog:
        entry = AdminAuditLog(
            admin_id=admin_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details or {},
        )
        db.add(entry)
        db.commit()
        return entry
