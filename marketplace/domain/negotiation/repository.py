"""Booking repository - Database operations for bookings and booking requests"""

import logging
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import BOOKING_PENDING_PAYMENT, Booking, BookingRequest

logger = logging.getLogger(__name__)


class BookingRepository:
    """Repository for booking and booking request database operations"""

    @staticmethod
    def get_booking(db: Session, booking_id: str) -> Optional[Booking]:
        """Get booking by ID"""
        return db.query(Booking).filter(Booking.id == booking_id).first()

    @staticmethod
    def get_booking_by_tx_ref(db: Session, tx_ref: str) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.flw_tx_ref == tx_ref).first()

    @staticmethod
    def get_pending_booking(db: Session, job_id: str, worker_id: str) -> Optional[Booking]:
        """The booking awaiting payment for a job/worker pair, if any"""
        return (
            db.query(Booking)
            .filter(
                Booking.job_id == job_id,
                Booking.worker_id == worker_id,
                Booking.status == BOOKING_PENDING_PAYMENT,
            )
            .first()
        )

    @staticmethod
    def get_job_bookings(db: Session, job_id: str) -> list[Booking]:
        return db.query(Booking).filter(Booking.job_id == job_id).all()

    @staticmethod
    def get_worker_booking(db: Session, job_id: str, worker_id: str, status: str) -> Optional[Booking]:
        return (
            db.query(Booking)
            .filter(Booking.job_id == job_id, Booking.worker_id == worker_id, Booking.status == status)
            .order_by(Booking.created_at.desc())
            .first()
        )

    @staticmethod
    def update_booking(db: Session, booking: Booking, **updates) -> Booking:
        """Apply the given column updates and commit"""
        for key, value in updates.items():
            setattr(booking, key, value)
        db.commit()
        db.refresh(booking)
        return booking

    @staticmethod
    def _refresh_pending(db: Session, booking: Booking, values: dict) -> Booking:
        # A gateway session was opened for the old amount; it must not be reused
        if booking.flw_tx_ref and booking.amount_ngn != values.get("amount_ngn", booking.amount_ngn):
            values = {**values, "flw_tx_ref": None}
        return BookingRepository.update_booking(db, booking, **values)

    @staticmethod
    def upsert_pending_booking(db: Session, job_id: str, worker_id: str, **values) -> tuple[Booking, bool]:
        """
        Insert the pending_payment booking for a job/worker pair, or update the
        existing one in place.

        A concurrent insert for the same pair loses on the partial unique index;
        the loser then updates the winner's row.

        Returns:
            (booking, created)
        """
        existing = BookingRepository.get_pending_booking(db, job_id, worker_id)
        if existing:
            return BookingRepository._refresh_pending(db, existing, values), False

        booking = Booking(
            job_id=job_id,
            worker_id=worker_id,
            status=BOOKING_PENDING_PAYMENT,
            **values,
        )
        db.add(booking)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            existing = BookingRepository.get_pending_booking(db, job_id, worker_id)
            if not existing:
                raise
            logger.info(f"🔁 Concurrent hire for job {job_id}/worker {worker_id}; updating existing booking")
            return BookingRepository._refresh_pending(db, existing, values), False

        db.refresh(booking)
        return booking, True

    @staticmethod
    def get_booking_request(db: Session, request_id: str) -> Optional[BookingRequest]:
        return db.query(BookingRequest).filter(BookingRequest.id == request_id).first()

    @staticmethod
    def create_booking_request(db: Session, **request_data) -> BookingRequest:
        booking_request = BookingRequest(**request_data)
        db.add(booking_request)
        db.commit()
        db.refresh(booking_request)
        return booking_request

    @staticmethod
    def update_booking_request(db: Session, booking_request: BookingRequest, **updates) -> BookingRequest:
        for key, value in updates.items():
            setattr(booking_request, key, value)
        db.commit()
        db.refresh(booking_request)
        return booking_request

    @staticmethod
    def get_booking_requests_for(db: Session, user_id: str) -> list[BookingRequest]:
        """Requests where the user is either side of the negotiation"""
        return (
            db.query(BookingRequest)
            .filter(or_(BookingRequest.client_id == user_id, BookingRequest.worker_id == user_id))
            .order_by(BookingRequest.created_at.desc())
            .all()
        )
