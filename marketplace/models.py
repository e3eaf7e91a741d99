import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .shared.validators import utcnow


def generate_id():
    """Generate a UUID primary key"""
    return str(uuid.uuid4())


# Job lifecycle
JOB_OPEN = "open"
JOB_ASSIGNED = "assigned"
JOB_IN_PROGRESS = "in_progress"
JOB_COMPLETED = "completed"
JOB_CANCELLED = "cancelled"

# Booking lifecycle
BOOKING_PENDING_PAYMENT = "pending_payment"
BOOKING_CONFIRMED = "confirmed"
BOOKING_IN_PROGRESS = "in_progress"
BOOKING_COMPLETED = "completed"
BOOKING_CANCELLED = "cancelled"
ACTIVE_BOOKING_STATUSES = (BOOKING_CONFIRMED, BOOKING_IN_PROGRESS)

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"

# Booking request negotiation
REQUEST_PENDING = "pending"
REQUEST_ACCEPTED = "accepted"
REQUEST_REJECTED = "rejected"
REQUEST_COUNTERED = "countered"
REQUEST_EXPIRED = "expired"  # read-time label only, never stored

# Applications
APPLICATION_PENDING = "pending"
APPLICATION_REVIEWED = "reviewed"
APPLICATION_HIRED = "hired"
APPLICATION_REJECTED = "rejected"
APPLICATION_WITHDRAWN = "withdrawn"

# Payouts
PAYOUT_PROCESSING = "processing"
PAYOUT_COMPLETED = "completed"
PAYOUT_FAILED = "failed"


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=generate_id)  # Identity provider user id
    email = Column(String(255), index=True, nullable=True)
    full_name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    user_type = Column(String(20), nullable=False, default="client")  # client, worker, admin
    avatar_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    worker = relationship("Worker", back_populates="profile", uselist=False)


class Worker(Base):
    __tablename__ = "workers"

    id = Column(String(36), ForeignKey("profiles.id"), primary_key=True)
    bio = Column(Text, nullable=True)
    phone_number = Column(String(50), nullable=True)
    skills = Column(JSON, default=list)
    hourly_rate_ngn = Column(Float, nullable=True)
    location_city = Column(String(255), nullable=True)
    location_area = Column(String(255), nullable=True)
    verification_status = Column(String(20), default="pending")  # pending, verified, rejected

    # Stats
    rating = Column(Float, default=0, nullable=False)
    total_reviews = Column(Integer, default=0, nullable=False)
    total_jobs = Column(Integer, default=0, nullable=False)
    total_earnings = Column(Float, default=0, nullable=False)

    # Payout destination
    bank_name = Column(String(255), nullable=True)
    bank_code = Column(String(20), nullable=True)
    bank_account_number = Column(String(20), nullable=True)
    account_name = Column(String(255), nullable=True)
    bank_details_verified = Column(Boolean, default=False, nullable=False)
    bank_details_updated_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    profile = relationship("Profile", back_populates="worker")


class Job(Base):
    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True, default=generate_id)
    client_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    location_city = Column(String(255), nullable=True)
    location_area = Column(String(255), nullable=True)
    location_address = Column(String(500), nullable=True)
    budget_min_ngn = Column(Float, nullable=True)
    budget_max_ngn = Column(Float, nullable=True)
    urgency = Column(String(20), default="flexible")  # urgent, today, this_week, flexible
    status = Column(String(20), default=JOB_OPEN, nullable=False, index=True)
    assigned_worker_id = Column(String(36), ForeignKey("profiles.id"), nullable=True)
    final_amount_ngn = Column(Float, nullable=True)
    scheduled_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    applications = relationship("Application", back_populates="job", cascade="all, delete-orphan")
    booking_requests = relationship(
        "BookingRequest", back_populates="job", cascade="all, delete-orphan"
    )
    bookings = relationship("Booking", back_populates="job", cascade="all, delete-orphan")


class Application(Base):
    __tablename__ = "applications"
    __table_args__ = (UniqueConstraint("job_id", "worker_id", name="uq_applications_job_worker"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    job_id = Column(String(36), ForeignKey("jobs.id"), nullable=False, index=True)
    worker_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    status = Column(String(20), default=APPLICATION_PENDING, nullable=False)
    proposed_amount = Column(Float, nullable=True)
    cover_letter = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    job = relationship("Job", back_populates="applications")


class BookingRequest(Base):
    """A client's offer to a specific worker, negotiated before a Booking exists"""

    __tablename__ = "booking_requests"

    id = Column(String(36), primary_key=True, default=generate_id)
    job_id = Column(String(36), ForeignKey("jobs.id"), nullable=False, index=True)
    client_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    worker_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    scheduled_date = Column(DateTime, nullable=True)
    proposed_amount_ngn = Column(Float, nullable=False)
    worker_rate_ngn = Column(Float, nullable=True)
    negotiation_note = Column(Text, nullable=True)
    counter_offer_ngn = Column(Float, nullable=True)
    counter_note = Column(Text, nullable=True)
    status = Column(String(20), default=REQUEST_PENDING, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    job = relationship("Job", back_populates="booking_requests")

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at is not None and self.expires_at < (now or utcnow())

    def effective_status(self, now: Optional[datetime] = None) -> str:
        """Stored status, or "expired" for an open negotiation past its deadline"""
        if self.status in (REQUEST_PENDING, REQUEST_COUNTERED) and self.is_expired(now):
            return REQUEST_EXPIRED
        return self.status


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        # At most one booking awaiting payment per job/worker pair
        Index(
            "uq_bookings_pending_payment_pair",
            "job_id",
            "worker_id",
            unique=True,
            sqlite_where=text("status = 'pending_payment'"),
            postgresql_where=text("status = 'pending_payment'"),
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    job_id = Column(String(36), ForeignKey("jobs.id"), nullable=False, index=True)
    client_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    worker_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    booking_request_id = Column(String(36), ForeignKey("booking_requests.id"), nullable=True)
    scheduled_date = Column(DateTime, nullable=True)

    # Pricing (whole Naira)
    amount_ngn = Column(Float, nullable=False)
    commission_ngn = Column(Float, nullable=False)
    worker_amount_ngn = Column(Float, nullable=False)
    negotiated_amount = Column(Float, nullable=True)
    negotiation_rounds = Column(Integer, default=0, nullable=False)

    status = Column(String(20), default=BOOKING_PENDING_PAYMENT, nullable=False, index=True)
    payment_status = Column(String(20), default=PAYMENT_PENDING, nullable=False)

    # Escrow capture (Flutterwave)
    flw_tx_ref = Column(String(100), nullable=True, index=True)
    flw_transaction_id = Column(String(100), nullable=True)
    paid_at = Column(DateTime, nullable=True)

    # Fulfillment
    completion_notes = Column(Text, nullable=True)
    completion_submitted_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Escrow release
    worker_paid = Column(Boolean, default=False, nullable=False)
    worker_paid_at = Column(DateTime, nullable=True)
    payment_reference = Column(String(100), nullable=True, index=True)
    admin_notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    job = relationship("Job", back_populates="bookings")
    reviews = relationship("Review", back_populates="booking", cascade="all, delete-orphan")


class Payout(Base):
    """A transfer releasing a booking's escrowed worker share"""

    __tablename__ = "payouts"

    id = Column(String(36), primary_key=True, default=generate_id)
    # Plain columns: payout records outlive the job and booking they released
    booking_id = Column(String(36), nullable=False, index=True)
    job_id = Column(String(36), nullable=False)
    worker_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    admin_id = Column(String(36), ForeignKey("profiles.id"), nullable=True)

    amount = Column(Float, nullable=False)
    currency = Column(String(10), default="NGN")
    status = Column(String(20), default=PAYOUT_PROCESSING)  # processing, completed, failed

    # Reference
    reference = Column(String(100), unique=True, nullable=False, index=True)
    transfer_id = Column(String(100), nullable=True)

    # Beneficiary
    bank_name = Column(String(255), nullable=True)
    bank_code = Column(String(20), nullable=True)
    account_number = Column(String(20), nullable=True)
    account_name = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    completed_at = Column(DateTime, nullable=True)


class Review(Base):
    __tablename__ = "reviews"

    id = Column(String(36), primary_key=True, default=generate_id)
    booking_id = Column(String(36), ForeignKey("bookings.id"), unique=True, nullable=False)
    worker_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    client_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    punctuality = Column(Integer, nullable=True)
    quality = Column(Integer, nullable=True)
    communication = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    booking = relationship("Booking", back_populates="reviews")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)
    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class WorkerActivity(Base):
    __tablename__ = "worker_activity"

    id = Column(String(36), primary_key=True, default=generate_id)
    worker_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime, server_default=func.now())


class AdminAuditLog(Base):
    __tablename__ = "admin_audit_log"

    id = Column(String(36), primary_key=True, default=generate_id)
    admin_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    action = Column(String(50), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(36), nullable=False)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
