import asyncio

import pytest

from marketplace.domain.fulfillment.schemas import ReviewCreate
from marketplace.domain.fulfillment.service import FulfillmentService
from marketplace.errors import HasActiveBookings, PreconditionFailed, Unauthorized
from marketplace.models import Job, Worker


def _assigned(factory, booking_status="confirmed", payment_status="paid", **booking_fields):
    client = factory.client()
    worker = factory.worker()
    job = factory.job(client, status="assigned", assigned_worker_id=worker.id, final_amount_ngn=10000)
    booking = factory.booking(job, worker, status=booking_status, payment_status=payment_status, **booking_fields)
    return client, worker, job, booking


def test_start_requires_a_paid_confirmed_booking(db, factory) -> None:
    client, _, job, _ = _assigned(factory, booking_status="pending_payment", payment_status="pending")

    with pytest.raises(PreconditionFailed) as excinfo:
        asyncio.run(FulfillmentService(db).update_job_status(client, job.id, "in_progress"))

    assert excinfo.value.code == "payment_required"
    db.refresh(job)
    assert job.status == "assigned"


def test_start_mirrors_onto_the_booking(db, factory) -> None:
    client, worker, job, booking = _assigned(factory)

    job, saga = asyncio.run(FulfillmentService(db).update_job_status(client, job.id, "in_progress"))

    db.refresh(booking)
    assert job.status == "in_progress"
    assert booking.status == "in_progress"
    assert saga.name == "job_in_progress"
    assert saga.completed == ["mirror_booking", "notify_worker", "log_worker_activity"]
    assert len(factory.notifications(worker, "job_started")) == 1


def test_completion_stamps_booking_and_counts_the_job(db, factory) -> None:
    client, worker, job, booking = _assigned(factory)
    service = FulfillmentService(db)

    asyncio.run(service.update_job_status(client, job.id, "in_progress"))
    job, saga = asyncio.run(service.update_job_status(client, job.id, "completed"))

    db.refresh(booking)
    db.expire_all()
    assert job.status == "completed"
    assert booking.status == "completed"
    assert booking.completed_at is not None
    assert "count_completed_job" in saga.completed
    assert db.get(Worker, worker.id).total_jobs == 1
    assert len(factory.notifications(worker, "job_completed")) == 1


@pytest.mark.parametrize(
    "current, target",
    [
        ("open", "completed"),
        ("open", "in_progress"),
        ("assigned", "completed"),
        ("completed", "in_progress"),
        ("cancelled", "open"),
    ],
)
def test_illegal_transitions_are_rejected(db, factory, current, target) -> None:
    client = factory.client()
    job = factory.job(client, status=current)

    with pytest.raises(PreconditionFailed) as excinfo:
        asyncio.run(FulfillmentService(db).update_job_status(client, job.id, target))
    assert excinfo.value.code == "invalid_transition"


def test_same_status_is_a_no_op(db, factory) -> None:
    client = factory.client()
    job = factory.job(client)

    job, saga = asyncio.run(FulfillmentService(db).update_job_status(client, job.id, "open"))

    assert job.status == "open"
    assert saga is None


def test_only_the_owner_changes_status(db, factory) -> None:
    _, _, job, _ = _assigned(factory)
    stranger = factory.client()

    with pytest.raises(Unauthorized):
        asyncio.run(FulfillmentService(db).update_job_status(stranger, job.id, "cancelled"))


def test_cancel_blocked_by_active_booking(db, factory) -> None:
    client, _, job, booking = _assigned(factory)

    with pytest.raises(HasActiveBookings) as excinfo:
        asyncio.run(FulfillmentService(db).update_job_status(client, job.id, "cancelled"))

    assert excinfo.value.details["booking_ids"] == [booking.id]
    assert excinfo.value.code == "has_active_bookings"


def test_open_job_with_only_unpaid_booking_can_be_cancelled(db, factory) -> None:
    client = factory.client()
    worker = factory.worker()
    job = factory.job(client)
    factory.booking(job, worker)

    job, _ = asyncio.run(FulfillmentService(db).update_job_status(client, job.id, "cancelled"))

    assert job.status == "cancelled"


def test_delete_blocked_while_escrow_is_unreleased(db, factory) -> None:
    """A completed booking whose funds were never paid out still holds the job."""
    client, _, job, _ = _assigned(factory, booking_status="completed")

    with pytest.raises(HasActiveBookings):
        FulfillmentService(db).delete_job(client, job.id)
    assert db.get(Job, job.id) is not None


def test_delete_after_release(db, factory) -> None:
    client, _, job, _ = _assigned(factory, booking_status="completed", worker_paid=True)
    job_id = job.id

    result = FulfillmentService(db).delete_job(client, job_id)

    assert result["success"]
    db.expire_all()
    assert db.get(Job, job_id) is None


def test_worker_submits_completion_for_in_progress_booking(db, factory) -> None:
    client, worker, _, booking = _assigned(factory, booking_status="in_progress")
    service = FulfillmentService(db)

    booking = service.submit_job_completion(worker, booking.id, "All rooms done")

    assert booking.completion_notes == "All rooms done"
    assert booking.completion_submitted_at is not None
    assert len(factory.notifications(client, "job_completion_submitted")) == 1


def test_completion_submission_requires_in_progress(db, factory) -> None:
    _, worker, _, booking = _assigned(factory)

    with pytest.raises(PreconditionFailed) as excinfo:
        FulfillmentService(db).submit_job_completion(worker, booking.id)
    assert excinfo.value.code == "not_in_progress"


def test_review_updates_worker_rating(db, factory) -> None:
    client = factory.client()
    worker = factory.worker()
    service = FulfillmentService(db)

    for rating in (5, 4):
        job = factory.job(client, status="completed", assigned_worker_id=worker.id)
        booking = factory.booking(job, worker, status="completed", payment_status="paid")
        service.create_review(client, booking.id, ReviewCreate(rating=rating, comment="Great"))

    stored = db.get(Worker, worker.id)
    db.refresh(stored)
    assert stored.rating == 4.5
    assert stored.total_reviews == 2
    assert len(factory.notifications(worker, "new_review")) == 2
    assert sorted(r.rating for r in service.get_worker_reviews(worker.id)) == [4, 5]


def test_second_review_for_a_booking_is_rejected(db, factory) -> None:
    client, _, _, booking = _assigned(factory, booking_status="completed")
    service = FulfillmentService(db)
    service.create_review(client, booking.id, ReviewCreate(rating=5))

    with pytest.raises(PreconditionFailed) as excinfo:
        service.create_review(client, booking.id, ReviewCreate(rating=1))

    assert excinfo.value.message == "Review already submitted for this booking"
    assert excinfo.value.code == "review_exists"


def test_review_requires_completed_booking(db, factory) -> None:
    client, _, _, booking = _assigned(factory)

    with pytest.raises(PreconditionFailed) as excinfo:
        FulfillmentService(db).create_review(client, booking.id, ReviewCreate(rating=5))
    assert excinfo.value.code == "not_completed"
