import asyncio

import pytest

from marketplace.domain.escrow.service import EscrowService
from marketplace.domain.jobs.repository import JobRepository
from marketplace.domain.negotiation.repository import BookingRepository
from marketplace.errors import (
    AmountMismatch,
    GatewayError,
    GatewayNotConfigured,
    NotSuccessful,
    PreconditionFailed,
    ReconciliationRequired,
    ReferenceMismatch,
    Unauthorized,
)
from marketplace.models import Notification, WorkerActivity
from marketplace.services.flutterwave_service import GatewayTransaction


def _hired(factory, amount=10000, **booking_fields):
    client = factory.client(email="chioma@example.com")
    worker = factory.worker()
    job = factory.job(client)
    application = factory.application(job, worker)
    booking = factory.booking(job, worker, amount=amount, **booking_fields)
    return client, worker, job, application, booking


def _successful(amount=10000, reference=None, status="successful") -> GatewayTransaction:
    return GatewayTransaction(id="4455667", status=status, amount=amount, reference=reference)


def test_initialize_opens_checkout_and_records_reference(db, factory, gateway) -> None:
    client, worker, job, _, booking = _hired(factory)

    result = asyncio.run(EscrowService(db, gateway).initialize_payment(client, booking.id))

    assert result["success"]
    assert result["link"] == "https://checkout.test/pay/abc123"
    assert result["tx_ref"].startswith(f"CHR-{booking.id}-")

    (call,) = gateway.calls_to("create_payment")
    assert call["amount"] == 10000
    assert call["reference"] == result["tx_ref"]
    assert call["redirect_url"].endswith(f"/client/payment/verify?booking={booking.id}")
    assert call["customer"]["email"] == "chioma@example.com"
    assert call["metadata"] == {
        "booking_id": booking.id,
        "job_id": job.id,
        "client_id": client.id,
        "worker_id": worker.id,
        "type": "escrow_payment",
    }

    db.refresh(booking)
    assert booking.flw_tx_ref == result["tx_ref"]
    assert booking.payment_status == "pending"


def test_initialize_reuses_existing_reference(db, factory, gateway) -> None:
    client, _, _, _, booking = _hired(factory, flw_tx_ref="CHR-existing-1")

    result = asyncio.run(EscrowService(db, gateway).initialize_payment(client, booking.id))

    assert result["tx_ref"] == "CHR-existing-1"


def test_initialize_leaves_booking_untouched_when_gateway_fails(db, factory, gateway) -> None:
    client, _, _, _, booking = _hired(factory)
    gateway.fail_with = GatewayError("Flutterwave init failed: Invalid currency")

    with pytest.raises(GatewayError) as excinfo:
        asyncio.run(EscrowService(db, gateway).initialize_payment(client, booking.id))

    assert "Invalid currency" in excinfo.value.message
    db.refresh(booking)
    assert booking.flw_tx_ref is None


def test_initialize_requires_configured_gateway(db, factory, unconfigured_gateway) -> None:
    client, _, _, _, booking = _hired(factory)

    with pytest.raises(GatewayNotConfigured):
        asyncio.run(EscrowService(db, unconfigured_gateway).initialize_payment(client, booking.id))
    assert unconfigured_gateway.calls == []


def test_initialize_rejects_other_clients_and_paid_bookings(db, factory, gateway) -> None:
    client, _, _, _, booking = _hired(factory)
    stranger = factory.client()
    service = EscrowService(db, gateway)

    with pytest.raises(Unauthorized):
        asyncio.run(service.initialize_payment(stranger, booking.id))

    BookingRepository.update_booking(db, booking, payment_status="paid")
    with pytest.raises(PreconditionFailed) as excinfo:
        asyncio.run(service.initialize_payment(client, booking.id))
    assert excinfo.value.code == "already_paid"
    assert gateway.calls == []


def test_verify_confirms_booking_and_fills_the_job(db, factory, gateway) -> None:
    client, worker, job, application, booking = _hired(factory, flw_tx_ref="CHR-b-1")
    rival = factory.worker(full_name="Bola Ade")
    rival_application = factory.application(job, rival)
    gateway.transaction = _successful(reference="CHR-b-1")

    result = asyncio.run(EscrowService(db, gateway).verify_payment(client, "4455667", booking.id))

    assert result["success"] and not result["already_verified"]
    assert result["saga"]["completed_steps"] == [
        "mark_booking_paid",
        "log_worker_activity",
        "assign_job",
        "hire_application",
        "close_other_applications",
        "notify_worker",
        "notify_client",
    ]

    for row in (booking, job, application, rival_application):
        db.refresh(row)
    assert booking.payment_status == "paid"
    assert booking.status == "confirmed"
    assert booking.flw_transaction_id == "4455667"
    assert booking.paid_at is not None
    assert job.status == "assigned"
    assert job.assigned_worker_id == worker.id
    assert job.final_amount_ngn == 10000
    assert application.status == "hired"
    assert rival_application.status == "rejected"

    assert len(factory.notifications(worker, "payment_confirmed")) == 1
    assert len(factory.notifications(client, "payment_successful")) == 1
    assert len(factory.notifications(rival, "application_rejected")) == 1
    assert db.query(WorkerActivity).filter(WorkerActivity.type == "payment_received").count() == 1


def test_verify_is_idempotent(db, factory, gateway) -> None:
    """A second verification neither calls the gateway nor notifies again."""
    client, _, _, _, booking = _hired(factory)
    gateway.transaction = _successful()
    service = EscrowService(db, gateway)

    asyncio.run(service.verify_payment(client, "4455667", booking.id))
    notifications_before = db.query(Notification).count()

    again = asyncio.run(service.verify_payment(client, "4455667", booking.id))

    assert again["already_verified"]
    assert again["saga"] is None
    assert again["booking"].payment_status == "paid"
    assert len(gateway.calls_to("verify_transaction")) == 1
    assert db.query(Notification).count() == notifications_before


@pytest.mark.parametrize(
    "booking_amount, charged, accepted",
    [
        (10000, 10010, True),
        (10000, 9990, True),
        (10000, 10011, False),
        (10000, 9989, False),
        (10000, 10008, True),
        (10000, 10012, False),
    ],
)
def test_amount_tolerance(db, factory, gateway, booking_amount, charged, accepted) -> None:
    client, _, _, _, booking = _hired(factory, amount=booking_amount)
    gateway.transaction = _successful(amount=charged)
    service = EscrowService(db, gateway)

    if accepted:
        asyncio.run(service.verify_payment(client, "4455667", booking.id))
        db.refresh(booking)
        assert booking.payment_status == "paid"
    else:
        with pytest.raises(AmountMismatch):
            asyncio.run(service.verify_payment(client, "4455667", booking.id))
        db.refresh(booking)
        assert booking.payment_status == "pending"
        assert booking.status == "pending_payment"


def test_gateway_status_is_case_insensitive(db, factory, gateway) -> None:
    client, _, _, _, booking = _hired(factory)
    gateway.transaction = _successful(status="SUCCESSFUL")

    asyncio.run(EscrowService(db, gateway).verify_payment(client, "4455667", booking.id))

    db.refresh(booking)
    assert booking.payment_status == "paid"


def test_unsuccessful_transaction_is_rejected(db, factory, gateway) -> None:
    client, _, _, _, booking = _hired(factory)
    gateway.transaction = _successful(status="failed")

    with pytest.raises(NotSuccessful) as excinfo:
        asyncio.run(EscrowService(db, gateway).verify_payment(client, "4455667", booking.id))

    assert excinfo.value.kind == "validation"
    db.refresh(booking)
    assert booking.payment_status == "pending"


def test_reference_mismatch_is_rejected(db, factory, gateway) -> None:
    client, _, _, _, booking = _hired(factory, flw_tx_ref="CHR-b-1")
    gateway.transaction = _successful(reference="CHR-someone-else")

    with pytest.raises(ReferenceMismatch):
        asyncio.run(EscrowService(db, gateway).verify_payment(client, "4455667", booking.id))


def test_only_the_client_or_an_admin_may_verify(db, factory, gateway) -> None:
    _, worker, _, _, booking = _hired(factory)
    admin = factory.admin()
    gateway.transaction = _successful()
    service = EscrowService(db, gateway)

    with pytest.raises(Unauthorized):
        asyncio.run(service.verify_payment(worker, "4455667", booking.id))
    assert gateway.calls == []

    result = asyncio.run(service.verify_payment(admin, "4455667", booking.id))
    assert result["booking"].payment_status == "paid"


def test_failed_best_effort_step_keeps_earlier_steps(db, factory, gateway, monkeypatch) -> None:
    """Failure at assign_job leaves the payment recorded and later steps still run."""
    client, worker, job, _, booking = _hired(factory)
    gateway.transaction = _successful()

    def broken_update_job(db_session, job_row, **updates):
        raise RuntimeError("jobs table unavailable")

    monkeypatch.setattr(JobRepository, "update_job", staticmethod(broken_update_job))

    result = asyncio.run(EscrowService(db, gateway).verify_payment(client, "4455667", booking.id))

    saga = result["saga"]
    assert list(saga["failed_steps"]) == ["assign_job"]
    assert saga["completed_steps"][:2] == ["mark_booking_paid", "log_worker_activity"]
    assert "notify_client" in saga["completed_steps"]

    db.refresh(booking)
    db.refresh(job)
    assert booking.payment_status == "paid"
    assert job.status == "open"
    assert len(factory.notifications(worker, "payment_confirmed")) == 1


def test_critical_step_failure_requires_reconciliation(db, factory, gateway, monkeypatch) -> None:
    client, worker, _, _, booking = _hired(factory)
    gateway.transaction = _successful()

    def broken_update_booking(db_session, booking_row, **updates):
        raise RuntimeError("bookings table unavailable")

    monkeypatch.setattr(BookingRepository, "update_booking", staticmethod(broken_update_booking))

    with pytest.raises(ReconciliationRequired) as excinfo:
        asyncio.run(EscrowService(db, gateway).verify_payment(client, "4455667", booking.id))

    error = excinfo.value
    assert error.details["transaction_id"] == "4455667"
    assert error.details["failed_step"] == "mark_booking_paid"
    assert error.details["furthest_step"] is None
    assert error.kind == "reconciliation"
    assert factory.notifications(worker) == []


def test_charge_webhook_reverifies_with_the_gateway(db, factory, gateway) -> None:
    _, _, _, _, booking = _hired(factory, flw_tx_ref="CHR-b-1")
    gateway.transaction = _successful(reference="CHR-b-1")
    service = EscrowService(db, gateway)
    payload = {
        "event": "charge.completed",
        # Amount in the body is ignored; only the gateway lookup counts
        "data": {"id": 4455667, "tx_ref": "CHR-b-1", "amount": 1, "status": "successful"},
    }

    result = asyncio.run(service.handle_charge_webhook(payload))

    assert result == {"status": "processed", "booking_id": booking.id, "already_verified": False}
    assert gateway.calls_to("verify_transaction") == [{"transaction_id": "4455667"}]

    repeat = asyncio.run(service.handle_charge_webhook(payload))
    assert repeat["already_verified"]


def test_charge_webhook_for_unknown_booking_is_ignored(db, gateway) -> None:
    payload = {"data": {"id": 1, "tx_ref": "CHR-missing", "meta": {"booking_id": "nope"}}}

    result = asyncio.run(EscrowService(db, gateway).handle_charge_webhook(payload))

    assert result == {"status": "ignored", "reason": "booking_not_found"}
    assert gateway.calls == []


def test_charge_webhook_with_bad_amount_is_rejected_not_raised(db, factory, gateway) -> None:
    _, _, _, _, booking = _hired(factory)
    gateway.transaction = _successful(amount=500)
    payload = {"data": {"id": 77, "meta": {"booking_id": booking.id}}}

    result = asyncio.run(EscrowService(db, gateway).handle_charge_webhook(payload))

    assert result["status"] == "rejected"
    assert result["code"] == "amount_mismatch"


@pytest.mark.parametrize("job_status", ["cancelled", "completed", "in_progress"])
def test_initialize_refuses_jobs_that_cannot_be_filled(db, factory, gateway, job_status) -> None:
    client, _, job, _, booking = _hired(factory)
    JobRepository.update_job(db, job, status=job_status)

    with pytest.raises(PreconditionFailed) as excinfo:
        asyncio.run(EscrowService(db, gateway).initialize_payment(client, booking.id))

    assert excinfo.value.code == "job_not_open"
    assert gateway.calls == []
    db.refresh(booking)
    assert booking.flw_tx_ref is None


def test_initialize_refuses_job_assigned_to_another_worker(db, factory, gateway) -> None:
    client, _, job, _, booking = _hired(factory)
    other = factory.worker(full_name="Bola Ade")
    JobRepository.update_job(db, job, status="assigned", assigned_worker_id=other.id)

    with pytest.raises(PreconditionFailed):
        asyncio.run(EscrowService(db, gateway).initialize_payment(client, booking.id))
    assert gateway.calls == []


def test_initialize_allows_job_assigned_to_this_worker(db, factory, gateway) -> None:
    """An accepted booking request assigns the job before the client pays."""
    client, worker, job, _, booking = _hired(factory)
    JobRepository.update_job(db, job, status="assigned", assigned_worker_id=worker.id)

    result = asyncio.run(EscrowService(db, gateway).initialize_payment(client, booking.id))

    assert result["success"]
    assert len(gateway.calls_to("create_payment")) == 1


def test_late_payment_does_not_reopen_a_cancelled_job(db, factory, gateway) -> None:
    """A checkout opened before cancellation that completes afterwards leaves the job cancelled."""
    client, worker, job, application, booking = _hired(factory)
    rival = factory.worker(full_name="Bola Ade")
    rival_application = factory.application(job, rival)
    service = EscrowService(db, gateway)
    asyncio.run(service.initialize_payment(client, booking.id))
    JobRepository.update_job(db, job, status="cancelled")
    db.refresh(booking)
    gateway.transaction = _successful(reference=booking.flw_tx_ref)

    result = asyncio.run(service.verify_payment(client, "4455667", booking.id))

    assert list(result["saga"]["failed_steps"]) == ["assign_job"]
    for row in (booking, job, application, rival_application):
        db.refresh(row)
    assert booking.payment_status == "paid"
    assert job.status == "cancelled"
    assert job.assigned_worker_id is None
    assert application.status == "pending"
    assert rival_application.status == "pending"
