import pytest

from marketplace.domain.admin.service import AdminService
from marketplace.domain.jobs.schemas import ApplicationCreate, ApplicationUpdate, JobCreate
from marketplace.domain.jobs.service import JobService
from marketplace.errors import NotFound, PreconditionFailed, Unauthorized
from marketplace.models import AdminAuditLog, WorkerActivity


def test_only_clients_post_jobs(db, factory) -> None:
    worker = factory.worker()

    with pytest.raises(Unauthorized):
        JobService(db).create_job(JobCreate(title="Window cleaning"), worker)


def test_budget_range_must_be_ordered() -> None:
    with pytest.raises(ValueError):
        JobCreate(title="Window cleaning", budget_min_ngn=20000, budget_max_ngn=5000)


def test_application_notifies_client_and_logs_activity(db, factory) -> None:
    client = factory.client()
    worker = factory.worker()
    job = factory.job(client)

    application = JobService(db).apply_for_job(job.id, ApplicationCreate(proposed_amount=9000), worker)

    assert application.status == "pending"
    (notification,) = factory.notifications(client, "new_application")
    assert "₦9,000" in notification.message
    assert db.query(WorkerActivity).filter(WorkerActivity.type == "job_applied").count() == 1


def test_cannot_apply_to_a_filled_job(db, factory) -> None:
    client = factory.client()
    worker = factory.worker()
    job = factory.job(client, status="assigned")

    with pytest.raises(PreconditionFailed) as excinfo:
        JobService(db).apply_for_job(job.id, ApplicationCreate(), worker)
    assert excinfo.value.code == "job_not_open"


def test_worker_withdraws_own_application(db, factory) -> None:
    client = factory.client()
    worker = factory.worker()
    other = factory.worker(full_name="Bola Ade")
    job = factory.job(client)
    application = factory.application(job, worker)
    service = JobService(db)

    with pytest.raises(Unauthorized):
        service.update_application(application.id, ApplicationUpdate(status="withdrawn"), other)

    updated = service.update_application(application.id, ApplicationUpdate(status="withdrawn"), worker)
    assert updated.status == "withdrawn"


def test_hired_application_cannot_be_withdrawn(db, factory) -> None:
    client = factory.client()
    worker = factory.worker()
    job = factory.job(client)
    application = factory.application(job, worker, status="hired")

    with pytest.raises(PreconditionFailed):
        JobService(db).update_application(application.id, ApplicationUpdate(status="withdrawn"), worker)


def test_only_the_job_owner_lists_applications(db, factory) -> None:
    client = factory.client()
    worker = factory.worker()
    job = factory.job(client)
    factory.application(job, worker)
    service = JobService(db)

    assert [a.worker_id for a in service.list_applications(job.id, client)] == [worker.id]
    with pytest.raises(Unauthorized):
        service.list_applications(job.id, worker)


def test_admin_verifies_worker(db, factory) -> None:
    admin = factory.admin()
    worker = factory.worker()

    updated = AdminService(db).verify_worker(admin, worker.id, "ID checked")

    assert updated.verification_status == "verified"
    assert db.query(AdminAuditLog).filter(AdminAuditLog.action == "verify_worker").count() == 1
    assert len(factory.notifications(worker, "verification_approved")) == 1


def test_admin_rejects_worker_with_reason(db, factory) -> None:
    admin = factory.admin()
    worker = factory.worker()

    updated = AdminService(db).reject_worker(admin, worker.id, "Blurry ID photo")

    assert updated.verification_status == "rejected"
    (notification,) = factory.notifications(worker, "verification_rejected")
    assert "Blurry ID photo" in notification.message


def test_worker_verification_is_admin_only(db, factory) -> None:
    client = factory.client()
    worker = factory.worker()
    service = AdminService(db)

    assert not service.check_admin_access(client)
    with pytest.raises(Unauthorized):
        service.verify_worker(client, worker.id)
    with pytest.raises(NotFound):
        service.verify_worker(factory.admin(), "missing-worker")
