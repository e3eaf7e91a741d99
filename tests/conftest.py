from datetime import timedelta
from typing import Optional
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from marketplace import models  # noqa: F401
from marketplace.database import Base
from marketplace.errors import GatewayError
from marketplace.models import (
    BOOKING_PENDING_PAYMENT,
    JOB_OPEN,
    PAYMENT_PENDING,
    REQUEST_PENDING,
    Application,
    Booking,
    BookingRequest,
    Job,
    Notification,
    Profile,
    Worker,
)
from marketplace.services.flutterwave_service import (
    GatewayTransaction,
    PaymentLink,
    ResolvedAccount,
    TransferReceipt,
)
from marketplace.shared.pricing import split_amount
from marketplace.shared.validators import utcnow


class FakeGateway:
    """Recording stand-in for the Flutterwave client."""

    def __init__(self, configured: bool = True) -> None:
        self.configured = configured
        self.calls: list[tuple[str, dict]] = []
        self.transaction: Optional[GatewayTransaction] = None
        self.resolved_name = "Ada Obi"
        self.fail_with: Optional[GatewayError] = None

    def is_available(self) -> bool:
        return self.configured

    def calls_to(self, name: str) -> list[dict]:
        return [kwargs for call, kwargs in self.calls if call == name]

    def _record(self, name: str, **kwargs: object) -> None:
        self.calls.append((name, kwargs))
        # Simulate a gateway-side rejection after the call was attempted.
        if self.fail_with is not None:
            raise self.fail_with

    async def create_payment(self, **kwargs: object) -> PaymentLink:
        self._record("create_payment", **kwargs)
        return PaymentLink(link="https://checkout.test/pay/abc123", reference=kwargs["reference"])

    async def verify_transaction(self, transaction_id: str) -> GatewayTransaction:
        self._record("verify_transaction", transaction_id=transaction_id)
        return self.transaction

    async def transfer(self, **kwargs: object) -> TransferReceipt:
        self._record("transfer", **kwargs)
        return TransferReceipt(transfer_id="9001", status="NEW", reference=kwargs["reference"])

    async def resolve_account(self, bank_code: str, account_number: str) -> ResolvedAccount:
        self._record("resolve_account", bank_code=bank_code, account_number=account_number)
        return ResolvedAccount(account_number=account_number, account_name=self.resolved_name)


class Factory:
    """Builds committed ledger rows with sensible defaults."""

    def __init__(self, db) -> None:
        self.db = db

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def profile(self, user_type: str = "client", full_name: str = "Test User", **kwargs: object) -> Profile:
        email = kwargs.pop("email", f"{uuid4().hex[:8]}@example.com")
        return self._save(Profile(user_type=user_type, full_name=full_name, email=email, **kwargs))

    def client(self, **kwargs: object) -> Profile:
        return self.profile("client", full_name=kwargs.pop("full_name", "Chioma Client"), **kwargs)

    def admin(self) -> Profile:
        return self.profile("admin", full_name="Platform Admin")

    def worker(self, full_name: str = "Ada Obi", **worker_fields: object) -> Profile:
        """Worker profile plus its worker row; returns the profile."""
        profile = self.profile("worker", full_name=full_name)
        self._save(Worker(id=profile.id, **worker_fields))
        return profile

    def banked_worker(self, **kwargs: object) -> Profile:
        fields = {
            "bank_name": "Access Bank",
            "bank_code": "044",
            "bank_account_number": "0690000031",
            "account_name": "Ada Obi",
            "bank_details_verified": True,
        }
        fields.update(kwargs)
        return self.worker(**fields)

    def job(self, client: Profile, status: str = JOB_OPEN, **kwargs: object) -> Job:
        fields = {"title": "Deep clean 3-bedroom flat", "budget_min_ngn": 5000, "budget_max_ngn": 20000}
        fields.update(kwargs)
        return self._save(Job(client_id=client.id, status=status, **fields))

    def application(self, job: Job, worker: Profile, status: str = "pending", **kwargs: object) -> Application:
        return self._save(Application(job_id=job.id, worker_id=worker.id, status=status, **kwargs))

    def booking(
        self,
        job: Job,
        worker: Profile,
        amount: float = 10000,
        status: str = BOOKING_PENDING_PAYMENT,
        payment_status: str = PAYMENT_PENDING,
        **kwargs: object,
    ) -> Booking:
        commission, worker_amount = split_amount(amount)
        return self._save(
            Booking(
                job_id=job.id,
                client_id=job.client_id,
                worker_id=worker.id,
                amount_ngn=amount,
                commission_ngn=commission,
                worker_amount_ngn=worker_amount,
                status=status,
                payment_status=payment_status,
                **kwargs,
            )
        )

    def booking_request(self, job: Job, worker: Profile, amount: float = 10000, **kwargs: object) -> BookingRequest:
        fields = {"status": REQUEST_PENDING, "expires_at": utcnow() + timedelta(hours=24)}
        fields.update(kwargs)
        return self._save(
            BookingRequest(
                job_id=job.id,
                client_id=job.client_id,
                worker_id=worker.id,
                proposed_amount_ngn=amount,
                **fields,
            )
        )

    def notifications(self, user: Profile, notification_type: Optional[str] = None) -> list[Notification]:
        query = self.db.query(Notification).filter(Notification.user_id == user.id)
        if notification_type:
            query = query.filter(Notification.type == notification_type)
        return query.all()


@pytest.fixture
def engine():
    # One shared connection so every session sees the same in-memory database.
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def factory(db) -> Factory:
    return Factory(db)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def unconfigured_gateway() -> FakeGateway:
    return FakeGateway(configured=False)
