"""Admin service - worker verification"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...authorization import ADMIN, AuthorizationGuard
from ...errors import NotFound
from ...models import Profile, Worker
from ...services.notification_service import notify
from ..payouts.repository import AuditLogRepository, WorkerRepository

logger = logging.getLogger(__name__)

WORKER_VERIFIED = "verified"
WORKER_REJECTED = "rejected"


class AdminService:
    def __init__(self, db: Session):
        self.db = db
        self.guard = AuthorizationGuard(db)
        self.workers = WorkerRepository()
        self.audit = AuditLogRepository()

    def check_admin_access(self, caller: Profile) -> bool:
        return self.guard.has_role(caller, ADMIN)

    def _set_verification(self, admin: Profile, worker_id: str, status: str, note: Optional[str]) -> Worker:
        worker = self.workers.get_worker(self.db, worker_id)
        if not worker:
            raise NotFound("Worker not found")

        worker = self.workers.update_worker(self.db, worker, verification_status=status)
        logger.info(f"🪪 Worker {worker_id} {status} by admin {admin.id}")

        try:
            self.audit.record(
                self.db,
                admin.id,
                "verify_worker" if status == WORKER_VERIFIED else "reject_worker",
                "worker",
                worker_id,
                {"notes": note} if status == WORKER_VERIFIED else {"reason": note},
            )
        except Exception as e:
            self.db.rollback()
            logger.warning(f"⚠️ Failed to write audit log for worker {worker_id}: {e}")

        if status == WORKER_VERIFIED:
            notify(
                self.db,
                worker_id,
                "verification_approved",
                "Profile Verified",
                "Your profile has been verified. You can now apply for jobs with a verified badge.",
                {"notes": note},
            )
        else:
            notify(
                self.db,
                worker_id,
                "verification_rejected",
                "Verification Unsuccessful",
                f"Your verification was not approved. Reason: {note or 'Not specified'}",
                {"reason": note},
            )
        return worker

    def verify_worker(self, caller: Profile, worker_id: str, notes: Optional[str] = None) -> Worker:
        admin = self.guard.require_role(caller, ADMIN)
        return self._set_verification(admin, worker_id, WORKER_VERIFIED, notes)

    def reject_worker(self, caller: Profile, worker_id: str, reason: str) -> Worker:
        admin = self.guard.require_role(caller, ADMIN)
        return self._set_verification(admin, worker_id, WORKER_REJECTED, reason)
