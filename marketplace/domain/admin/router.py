"""Admin router - worker verification endpoints"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import Profile
from .service import AdminService

router = APIRouter(prefix="/admin", tags=["Admin"])


class VerifyWorkerRequest(BaseModel):
    notes: Optional[str] = None


class RejectWorkerRequest(BaseModel):
    reason: str = Field(min_length=1)


def get_admin_service(db: Session = Depends(get_db)) -> AdminService:
    """Dependency injection for AdminService"""
    return AdminService(db)


@router.get("/access")
async def check_admin_access(
    current_user: Profile = Depends(get_current_user),
    service: AdminService = Depends(get_admin_service),
):
    return {"is_admin": service.check_admin_access(current_user)}


@router.post("/workers/{worker_id}/verify")
async def verify_worker(
    worker_id: str,
    data: VerifyWorkerRequest,
    current_user: Profile = Depends(get_current_user),
    service: AdminService = Depends(get_admin_service),
):
    worker = service.verify_worker(current_user, worker_id, data.notes)
    return {"success": True, "worker_id": worker.id, "verification_status": worker.verification_status}


@router.post("/workers/{worker_id}/reject")
async def reject_worker(
    worker_id: str,
    data: RejectWorkerRequest,
    current_user: Profile = Depends(get_current_user),
    service: AdminService = Depends(get_admin_service),
):
    worker = service.reject_worker(current_user, worker_id, data.reason)
    return {"success": True, "worker_id": worker.id, "verification_status": worker.verification_status}
