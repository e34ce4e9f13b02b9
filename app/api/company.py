from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from app.api._audit import record_event
from app.core.errors import ValidationError
from app.deps import get_synchronizer
from app.schemas import AuditAction, AuditEntity, CompanyLogoIn, PasswordIn
from app.services.record_sync import RecordSynchronizer

router = APIRouter(prefix="/api", tags=["company"])


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# --------------------------------------------------------------------------
# Company logo (settings.companyLogo in the shared dataset)
# --------------------------------------------------------------------------

@router.get("/company-logo")
def get_company_logo(sync: RecordSynchronizer = Depends(get_synchronizer)):
    logo = sync.pull().settings.company_logo
    return {"logo": logo or None, "timestamp": _now_iso()}


@router.post("/company-logo")
def set_company_logo(
    payload: CompanyLogoIn,
    request: Request,
    sync: RecordSynchronizer = Depends(get_synchronizer),
):
    if not payload.logo.strip():
        raise ValidationError("Invalid logo data")
    sync.set_company_logo(payload.logo)
    record_event(request, AuditAction.UPDATE, AuditEntity.SYSTEM, details="Company logo updated")
    return {"success": True, "message": "Company logo saved successfully", "timestamp": _now_iso()}


@router.delete("/company-logo")
def clear_company_logo(request: Request, sync: RecordSynchronizer = Depends(get_synchronizer)):
    sync.set_company_logo("")
    record_event(request, AuditAction.DELETE, AuditEntity.SYSTEM, details="Company logo removed")
    return {"success": True, "message": "Company logo removed successfully", "timestamp": _now_iso()}


# --------------------------------------------------------------------------
# Password field on one user record
# --------------------------------------------------------------------------

@router.post("/password")
def set_password(
    payload: PasswordIn,
    request: Request,
    sync: RecordSynchronizer = Depends(get_synchronizer),
):
    if payload.action != "setPassword":
        raise ValidationError("Invalid action")
    sync.set_user_password(payload.username, payload.password)
    record_event(
        request,
        AuditAction.UPDATE,
        AuditEntity.USER,
        entity_name=payload.username,
        details=f"Password set for user {payload.username}",
    )
    return {"success": True, "message": f"Password set for user {payload.username}"}
