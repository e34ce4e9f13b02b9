from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from app.api._audit import client_ip, record_event, user_agent
from app.core.errors import AuthorizationError, ValidationError
from app.core.settings import Settings
from app.deps import get_audit_log, get_settings
from app.schemas import (
    AuditAction,
    AuditEntity,
    AuditEntryIn,
    AuditFilters,
    ChangelogPruneIn,
)
from app.services.audit_log import AuditLog, parse_date_bound

router = APIRouter(prefix="/api/changelog", tags=["changelog"])

REQUIRED_FIELDS = ["userId", "username", "action", "entity"]


def _enum_or_400(enum_cls, value: Optional[str], name: str):
    if not value:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Invalid {name}: {value}")


@router.get("")
def list_changelog(
    limit: Optional[int] = Query(None, ge=0),
    offset: int = Query(0, ge=0),
    user_id: Optional[str] = Query(None, alias="userId"),
    action: Optional[str] = Query(None),
    entity: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    audit_log: AuditLog = Depends(get_audit_log),
    cfg: Settings = Depends(get_settings),
):
    filters = AuditFilters(
        user_id=user_id or None,
        action=_enum_or_400(AuditAction, action, "action"),
        entity=_enum_or_400(AuditEntity, entity, "entity"),
        start_date=parse_date_bound(start_date),
        end_date=parse_date_bound(end_date, end=True),
    )
    page = audit_log.query(
        filters,
        limit=cfg.CHANGELOG_DEFAULT_LIMIT if limit is None else limit,
        offset=offset,
    )
    return {
        "logs": [e.to_json_dict() for e in page.entries],
        "total": page.total,
        "limit": page.limit,
        "offset": page.offset,
        "hasMore": page.has_more,
    }


@router.post("")
def add_changelog_entry(
    request: Request,
    body: Dict[str, Any] = Body(...),
    audit_log: AuditLog = Depends(get_audit_log),
):
    missing = [f for f in REQUIRED_FIELDS if not body.get(f)]
    if missing:
        raise ValidationError("Missing required fields", required=REQUIRED_FIELDS)

    try:
        entry_in = AuditEntryIn.model_validate(
            {
                "userId": body["userId"],
                "username": body["username"],
                "userRole": body.get("userRole") or "user",
                "action": body["action"],
                "entity": body["entity"],
                "entityId": body.get("entityId"),
                "entityName": body.get("entityName"),
                "changes": body.get("changes"),
                "details": body.get("details"),
                "ipAddress": client_ip(request),
                "userAgent": user_agent(request),
            }
        )
    except PydanticValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
        raise ValidationError(f"Malformed fields: {fields}")

    entry = audit_log.append(entry_in)
    return JSONResponse(
        {
            "success": True,
            "entry": entry.to_json_dict(),
            "message": "Change log entry added successfully",
        },
        status_code=201,
    )


@router.delete("")
def prune_changelog(
    request: Request,
    payload: Optional[ChangelogPruneIn] = Body(None),
    audit_log: AuditLog = Depends(get_audit_log),
    cfg: Settings = Depends(get_settings),
):
    payload = payload or ChangelogPruneIn()
    # caller identity is not verified here; the flag is supplied by the web client
    if not payload.is_admin:
        raise AuthorizationError("Only administrators can clear change logs")

    days = payload.days_to_keep
    if days is None:
        days = cfg.CHANGELOG_DEFAULT_DAYS_TO_KEEP
    result = audit_log.prune(days)

    record_event(
        request,
        AuditAction.DELETE,
        AuditEntity.SYSTEM,
        details=f"Pruned {result.removed_count} change log entries older than {days} days",
    )
    return {
        "success": True,
        "removedCount": result.removed_count,
        "remainingCount": result.remaining_count,
        "message": f"Removed {result.removed_count} entries older than {days} days",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
