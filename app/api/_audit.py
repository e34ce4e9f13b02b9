"""Helpers for attributing web-handler mutations in the change log."""
import logging
from typing import Optional

from fastapi import Request

from app.core.errors import PersistenceError
from app.schemas import AuditAction, AuditEntity, AuditEntry, AuditEntryIn

logger = logging.getLogger("audit_hooks")


def client_ip(request: Request) -> str:
    return (
        request.headers.get("x-forwarded-for")
        or request.headers.get("x-real-ip")
        or "unknown"
    )


def user_agent(request: Request) -> str:
    return request.headers.get("user-agent") or "unknown"


def record_event(
    request: Request,
    action: AuditAction,
    entity: AuditEntity,
    *,
    entity_id: Optional[str] = None,
    entity_name: Optional[str] = None,
    details: Optional[str] = None,
) -> Optional[AuditEntry]:
    """
    Append a change-log entry for a mutation this service performed itself.
    Actor comes from the optional X-User-Id / X-Username / X-User-Role headers.
    The primary request already succeeded, so a failed append is only logged.
    """
    entry = AuditEntryIn(
        user_id=request.headers.get("x-user-id") or "system",
        username=request.headers.get("x-username") or "system",
        user_role=request.headers.get("x-user-role") or "system",
        action=action,
        entity=entity,
        entity_id=entity_id,
        entity_name=entity_name,
        details=details,
        ip_address=client_ip(request),
        user_agent=user_agent(request),
    )
    try:
        return request.app.state.audit_log.append(entry)
    except PersistenceError as e:
        logger.error(f"Could not record {action.value} {entity.value} in change log: {e}")
        return None
