from fastapi import APIRouter, Depends

from app.core.errors import ValidationError
from app.deps import get_presence
from app.schemas import OnlineUsersIn
from app.services.presence import PresenceTracker

router = APIRouter(prefix="/api/online-users", tags=["presence"])


def _registry_state(presence: PresenceTracker, message: str = None) -> dict:
    users = [e.to_json_dict() for e in presence.list()]
    body = {"success": True, "onlineUsers": users, "count": len(users)}
    if message:
        body["message"] = message
    return body


@router.get("")
def online_users(presence: PresenceTracker = Depends(get_presence)):
    return _registry_state(presence)


@router.post("")
def update_online_users(payload: OnlineUsersIn, presence: PresenceTracker = Depends(get_presence)):
    if payload.action == "heartbeat" and payload.user:
        presence.heartbeat(payload.user)
        return _registry_state(presence, "Heartbeat received")

    if payload.action == "logout" and payload.user_id:
        presence.logout(payload.user_id)
        return _registry_state(presence, "User logged out")

    raise ValidationError("Invalid action")
