from fastapi import Request

from app.core.settings import Settings
from app.services.audit_log import AuditLog
from app.services.presence import PresenceTracker
from app.services.record_sync import RecordSynchronizer
from app.storage import FileStore


# Components are created by app.main.create_app and live on app.state for the
# lifetime of the process.

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_synchronizer(request: Request) -> RecordSynchronizer:
    return request.app.state.synchronizer


def get_presence(request: Request) -> PresenceTracker:
    return request.app.state.presence


def get_audit_log(request: Request) -> AuditLog:
    return request.app.state.audit_log


def get_file_store(request: Request) -> FileStore:
    return request.app.state.file_store
