from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CamelModel(BaseModel):
    """Wire/disk format is camelCase (the browser clients own that shape)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ----------------------------------------------------------------------------
# Dataset snapshot
# ----------------------------------------------------------------------------

class ContactInfo(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    phone: str = ""
    email: str = ""
    website: str = ""
    address: str = ""


class CompanySettings(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    company_name: str = ""
    company_logo: str = ""
    contact_info: ContactInfo = Field(default_factory=ContactInfo)
    theme: Dict[str, Any] = Field(default_factory=dict)
    last_updated: Optional[datetime] = None


class DatasetSnapshot(CamelModel):
    # tenders/users/files are opaque client records; only ids are load-bearing here
    tenders: List[Dict[str, Any]] = Field(default_factory=list)
    users: List[Dict[str, Any]] = Field(default_factory=list)
    files: List[Dict[str, Any]] = Field(default_factory=list)
    settings: CompanySettings = Field(default_factory=CompanySettings)
    last_updated: datetime = Field(default_factory=utcnow)
    update_source: str = "initial"
    version: str = "1.0.0"

    @field_validator("last_updated")
    @classmethod
    def ensure_utc(cls, value):
        return _as_utc(value)


class SyncPushIn(CamelModel):
    tenders: Optional[List[Dict[str, Any]]] = None
    users: Optional[List[Dict[str, Any]]] = None
    files: Optional[List[Dict[str, Any]]] = None
    settings: Optional[CompanySettings] = None
    source: Optional[str] = None


class MergeData(CamelModel):
    tenders: Optional[List[Dict[str, Any]]] = None
    users: Optional[List[Dict[str, Any]]] = None


class SyncActionIn(CamelModel):
    action: str
    data: MergeData = Field(default_factory=MergeData)


# ----------------------------------------------------------------------------
# Presence
# ----------------------------------------------------------------------------

class PresenceUserIn(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str
    username: str
    name: str = ""
    role: str = "user"


class PresenceEntry(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    user_id: str
    username: str
    display_name: str = ""
    role: str = "user"
    last_activity: datetime
    is_online: bool = True


class OnlineUsersIn(CamelModel):
    action: str
    user: Optional[PresenceUserIn] = None
    user_id: Optional[str] = None


# ----------------------------------------------------------------------------
# Audit log
# ----------------------------------------------------------------------------

class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    VIEW = "VIEW"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    EXPORT = "EXPORT"
    UPLOAD = "UPLOAD"
    DOWNLOAD = "DOWNLOAD"


class AuditEntity(str, Enum):
    TENDER = "TENDER"
    USER = "USER"
    FILE = "FILE"
    SYSTEM = "SYSTEM"
    REPORT = "REPORT"


class AuditChanges(CamelModel):
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    fields: Optional[List[str]] = None


class AuditEntryIn(CamelModel):
    user_id: str
    username: str
    user_role: str = "user"
    action: AuditAction
    entity: AuditEntity
    entity_id: Optional[str] = None
    entity_name: Optional[str] = None
    changes: Optional[AuditChanges] = None
    details: Optional[str] = None
    ip_address: str = "unknown"
    user_agent: str = "unknown"


class AuditEntry(AuditEntryIn):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def ensure_utc(cls, value):
        return _as_utc(value)


class AuditFilters(CamelModel):
    user_id: Optional[str] = None
    action: Optional[AuditAction] = None
    entity: Optional[AuditEntity] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class AuditPage(CamelModel):
    entries: List[AuditEntry]
    total: int
    limit: int
    offset: int
    has_more: bool


class PruneResult(CamelModel):
    removed_count: int
    remaining_count: int


class ChangelogPruneIn(CamelModel):
    is_admin: bool = False
    days_to_keep: Optional[int] = None


# ----------------------------------------------------------------------------
# Files
# ----------------------------------------------------------------------------

class StoredFileMeta(CamelModel):
    id: str
    filename: str
    mimetype: str = "application/octet-stream"
    size: int
    uploaded_at: datetime = Field(default_factory=utcnow)
    file_type: Optional[str] = None
    tender_id: Optional[str] = None


class StoredFileInfo(StoredFileMeta):
    checksum: str
    url: str


class AdminIn(CamelModel):
    is_admin: bool = False


# ----------------------------------------------------------------------------
# Settings singletons
# ----------------------------------------------------------------------------

class CompanyLogoIn(CamelModel):
    logo: str


class PasswordIn(CamelModel):
    action: str
    username: str
    password: str
