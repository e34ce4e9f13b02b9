"""
Durable store for the shared dataset.

The whole dataset (tenders, users, files, settings) lives in one JSON file and
is read and written as a unit. Writes go to a temp file in the same directory
and are moved into place with ``os.replace`` so a concurrent reader only ever
sees the old file or the new one.
"""
import json
import logging
import os
import tempfile
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from app.core.errors import PersistenceError
from app.schemas import CompanySettings, ContactInfo, DatasetSnapshot, utcnow

logger = logging.getLogger("sync_store")


def write_json_atomic(path: str, payload: Any) -> None:
    """Serialize ``payload`` to ``path`` via temp file + rename. Raises OSError/TypeError."""
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", suffix=".json", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.remove(tmp_path)
        except OSError:
            pass
        raise


def read_json(path: str) -> Optional[Any]:
    """Return parsed JSON, or None when the file does not exist."""
    if not os.path.exists(path):
        return None
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


class SyncStore:
    """Single versioned blob on disk; the unit of atomic read/write."""

    def __init__(self, path: str, default_settings: Optional[Callable[[], CompanySettings]] = None):
        self.path = path
        self._default_settings = default_settings or CompanySettings

    def empty_snapshot(self) -> DatasetSnapshot:
        settings = self._default_settings()
        if settings.last_updated is None:
            settings = settings.model_copy(update={"last_updated": utcnow()})
        return DatasetSnapshot(settings=settings, update_source="initial")

    def load(self) -> DatasetSnapshot:
        try:
            raw = read_json(self.path)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read dataset from {self.path}: {e}",
                         extra={"operation": "load", "target": self.path})
            raise PersistenceError("load", self.path, e) from e

        if raw is None:
            return self.empty_snapshot()
        if not isinstance(raw, dict):
            logger.error(f"Dataset file {self.path} does not hold an object",
                         extra={"operation": "load", "target": self.path})
            raise PersistenceError("load", self.path, ValueError("expected a JSON object"))

        return self._from_raw(raw)

    def _from_raw(self, raw: Dict[str, Any]) -> DatasetSnapshot:
        # older files may be missing keys; fill from the defaults
        data = dict(raw)
        if not data.get("settings"):
            data["settings"] = self._default_settings().to_json_dict()
        for key in ("tenders", "users", "files"):
            if data.get(key) is None:
                data[key] = []
        data.setdefault("updateSource", "unknown")
        data.setdefault("version", "1.0.0")
        try:
            return DatasetSnapshot.model_validate(data)
        except PydanticValidationError as e:
            logger.error(f"Dataset file {self.path} is malformed: {e}",
                         extra={"operation": "load", "target": self.path})
            raise PersistenceError("load", self.path, e) from e

    def save(self, snapshot: DatasetSnapshot) -> None:
        try:
            write_json_atomic(self.path, snapshot.to_json_dict())
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to write dataset to {self.path}: {e}",
                         extra={"operation": "save", "target": self.path})
            raise PersistenceError("save", self.path, e) from e
        logger.debug(
            f"Saved dataset: {len(snapshot.tenders)} tenders, {len(snapshot.users)} users "
            f"(source={snapshot.update_source})"
        )


def default_company_settings(cfg) -> Callable[[], CompanySettings]:
    """Factory building the first-run company settings from app configuration."""

    def build() -> CompanySettings:
        return CompanySettings(
            company_name=cfg.COMPANY_NAME,
            company_logo="",
            contact_info=ContactInfo(
                phone=cfg.COMPANY_PHONE,
                email=cfg.COMPANY_EMAIL,
                website=cfg.COMPANY_WEBSITE,
                address=cfg.COMPANY_ADDRESS,
            ),
            theme={},
            last_updated=utcnow(),
        )

    return build
