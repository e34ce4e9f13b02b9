"""
Attachment storage: content blob + JSON metadata sidecar per file id.

Local disk by default (``<dir>/<id>`` and ``<dir>/<id>.meta``); an S3/R2
bucket when DOCS_BUCKET is configured. An id resolves only when both the
content and its sidecar exist.
"""
import hashlib
import json
import logging
import mimetypes
import os
import re
import tempfile
import time
import uuid
from typing import List, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError as PydanticValidationError

from app.core.errors import PersistenceError
from app.schemas import StoredFileInfo, StoredFileMeta, utcnow
from app.services.sync_store import read_json, write_json_atomic

logger = logging.getLogger("file_store")

META_SUFFIX = ".meta"
_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def _build_s3_client(cfg):
    import boto3
    from botocore.config import Config
    endpoint = cfg.S3_ENDPOINT_URL  # e.g. https://<accountid>.r2.cloudflarestorage.com
    aws_region = cfg.AWS_REGION or "us-east-1"  # R2 accepts 'auto' or a region
    addressing = cfg.S3_ADDRESSING_STYLE or "virtual"  # or 'path' if needed

    return boto3.client(
        "s3",
        aws_access_key_id=cfg.AWS_ACCESS_KEY_ID,
        aws_secret_access_key=cfg.AWS_SECRET_ACCESS_KEY,
        region_name=aws_region,
        endpoint_url=endpoint,
        config=Config(signature_version="s3v4", s3={"addressing_style": addressing}),
    )


def _safe_filename(name: str) -> str:
    keep = "".join(c for c in (name or "") if c.isalnum() or c in (" ", ".", "_", "-", "(", ")"))
    return keep.strip() or str(uuid.uuid4())


def new_file_id() -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def is_valid_file_id(file_id: str) -> bool:
    return bool(file_id) and bool(_ID_RE.match(file_id))


def file_url(file_id: str) -> str:
    return f"/api/files/{file_id}"


def _guess_mime(filename: str, content_type: Optional[str]) -> str:
    return content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"


def _write_bytes_atomic(path: str, data: bytes) -> None:
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", dir=directory)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.remove(tmp_path)
        except OSError:
            pass
        raise


class FileStore:
    """Common interface; see LocalFileStore / S3FileStore."""

    backend = "base"

    def put(
        self,
        data: bytes,
        filename: str,
        content_type: Optional[str] = None,
        file_type: Optional[str] = None,
        tender_id: Optional[str] = None,
    ) -> StoredFileMeta:
        fname = _safe_filename(filename)
        meta = StoredFileMeta(
            id=new_file_id(),
            filename=fname,
            mimetype=_guess_mime(fname, content_type),
            size=len(data),
            uploaded_at=utcnow(),
            file_type=file_type or None,
            tender_id=tender_id or None,
        )
        self._write_pair(meta, data)
        logger.info(f"File stored: {fname} ({meta.id}, {meta.size} bytes)", extra={"file_id": meta.id})
        return meta

    def get(self, file_id: str) -> Optional[Tuple[bytes, StoredFileMeta]]:
        if not is_valid_file_id(file_id):
            return None
        return self._read_pair(file_id)

    def _write_pair(self, meta: StoredFileMeta, data: bytes) -> None:
        raise NotImplementedError

    def _read_pair(self, file_id: str) -> Optional[Tuple[bytes, StoredFileMeta]]:
        raise NotImplementedError

    def list(self) -> List[StoredFileInfo]:
        raise NotImplementedError

    def delete(self, file_id: str) -> bool:
        raise NotImplementedError

    @staticmethod
    def _parse_meta(raw, file_id: str) -> Optional[StoredFileMeta]:
        if not isinstance(raw, dict):
            logger.warning(f"Metadata for {file_id} is not an object; ignoring file")
            return None
        try:
            return StoredFileMeta.model_validate({"id": file_id, **raw})
        except PydanticValidationError as e:
            logger.warning(f"Failed to read metadata for {file_id}: {e}")
            return None

    @staticmethod
    def _info(meta: StoredFileMeta, data: bytes) -> StoredFileInfo:
        return StoredFileInfo(
            **meta.model_dump(),
            checksum=hashlib.md5(data).hexdigest(),
            url=file_url(meta.id),
        )


class LocalFileStore(FileStore):
    backend = "local"

    def __init__(self, directory: str):
        self.directory = directory

    def _paths(self, file_id: str) -> Tuple[str, str]:
        content = os.path.join(self.directory, file_id)
        return content, content + META_SUFFIX

    def _write_pair(self, meta: StoredFileMeta, data: bytes) -> None:
        content_path, meta_path = self._paths(meta.id)
        try:
            os.makedirs(self.directory, exist_ok=True)
            _write_bytes_atomic(content_path, data)
        except OSError as e:
            logger.error(f"Failed to write file content {content_path}: {e}",
                         extra={"operation": "put", "target": content_path})
            raise PersistenceError("put", content_path, e) from e
        try:
            # sidecar last: the id becomes visible only once it exists
            write_json_atomic(meta_path, meta.to_json_dict())
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to write file metadata {meta_path}: {e}",
                         extra={"operation": "put", "target": meta_path})
            try:
                os.remove(content_path)
            except OSError:
                pass
            raise PersistenceError("put", meta_path, e) from e

    def _read_pair(self, file_id: str) -> Optional[Tuple[bytes, StoredFileMeta]]:
        content_path, meta_path = self._paths(file_id)
        if not (os.path.isfile(content_path) and os.path.isfile(meta_path)):
            return None
        try:
            raw = read_json(meta_path)
            with open(content_path, "rb") as f:
                data = f.read()
        except FileNotFoundError:
            # deleted between the existence check and the read
            return None
        except ValueError as e:
            logger.warning(f"Failed to read metadata for {file_id}: {e}")
            return None
        except OSError as e:
            logger.error(f"Failed to read file {content_path}: {e}",
                         extra={"operation": "get", "target": content_path})
            raise PersistenceError("get", content_path, e) from e
        meta = self._parse_meta(raw, file_id)
        if meta is None:
            return None
        return data, meta

    def list(self) -> List[StoredFileInfo]:
        if not os.path.isdir(self.directory):
            return []
        files: List[StoredFileInfo] = []
        for name in sorted(os.listdir(self.directory)):
            if name.endswith(META_SUFFIX) or name.startswith(".") or not is_valid_file_id(name):
                continue
            pair = self._read_pair(name)
            if pair is None:
                continue
            data, meta = pair
            files.append(self._info(meta, data))
        return files

    def delete(self, file_id: str) -> bool:
        if not is_valid_file_id(file_id):
            return False
        content_path, meta_path = self._paths(file_id)
        if not (os.path.isfile(content_path) and os.path.isfile(meta_path)):
            return False
        try:
            os.remove(meta_path)
            os.remove(content_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to delete file {file_id}: {e}",
                         extra={"operation": "delete", "target": content_path})
            raise PersistenceError("delete", content_path, e) from e
        logger.info(f"File deleted: {file_id}", extra={"file_id": file_id})
        return True


class S3FileStore(FileStore):
    backend = "s3"

    def __init__(self, client, bucket: str, prefix: str = "uploads"):
        self._s3 = client
        self.bucket = bucket
        self.prefix = prefix.strip("/")

    def _keys(self, file_id: str) -> Tuple[str, str]:
        key = f"{self.prefix}/{file_id}" if self.prefix else file_id
        return key, key + META_SUFFIX

    @staticmethod
    def _is_missing(exc: ClientError) -> bool:
        code = str(exc.response.get("Error", {}).get("Code", ""))
        return code in {"NoSuchKey", "404", "NotFound"}

    def _write_pair(self, meta: StoredFileMeta, data: bytes) -> None:
        key, meta_key = self._keys(meta.id)
        try:
            self._s3.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=meta.mimetype)
            self._s3.put_object(
                Bucket=self.bucket,
                Key=meta_key,
                Body=json.dumps(meta.to_json_dict()).encode("utf-8"),
                ContentType="application/json",
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload {key} to bucket {self.bucket}: {e}",
                         extra={"operation": "put", "target": key})
            raise PersistenceError("put", f"s3://{self.bucket}/{key}", e) from e

    def _read_pair(self, file_id: str) -> Optional[Tuple[bytes, StoredFileMeta]]:
        key, meta_key = self._keys(file_id)
        try:
            raw_meta = self._s3.get_object(Bucket=self.bucket, Key=meta_key)["Body"].read()
            data = self._s3.get_object(Bucket=self.bucket, Key=key)["Body"].read()
        except ClientError as e:
            if self._is_missing(e):
                return None
            logger.error(f"Failed to fetch {key} from bucket {self.bucket}: {e}",
                         extra={"operation": "get", "target": key})
            raise PersistenceError("get", f"s3://{self.bucket}/{key}", e) from e
        except BotoCoreError as e:
            raise PersistenceError("get", f"s3://{self.bucket}/{key}", e) from e
        try:
            raw = json.loads(raw_meta)
        except ValueError as e:
            logger.warning(f"Failed to read metadata for {file_id}: {e}")
            return None
        meta = self._parse_meta(raw, file_id)
        if meta is None:
            return None
        return data, meta

    def list(self) -> List[StoredFileInfo]:
        files: List[StoredFileInfo] = []
        token = None
        while True:
            kwargs = {"Bucket": self.bucket, "Prefix": f"{self.prefix}/" if self.prefix else ""}
            if token:
                kwargs["ContinuationToken"] = token
            try:
                page = self._s3.list_objects_v2(**kwargs)
            except (ClientError, BotoCoreError) as e:
                raise PersistenceError("list", f"s3://{self.bucket}/{self.prefix}", e) from e
            for obj in page.get("Contents", []):
                name = obj["Key"].rsplit("/", 1)[-1]
                if name.endswith(META_SUFFIX) or not is_valid_file_id(name):
                    continue
                pair = self._read_pair(name)
                if pair is not None:
                    files.append(self._info(pair[1], pair[0]))
            if not page.get("IsTruncated"):
                break
            token = page.get("NextContinuationToken")
        return files

    def delete(self, file_id: str) -> bool:
        if not is_valid_file_id(file_id):
            return False
        key, meta_key = self._keys(file_id)
        try:
            self._s3.head_object(Bucket=self.bucket, Key=meta_key)
        except ClientError as e:
            if self._is_missing(e):
                return False
            raise PersistenceError("delete", f"s3://{self.bucket}/{key}", e) from e
        try:
            self._s3.delete_object(Bucket=self.bucket, Key=meta_key)
            self._s3.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to delete {key} from bucket {self.bucket}: {e}",
                         extra={"operation": "delete", "target": key})
            raise PersistenceError("delete", f"s3://{self.bucket}/{key}", e) from e
        logger.info(f"File deleted: {file_id}", extra={"file_id": file_id})
        return True


def build_file_store(cfg) -> FileStore:
    if cfg.DOCS_BUCKET:
        return S3FileStore(_build_s3_client(cfg), cfg.DOCS_BUCKET, cfg.S3_PREFIX)
    return LocalFileStore(cfg.LOCAL_UPLOAD_DIR)
