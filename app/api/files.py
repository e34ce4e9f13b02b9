from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from app.api._audit import record_event
from app.core.errors import AuthorizationError, NotFoundError
from app.core.settings import Settings
from app.deps import get_file_store, get_settings
from app.schemas import AdminIn, AuditAction, AuditEntity
from app.storage import FileStore, file_url

router = APIRouter(prefix="/api/files", tags=["files"])


def _content_disposition(filename: str, fallback: str) -> str:
    # header values must be latin-1; keep an ASCII name plus the RFC 5987 form
    ascii_name = filename.encode("ascii", "ignore").decode().replace('"', "") or fallback
    return f"inline; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"


@router.post("/upload")
async def upload_file(
    request: Request,
    file: UploadFile = File(...),
    file_type: Optional[str] = Form(None, alias="type"),
    tender_id: Optional[str] = Form(None, alias="tenderId"),
    store: FileStore = Depends(get_file_store),
    cfg: Settings = Depends(get_settings),
):
    data = await file.read()
    if len(data) > cfg.max_upload_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size is {cfg.MAX_UPLOAD_MB}MB.",
        )

    meta = await run_in_threadpool(
        store.put, data, file.filename or "", file.content_type, file_type, tender_id
    )
    await run_in_threadpool(
        record_event,
        request,
        AuditAction.UPLOAD,
        AuditEntity.FILE,
        entity_id=tender_id,
        entity_name=meta.filename,
        details=f"UPLOAD file: {meta.filename}"
        + (f" ({file_type})" if file_type else "")
        + (f" for tender {tender_id}" if tender_id else ""),
    )
    return {
        "id": meta.id,
        "name": meta.filename,
        "type": meta.file_type,
        "url": file_url(meta.id),
        "uploadedAt": meta.to_json_dict()["uploadedAt"],
        "size": meta.size,
    }


@router.get("")
def list_files(store: FileStore = Depends(get_file_store)):
    """Every stored file with metadata and checksum (diagnostics / admin)."""
    files = store.list()
    return {
        "success": True,
        "files": [f.to_json_dict() for f in files],
        "count": len(files),
        "totalSize": sum(f.size for f in files),
    }


@router.get("/{file_id}")
def get_file(file_id: str, store: FileStore = Depends(get_file_store)):
    found = store.get(file_id)
    if found is None:
        raise NotFoundError(f"File {file_id} not found")
    data, meta = found
    return Response(
        content=data,
        media_type=meta.mimetype,
        headers={
            "Content-Disposition": _content_disposition(meta.filename, file_id),
            "Cache-Control": "public, max-age=3600",
        },
    )


@router.delete("/{file_id}")
def delete_file(
    file_id: str,
    request: Request,
    payload: Optional[AdminIn] = Body(None),
    store: FileStore = Depends(get_file_store),
):
    if not (payload and payload.is_admin):
        raise AuthorizationError("Only administrators can delete files")
    if not store.delete(file_id):
        raise NotFoundError(f"File {file_id} not found")
    record_event(
        request,
        AuditAction.DELETE,
        AuditEntity.FILE,
        entity_name=file_id,
        details=f"DELETE file: {file_id}",
    )
    return {"success": True, "id": file_id}
