from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session
from typing import Optional

from drive.shared.auth import require_identity
from drive.shared.config import settings
from drive.shared.db import get_db
from drive.shared.errors import PayloadTooLarge
from drive.auth.schemas import Identity, MessageOut
from drive.files.schemas import FileEnvelope, FileList, FileMessageOut, FileRenameIn, SearchOut, UsageOut
from drive.files.storage import BlobStore, get_blob_store
from drive.files.upload import MultipartUpload
from drive.files import service

router = APIRouter(prefix="/files", tags=["Files"])

# slack for multipart boundaries and part headers
_MULTIPART_OVERHEAD = 64 * 1024

@router.get("", response_model=FileList)
def api_list(identity: Identity = Depends(require_identity), db: Session = Depends(get_db)):
    return {"files": service.list_files(db, identity.id)}

@router.post("/upload", response_model=FileMessageOut, status_code=201)
async def api_upload(
    request: Request,
    identity: Identity = Depends(require_identity),
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
):
    """Multipart upload, field name `file`. The body is streamed only after auth passed."""
    limit = settings.MAX_UPLOAD_BYTES
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit + _MULTIPART_OVERHEAD:
        raise PayloadTooLarge(f"File too large. Max {limit} bytes")

    upload = MultipartUpload(request.headers.get("content-type"), request.stream(), limit + _MULTIPART_OVERHEAD)
    await upload.start()
    rec = await service.upload_file(db, blobs, identity.id, upload, limit)
    return {"message": "File uploaded successfully", "file": rec}

@router.get("/search", response_model=SearchOut)
def api_search(
    q: Optional[str] = Query(None),
    identity: Identity = Depends(require_identity),
    db: Session = Depends(get_db),
):
    files = service.search_files(db, q, identity.id)
    return {"files": files, "query": q}

@router.get("/usage", response_model=UsageOut)
def api_usage(identity: Identity = Depends(require_identity), db: Session = Depends(get_db)):
    count, total = service.storage_usage(db, identity.id)
    return {"files": count, "bytes": total}

@router.put("/{file_id}/rename", response_model=FileMessageOut)
def api_rename(
    file_id: str,
    payload: FileRenameIn,
    identity: Identity = Depends(require_identity),
    db: Session = Depends(get_db),
):
    f = service.rename_file(db, file_id, identity.id, payload.newName)
    return {"message": "File renamed successfully", "file": f}

@router.delete("/{file_id}", response_model=MessageOut)
def api_delete(file_id: str, identity: Identity = Depends(require_identity), db: Session = Depends(get_db)):
    service.soft_delete_file(db, file_id, identity.id)
    return {"message": "File deleted successfully"}

@router.get("/{file_id}/download")
def api_download(
    file_id: str,
    identity: Identity = Depends(require_identity),
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
):
    f, path = service.open_blob(db, blobs, file_id, identity.id)
    return FileResponse(path=path, media_type=f.mime_type, filename=f.original_name)

@router.get("/{file_id}", response_model=FileEnvelope)
def api_file_meta(file_id: str, identity: Identity = Depends(require_identity), db: Session = Depends(get_db)):
    return {"file": service.get_file(db, file_id, identity.id)}
