import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import select, update, func, or_
from sqlalchemy.orm import Session

from drive.files.models import File
from drive.files.storage import BlobStore, IncomingFile, StoredBlob, safe_display_name, sniff_mime
from drive.shared.db import store_errors
from drive.shared.errors import BadRequest, BlobIOError, Forbidden, NotFound

logger = logging.getLogger(__name__)

def _now() -> datetime:
    return datetime.now(timezone.utc)

def _like_escape(q: str) -> str:
    return q.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")

def _live(owner_id: str):
    return (File.owner_id == owner_id, File.is_deleted == False)  # noqa: E712

def _by_name():
    return (File.original_name.asc(), File.filename.asc())

def create_file_record(
    db: Session, owner_id: str, original_name: str, mime_type: str, size: int, blob: StoredBlob
) -> File:
    """Insert the metadata row for a blob that is already on disk."""
    now = _now()
    rec = File(
        owner_id=owner_id,
        filename=blob.filename,
        original_name=original_name,
        file_path=str(blob.path),
        file_size=size,
        mime_type=mime_type,
        created_at=now,
        modified_at=now,
        uploaded_at=now,
        is_deleted=False,
    )
    with store_errors(db):
        db.add(rec)
        db.commit()
        db.refresh(rec)
    return rec

async def upload_file(db: Session, blobs: BlobStore, owner_id: str, uploaded: IncomingFile, size_limit: int) -> File:
    """
    Write the bytes first, then the row. If the row cannot be written the
    blob is removed again, so the only window is "blob without row".
    """
    name = safe_display_name(uploaded.filename)
    mime = sniff_mime(name, uploaded.content_type)
    try:
        blob = await blobs.store(uploaded, name, size_limit)
    finally:
        await uploaded.close()
    try:
        rec = create_file_record(db, owner_id, name, mime, blob.size, blob)
    except BaseException:
        _discard_orphan(blobs, blob)
        raise
    logger.info("user %s uploaded %s (%s bytes) as %s", owner_id, rec.id, rec.file_size, blob.filename)
    return rec

def _discard_orphan(blobs: BlobStore, blob: StoredBlob) -> None:
    try:
        blobs.delete(blob.path)
    except Exception:
        logger.warning("could not remove orphaned blob %s", blob.path, exc_info=True)

def list_files(db: Session, owner_id: str, include_deleted: bool = False) -> List[File]:
    stmt = select(File).where(File.owner_id == owner_id)
    if not include_deleted:
        stmt = stmt.where(File.is_deleted == False)  # noqa: E712
    with store_errors(db):
        return list(db.scalars(stmt.order_by(*_by_name())).all())

def get_by_id(db: Session, file_id: str) -> File:
    with store_errors(db):
        f = db.get(File, file_id)
    if not f or f.is_deleted:
        raise NotFound()
    return f

def get_file(db: Session, file_id: str, requester_id: str) -> File:
    f = get_by_id(db, file_id)
    if f.owner_id != requester_id:
        raise Forbidden()
    return f

def _raise_missing_or_forbidden(db: Session, file_id: str, requester_id: str):
    # only called after a guarded UPDATE matched nothing; decides which error to report
    f = get_by_id(db, file_id)
    if f.owner_id != requester_id:
        raise Forbidden()
    raise NotFound()

def rename_file(db: Session, file_id: str, requester_id: str, new_name: str) -> File:
    if not new_name or not new_name.strip():
        raise BadRequest("New filename is required")
    stmt = (
        update(File)
        .where(File.id == file_id, *_live(requester_id))
        .values(original_name=new_name, modified_at=_now())
        .execution_options(synchronize_session=False)
    )
    with store_errors(db):
        res = db.execute(stmt)
        if res.rowcount != 1:
            db.rollback()
            _raise_missing_or_forbidden(db, file_id, requester_id)
        db.commit()
    return get_file(db, file_id, requester_id)

def soft_delete_file(db: Session, file_id: str, requester_id: str) -> None:
    stmt = (
        update(File)
        .where(File.id == file_id, *_live(requester_id))
        .values(is_deleted=True, modified_at=_now())
        .execution_options(synchronize_session=False)
    )
    with store_errors(db):
        res = db.execute(stmt)
        if res.rowcount != 1:
            db.rollback()
            _raise_missing_or_forbidden(db, file_id, requester_id)
        db.commit()
    logger.info("user %s deleted file %s", requester_id, file_id)

def search_files(db: Session, query: Optional[str], owner_id: str) -> List[File]:
    q = (query or "").strip()
    if not q:
        raise BadRequest("Search query is required")
    pattern = f"%{_like_escape(q)}%"
    stmt = (
        select(File)
        .where(
            *_live(owner_id),
            or_(File.filename.ilike(pattern, escape="\\"), File.original_name.ilike(pattern, escape="\\")),
        )
        .order_by(*_by_name())
    )
    with store_errors(db):
        return list(db.scalars(stmt).all())

def storage_usage(db: Session, owner_id: str) -> Tuple[int, int]:
    stmt = select(func.count(File.id), func.coalesce(func.sum(File.file_size), 0)).where(*_live(owner_id))
    with store_errors(db):
        count, total = db.execute(stmt).one()
    return int(count), int(total)

def open_blob(db: Session, blobs: BlobStore, file_id: str, requester_id: str):
    """(File, path) for a download. NotFound when the row is gone or its blob is."""
    f = get_file(db, file_id, requester_id)
    try:
        return f, blobs.read(f.file_path)
    except NotFound:
        logger.warning("blob missing for file %s at %s", f.id, f.file_path)
        raise

def purge_deleted_files(db: Session, blobs: BlobStore, older_than: Optional[datetime] = None) -> int:
    """
    Reclaim soft-deleted files: remove each blob, then the row. A row whose
    blob cannot be removed is kept for the next run.
    """
    stmt = select(File).where(File.is_deleted == True)  # noqa: E712
    if older_than is not None:
        stmt = stmt.where(File.modified_at <= older_than)
    purged = 0
    with store_errors(db):
        for f in db.scalars(stmt).all():
            try:
                blobs.delete(f.file_path)
            except (BlobIOError, NotFound):
                logger.warning("skipping purge of %s: blob at %s not removable", f.id, f.file_path)
                continue
            db.delete(f)
            purged += 1
        db.commit()
    logger.info("purged %d soft-deleted files", purged)
    return purged
