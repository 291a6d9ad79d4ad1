from datetime import datetime, timezone
from sqlalchemy import String, DateTime, Integer, Boolean, Text, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from drive.shared.db import Base
import uuid

def _id32() -> str:
    return uuid.uuid4().hex

def _now() -> datetime:
    return datetime.now(timezone.utc)

class File(Base):
    __tablename__ = "files"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_id32)
    owner_id: Mapped[str] = mapped_column(String(32), ForeignKey("users.id", ondelete="CASCADE"), index=True)

    filename: Mapped[str] = mapped_column(String(255), unique=True)       # generated, disk-facing
    original_name: Mapped[str] = mapped_column(String(255))               # what the user sees; renamable
    file_path: Mapped[str] = mapped_column(Text, unique=True)             # where the blob lives
    file_size: Mapped[int] = mapped_column(Integer, default=0)
    mime_type: Mapped[str] = mapped_column(String(127), default="application/octet-stream")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    modified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
