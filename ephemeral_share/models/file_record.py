"""
File record database model.

One row per upload. The row is the only place that knows about expiry and
download accounting; the blob store only knows the id.
"""
import enum
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ephemeral_share.database import Base

if TYPE_CHECKING:
    from ephemeral_share.models.user import User


class FileStatus(str, enum.Enum):
    """Lifecycle of a file record. Transitions only move forward."""

    ACTIVE = "active"
    EXPIRED = "expired"
    DELETED = "deleted"


class FileRecord(Base):
    """
    Metadata for one uploaded file.

    Attributes:
        id: UUID v4 string, also the blob key and the public download token
        filename: Sanitized original filename (display only)
        content_type: MIME type reported by the uploader
        size_bytes: Size of the stored blob
        checksum: Hex SHA-256 of the stored blob
        owner_id: Uploading user, None for anonymous uploads
        is_public: False restricts downloads to the owner
        uploaded_at: Upload completion time (UTC)
        expires_at: Time limit (UTC), None means no time limit
        max_downloads: Download limit, None means unlimited
        download_count: Successful downloads so far
        status: active, expired or deleted
        expired_at: When the record left the active state
        deleted_at: When the blob was reclaimed
    """

    __tablename__ = "file_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    filename: Mapped[str] = mapped_column(String(255))
    content_type: Mapped[str] = mapped_column(
        String(255), default="application/octet-stream"
    )
    size_bytes: Mapped[int] = mapped_column(BigInteger)
    checksum: Mapped[str] = mapped_column(String(64))
    owner_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )
    is_public: Mapped[bool] = mapped_column(Boolean, default=True)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    max_downloads: Mapped[int | None] = mapped_column(Integer, nullable=True)
    download_count: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(16), default=FileStatus.ACTIVE.value)
    expired_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    owner: Mapped["User | None"] = relationship("User", back_populates="files")

    __table_args__ = (
        Index("idx_file_records_status_expires_at", "status", "expires_at"),
        Index("idx_file_records_owner_uploaded_at", "owner_id", "uploaded_at"),
    )

    @property
    def downloads_remaining(self) -> int | None:
        if self.max_downloads is None:
            return None
        return max(self.max_downloads - self.download_count, 0)

    def __repr__(self) -> str:
        return f"<FileRecord(id={self.id}, filename={self.filename}, status={self.status})>"
