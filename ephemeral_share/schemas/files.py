"""
Request and response schemas for the file endpoints.

Response models use camelCase aliases because that is the contract the web
client reads (``uploadDate``, ``downloadCount``, ...).
"""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ephemeral_share.models.file_record import FileRecord
from ephemeral_share.utils.datetime import ensure_aware
from ephemeral_share.utils.validators import sanitize_filename


class UploadRequest(BaseModel):
    """
    Validated upload parameters.

    Built by the gateway from the multipart form and the resolved requester
    before any byte is written to storage.
    """

    filename: str
    content_type: str = "application/octet-stream"
    size_hint: int | None = Field(default=None, ge=0)
    owner_id: int | None = None
    is_public: bool = True
    expires_in_seconds: int | None = Field(default=None, gt=0)
    max_downloads: int | None = Field(default=None, gt=0)

    @field_validator('filename')
    @classmethod
    def clean_filename(cls, v: str) -> str:
        return sanitize_filename(v)

    @field_validator('content_type')
    @classmethod
    def clean_content_type(cls, v: str) -> str:
        v = (v or "").strip()
        if not v or len(v) > 255:
            return "application/octet-stream"
        return v


class UploadResponse(BaseModel):
    uuid: str


class FileRecordSummary(BaseModel):
    uuid: str
    filename: str
    size: int
    upload_date: datetime
    expiry_date: datetime | None
    download_count: int
    max_downloads: int | None
    owner_username: str | None
    public: bool
    status: str

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @classmethod
    def from_record(cls, record: FileRecord) -> "FileRecordSummary":
        return cls(
            uuid=record.id,
            filename=record.filename,
            size=record.size_bytes,
            upload_date=ensure_aware(record.uploaded_at),
            expiry_date=ensure_aware(record.expires_at),
            download_count=record.download_count,
            max_downloads=record.max_downloads,
            owner_username=record.owner.username if record.owner else None,
            public=record.is_public,
            status=record.status,
        )


class FileInfoResponse(BaseModel):
    uuid: str
    filename: str
    size: int
    content_type: str
    upload_date: datetime
    expiry_date: datetime | None
    downloads_remaining: int | None
    public: bool

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @classmethod
    def from_record(cls, record: FileRecord) -> "FileInfoResponse":
        return cls(
            uuid=record.id,
            filename=record.filename,
            size=record.size_bytes,
            content_type=record.content_type,
            upload_date=ensure_aware(record.uploaded_at),
            expiry_date=ensure_aware(record.expires_at),
            downloads_remaining=record.downloads_remaining,
            public=record.is_public,
        )
