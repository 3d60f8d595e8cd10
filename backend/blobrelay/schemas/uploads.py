"""Resumable upload session schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class UploadInitRequest(BaseModel):
    """Start a resumable upload."""
    file_name: str = Field(min_length=1)
    file_size: int = Field(gt=0)
    mime_type: str = "application/octet-stream"
    folder_id: str | None = None
    is_encrypted: bool = False
    encryption_version: int = 1
    original_mime_type: str | None = None
    original_size: int | None = None


class UploadSessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    file_name: str
    file_size: int
    mime_type: str
    folder_id: str | None = None
    chunk_size: int
    total_chunks: int
    uploaded_chunks: int = 0
    status: str
    expires_at: datetime
    created_at: datetime | None = None


class UploadProgressOut(UploadSessionOut):
    """Session state plus what a resuming client still has to send."""
    received_chunks: list[int] = []
    missing_chunks: list[int] = []


class ChunkAcceptedOut(BaseModel):
    session_id: str
    chunk_index: int
    uploaded_chunks: int
    total_chunks: int
    already_present: bool = False
