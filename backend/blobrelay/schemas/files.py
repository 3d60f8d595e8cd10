"""File record schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class FileOut(BaseModel):
    """Finalized file metadata. Blob references stay internal."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    size_bytes: int
    mime_type: str
    folder_id: str | None = None
    is_encrypted: bool = False
    encryption_version: int = 1
    original_mime_type: str | None = None
    original_size: int | None = None
    is_chunked: bool = False
    total_chunks: int = 1
    created_at: datetime | None = None
