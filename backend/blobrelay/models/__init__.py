"""SQLAlchemy ORM models for blobrelay."""

from blobrelay.models.base import Base
from blobrelay.models.file_record import FileChunk, FileRecord
from blobrelay.models.upload_session import UploadChunk, UploadSession
from blobrelay.models.user_quota import UserQuota

__all__ = [
    "Base",
    "FileRecord",
    "FileChunk",
    "UploadSession",
    "UploadChunk",
    "UserQuota",
]
