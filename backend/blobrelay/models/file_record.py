"""Finalized file records and the ordered blob references behind them."""

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from blobrelay.models.base import Base


class FileRecord(Base):
    __tablename__ = "files"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    folder_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(200), nullable=False)
    is_encrypted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    encryption_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    original_mime_type: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    original_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    # Direct blob reference (chunk 0); the only reference when not chunked
    node_id: Mapped[str] = mapped_column(String, nullable=False)
    blob_id: Mapped[str] = mapped_column(Text, nullable=False)
    is_chunked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    total_chunks: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    @property
    def accounted_size(self) -> int:
        """Bytes charged against the owner's quota."""
        return self.original_size or self.size_bytes

    def __repr__(self) -> str:
        return f"<FileRecord(id={self.id}, name='{self.name}', chunks={self.total_chunks})>"


class FileChunk(Base):
    __tablename__ = "file_chunks"
    __table_args__ = (
        UniqueConstraint("file_id", "chunk_index", name="uq_file_chunk_index"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_id: Mapped[str] = mapped_column(
        String, ForeignKey("files.id", ondelete="CASCADE"), nullable=False, index=True
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    node_id: Mapped[str] = mapped_column(String, nullable=False)
    blob_id: Mapped[str] = mapped_column(Text, nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<FileChunk(file={self.file_id}, index={self.chunk_index})>"
