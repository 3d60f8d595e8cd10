"""Direct (single-request) uploads and file record lookups."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from blobrelay.config import settings
from blobrelay.exceptions import (
    BackendUnavailableError,
    FileRecordNotFoundError,
    PayloadTooLargeError,
)
from blobrelay.models.file_record import FileChunk, FileRecord
from blobrelay.services.blob_transfer import BlobTransfer, log_orphaned_blobs
from blobrelay.services.chunker import SizeLimitChunker
from blobrelay.services.quota import QuotaPolicy

logger = logging.getLogger(__name__)


class FileStore:
    def __init__(
        self,
        chunker: SizeLimitChunker,
        transfer: BlobTransfer,
        quota: QuotaPolicy,
        max_direct_size: int | None = None,
    ):
        self._chunker = chunker
        self._transfer = transfer
        self._quota = quota
        self.max_direct_size = (
            max_direct_size if max_direct_size is not None else settings.direct_upload_max_bytes
        )

    async def store_direct(
        self,
        db: AsyncSession,
        owner_id: str,
        data: bytes,
        name: str,
        mime_type: str = "application/octet-stream",
        folder_id: str | None = None,
        is_encrypted: bool = False,
        encryption_version: int = 1,
        original_mime_type: str | None = None,
        original_size: int | None = None,
    ) -> FileRecord:
        """Store a whole payload received in one request and record it.

        Payloads above the backend ceiling are split transparently by the
        chunker. Anything above ``max_direct_size`` is refused so the client
        switches to a resumable session instead.
        """
        size = len(data)
        if self.max_direct_size and size > self.max_direct_size:
            raise PayloadTooLargeError(size, self.max_direct_size)

        await self._quota.check(db, owner_id, original_size or size)
        if not self._transfer.is_available():
            raise BackendUnavailableError()
        # A new quota row holds the SQLite write lock until commit
        await db.commit()

        stored = await self._chunker.store(data, name)
        first = stored.parts[0]

        record = FileRecord(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            folder_id=folder_id,
            name=name,
            size_bytes=size,
            mime_type=mime_type,
            is_encrypted=is_encrypted,
            encryption_version=encryption_version,
            original_mime_type=original_mime_type,
            original_size=original_size,
            node_id=first.node_id,
            blob_id=first.blob_id,
            is_chunked=stored.is_chunked,
            total_chunks=len(stored.parts),
        )
        db.add(record)
        if stored.is_chunked:
            db.add_all(
                FileChunk(
                    file_id=record.id,
                    chunk_index=p.chunk_index,
                    node_id=p.node_id,
                    blob_id=p.blob_id,
                    size_bytes=p.size,
                )
                for p in stored.parts
            )

        try:
            await self._quota.record_upload(db, owner_id, record.accounted_size)
            await db.commit()
        except Exception:
            await db.rollback()
            log_orphaned_blobs(
                (p.ref for p in stored.parts), f"record write for {name} failed"
            )
            raise
        await db.refresh(record)

        logger.info(
            "Stored %s for %s: %d bytes in %d blob(s)",
            name, owner_id, size, record.total_chunks,
        )
        return record

    async def get_file(self, db: AsyncSession, file_id: str, owner_id: str) -> FileRecord:
        record = await db.get(FileRecord, file_id)
        # Another owner's file is reported as missing
        if record is None or record.owner_id != owner_id:
            raise FileRecordNotFoundError(file_id)
        return record
