"""Reassembly reader — streams a finalized file back from its blobs."""

from __future__ import annotations

import logging
from typing import AsyncIterator

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from blobrelay.exceptions import CorruptPayloadError
from blobrelay.models.file_record import FileChunk, FileRecord
from blobrelay.services.blob_transfer import BlobTransfer
from blobrelay.services.chunker import BlobPart, iter_parts

logger = logging.getLogger(__name__)


class ReassemblyReader:
    """Fetches a file's blobs sequentially, strictly in chunk_index order."""

    def __init__(self, transfer: BlobTransfer):
        self._transfer = transfer

    async def parts_for(self, db: AsyncSession, record: FileRecord) -> list[BlobPart]:
        """Ordered blob references for a file; validated against its record."""
        if not record.is_chunked:
            return [BlobPart(0, record.node_id, record.blob_id, record.size_bytes)]

        result = await db.execute(
            select(FileChunk)
            .where(FileChunk.file_id == record.id)
            .order_by(FileChunk.chunk_index)
        )
        parts = [
            BlobPart(c.chunk_index, c.node_id, c.blob_id, c.size_bytes)
            for c in result.scalars().all()
        ]
        if len(parts) != record.total_chunks:
            raise CorruptPayloadError(
                expected=record.size_bytes,
                actual=sum(p.size for p in parts),
                detail=f"file {record.id} has {len(parts)} of {record.total_chunks} chunk rows",
            )
        declared = sum(p.size for p in parts)
        if declared != record.size_bytes:
            raise CorruptPayloadError(
                expected=record.size_bytes,
                actual=declared,
                detail=f"chunk sizes of file {record.id} do not add up",
            )
        return parts

    async def stream(self, parts: list[BlobPart]) -> AsyncIterator[bytes]:
        """Yield each part in order. Any failed or short fetch aborts the stream."""
        sent = 0
        async for data in iter_parts(self._transfer, parts):
            sent += len(data)
            yield data
        logger.debug("Streamed %d bytes from %d part(s)", sent, len(parts))
