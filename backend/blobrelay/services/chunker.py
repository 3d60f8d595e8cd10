"""Size-limit chunker — hides the backend's per-request size ceiling."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import AsyncIterator, Sequence

from blobrelay.config import settings
from blobrelay.exceptions import CorruptPayloadError
from blobrelay.services.blob_transfer import BlobRef, BlobTransfer, log_orphaned_blobs

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlobPart:
    chunk_index: int
    node_id: str
    blob_id: str
    size: int

    @property
    def ref(self) -> BlobRef:
        return BlobRef(node_id=self.node_id, blob_id=self.blob_id)


@dataclass(frozen=True)
class StoredPayload:
    parts: list[BlobPart]
    is_chunked: bool

    @property
    def total_size(self) -> int:
        return sum(p.size for p in self.parts)


def part_name(name: str, index: int) -> str:
    return f"{name}.part{index:04d}"


async def iter_parts(transfer: BlobTransfer, parts: Sequence[BlobPart]) -> AsyncIterator[bytes]:
    """Download parts one by one in index order, checking each declared size."""
    ordered = sorted(parts, key=lambda p: p.chunk_index)
    for expected_index, part in enumerate(ordered):
        if part.chunk_index != expected_index:
            raise CorruptPayloadError(
                expected=sum(p.size for p in ordered),
                actual=0,
                detail=f"part {expected_index} is missing",
            )
        data = await transfer.download(part.node_id, part.blob_id)
        if len(data) != part.size:
            raise CorruptPayloadError(
                expected=part.size,
                actual=len(data),
                detail=f"part {part.chunk_index} from {part.node_id}",
            )
        yield data


class SizeLimitChunker:
    """Stores one logical payload as one blob, or as ordered parts when too big."""

    def __init__(
        self,
        transfer: BlobTransfer,
        max_single_size: int | None = None,
        part_size: int | None = None,
    ):
        self._transfer = transfer
        self.max_single_size = max_single_size or settings.max_single_blob_bytes
        self.part_size = part_size or settings.blob_part_bytes

    def part_count(self, size: int) -> int:
        if size <= self.max_single_size:
            return 1
        return math.ceil(size / self.part_size)

    async def store(self, data: bytes, name: str) -> StoredPayload:
        size = len(data)
        if size <= self.max_single_size:
            ref = await self._transfer.upload(data, name)
            return StoredPayload(
                parts=[BlobPart(0, ref.node_id, ref.blob_id, size)],
                is_chunked=False,
            )

        total = self.part_count(size)
        logger.info("Splitting %s (%d bytes) into %d parts", name, size, total)

        parts: list[BlobPart] = []
        view = memoryview(data)
        for index in range(total):
            piece = bytes(view[index * self.part_size:(index + 1) * self.part_size])
            try:
                ref = await self._transfer.upload(piece, part_name(name, index))
            except Exception:
                # Parts already stored stay behind without a referencing record
                log_orphaned_blobs(
                    (p.ref for p in parts),
                    f"multi-part store of {name} failed at part {index}/{total}",
                )
                raise
            parts.append(BlobPart(index, ref.node_id, ref.blob_id, len(piece)))

        return StoredPayload(parts=parts, is_chunked=True)

    async def reassemble(self, parts: Sequence[BlobPart]) -> bytes:
        expected = sum(p.size for p in parts)
        buffers = [chunk async for chunk in iter_parts(self._transfer, parts)]
        data = b"".join(buffers)
        if len(data) != expected:
            raise CorruptPayloadError(expected=expected, actual=len(data))
        return data
