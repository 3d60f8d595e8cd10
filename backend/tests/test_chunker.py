"""Tests for the size-limit chunker (scaled down to KiB in fixtures)."""

import os

import pytest

from blobrelay.exceptions import BackendRequestError, CorruptPayloadError, TransportError
from blobrelay.services.chunker import BlobPart, iter_parts, part_name

KIB = 1024


class TestStore:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("size", [0, 1, 48 * KIB - 1, 48 * KIB])
    async def test_single_blob_up_to_ceiling(self, chunker, backend, size):
        data = os.urandom(size)
        stored = await chunker.store(data, "small.bin")

        assert stored.is_chunked is False
        assert len(stored.parts) == 1
        assert len(backend.uploads) == 1
        assert await chunker.reassemble(stored.parts) == data

    @pytest.mark.asyncio
    async def test_splits_above_ceiling(self, chunker, backend):
        data = os.urandom(60 * KIB)
        stored = await chunker.store(data, "big.bin")

        assert stored.is_chunked is True
        assert [p.chunk_index for p in stored.parts] == [0, 1, 2, 3]
        assert [p.size for p in stored.parts] == [19 * KIB, 19 * KIB, 19 * KIB, 3 * KIB]
        assert [name for _, name, _ in backend.uploads] == [part_name("big.bin", i) for i in range(4)]
        assert stored.total_size == len(data)
        assert await chunker.reassemble(stored.parts) == data

    @pytest.mark.asyncio
    async def test_one_byte_over_ceiling(self, chunker):
        data = os.urandom(48 * KIB + 1)
        stored = await chunker.store(data, "edge.bin")
        assert len(stored.parts) == chunker.part_count(len(data)) == 3
        assert await chunker.reassemble(stored.parts) == data

    @pytest.mark.asyncio
    async def test_failed_part_logs_orphans(self, chunker, backend, caplog):
        original = backend.upload

        async def flaky(node, data, name):
            if name.endswith(".part0002"):
                raise BackendRequestError("down")
            return await original(node, data, name)

        backend.upload = flaky

        with pytest.raises(TransportError):
            await chunker.store(os.urandom(60 * KIB), "big.bin")

        assert "Orphaned 2 blob(s)" in caplog.text


class TestReassemble:
    @pytest.mark.asyncio
    async def test_parts_read_in_index_order(self, chunker):
        data = os.urandom(60 * KIB)
        stored = await chunker.store(data, "big.bin")
        shuffled = list(reversed(stored.parts))
        assert await chunker.reassemble(shuffled) == data

    @pytest.mark.asyncio
    async def test_short_part_is_corrupt(self, chunker, backend):
        stored = await chunker.store(os.urandom(60 * KIB), "big.bin")
        backend.blobs[stored.parts[1].blob_id] = b"truncated"

        with pytest.raises(CorruptPayloadError):
            await chunker.reassemble(stored.parts)

    @pytest.mark.asyncio
    async def test_gap_in_indices_is_corrupt(self, transfer, chunker):
        stored = await chunker.store(os.urandom(60 * KIB), "big.bin")
        gapped = [p for p in stored.parts if p.chunk_index != 2]

        with pytest.raises(CorruptPayloadError):
            async for _ in iter_parts(transfer, gapped):
                pass

    def test_part_ref(self):
        part = BlobPart(chunk_index=0, node_id="bot_1", blob_id="b", size=3)
        assert part.ref.node_id == "bot_1"
        assert part.ref.blob_id == "b"
