"""Resumable upload sessions — client-driven chunking across many requests.

A session moves pending -> completed (finalized into a FileRecord) or
pending -> gone (cancelled, or reaped once found expired). Chunk rows are
the source of truth for progress; ``uploaded_chunks`` on the session row is
a cache recomputed from them after every accepted chunk.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from blobrelay.config import settings
from blobrelay.exceptions import (
    ChunksMissingError,
    InvalidChunkIndexError,
    InvalidUploadError,
    SessionConflictError,
    SessionExpiredError,
    SessionForbiddenError,
    SessionNotFoundError,
)
from blobrelay.models.file_record import FileChunk, FileRecord
from blobrelay.models.upload_session import (
    SESSION_COMPLETED,
    SESSION_PENDING,
    UploadChunk,
    UploadSession,
)
from blobrelay.services.blob_transfer import BlobRef, BlobTransfer, log_orphaned_blobs
from blobrelay.services.quota import QuotaPolicy

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what SQLite hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class ChunkProgress:
    session_id: str
    chunk_index: int
    uploaded_chunks: int
    total_chunks: int
    already_present: bool = False


@dataclass
class SessionProgress:
    session: UploadSession
    received: list[int] = field(default_factory=list)

    @property
    def missing(self) -> list[int]:
        have = set(self.received)
        return [i for i in range(self.session.total_chunks) if i not in have]


class UploadSessionManager:
    """Persists multi-request uploads and finalizes them into file records."""

    def __init__(
        self,
        transfer: BlobTransfer,
        quota: QuotaPolicy,
        chunk_size: int | None = None,
        ttl: timedelta | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._transfer = transfer
        self._quota = quota
        self.chunk_size = chunk_size or settings.upload_chunk_bytes
        self.ttl = ttl or timedelta(hours=settings.upload_session_ttl_hours)
        self._clock = clock

    # --- lifecycle -----------------------------------------------------------

    async def init_session(
        self,
        db: AsyncSession,
        owner_id: str,
        file_name: str,
        file_size: int,
        mime_type: str,
        folder_id: str | None = None,
        is_encrypted: bool = False,
        encryption_version: int = 1,
        original_mime_type: str | None = None,
        original_size: int | None = None,
    ) -> UploadSession:
        if not file_name:
            raise InvalidUploadError("file_name is required")
        if file_size <= 0:
            raise InvalidUploadError("file_size must be positive")

        await self._quota.check(db, owner_id, original_size or file_size)

        total_chunks = math.ceil(file_size / self.chunk_size)
        session = UploadSession(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            folder_id=folder_id,
            file_name=file_name,
            file_size=file_size,
            mime_type=mime_type or "application/octet-stream",
            is_encrypted=is_encrypted,
            encryption_version=encryption_version,
            original_mime_type=original_mime_type or mime_type,
            original_size=original_size or file_size,
            chunk_size=self.chunk_size,
            total_chunks=total_chunks,
            uploaded_chunks=0,
            status=SESSION_PENDING,
            expires_at=self._clock() + self.ttl,
        )
        db.add(session)
        await db.commit()
        await db.refresh(session)

        logger.info(
            "Upload session %s created for %s: %s (%d bytes, %d chunks)",
            session.id, owner_id, file_name, file_size, total_chunks,
        )
        return session

    async def accept_chunk(
        self,
        db: AsyncSession,
        session_id: str,
        owner_id: str,
        chunk_index: int,
        data: bytes,
    ) -> ChunkProgress:
        session = await self._load_pending(db, session_id, owner_id)
        total_chunks = session.total_chunks
        file_name = session.file_name

        if not 0 <= chunk_index < total_chunks:
            raise InvalidChunkIndexError(chunk_index, total_chunks)

        existing = await db.scalar(
            select(UploadChunk.id).where(
                UploadChunk.session_id == session_id,
                UploadChunk.chunk_index == chunk_index,
            )
        )
        if existing is not None:
            logger.info("Session %s: chunk %d already present", session_id, chunk_index)
            return ChunkProgress(
                session_id=session_id,
                chunk_index=chunk_index,
                uploaded_chunks=await self._count_chunks(db, session_id),
                total_chunks=total_chunks,
                already_present=True,
            )

        if not data:
            raise InvalidUploadError("Chunk body is empty")
        if len(data) > session.chunk_size:
            raise InvalidUploadError(
                f"Chunk is {len(data)} bytes, larger than the session chunk size {session.chunk_size}"
            )

        # End the read transaction before the slow backend call
        await db.commit()

        ref = await self._transfer.upload(data, f"{file_name}.chunk{chunk_index}")

        status = await db.scalar(
            select(UploadSession.status).where(UploadSession.id == session_id)
        )
        if status is None:
            log_orphaned_blobs([ref], f"session {session_id} vanished during chunk upload")
            raise SessionNotFoundError(session_id)
        if status != SESSION_PENDING:
            log_orphaned_blobs([ref], f"session {session_id} became {status} during chunk upload")
            raise SessionConflictError(session_id, status)

        db.add(
            UploadChunk(
                session_id=session_id,
                chunk_index=chunk_index,
                node_id=ref.node_id,
                blob_id=ref.blob_id,
                size_bytes=len(data),
            )
        )
        try:
            await db.flush()
        except IntegrityError:
            # A concurrent resend of the same index won the insert
            await db.rollback()
            log_orphaned_blobs([ref], f"duplicate chunk {chunk_index} of session {session_id}")
            return ChunkProgress(
                session_id=session_id,
                chunk_index=chunk_index,
                uploaded_chunks=await self._count_chunks(db, session_id),
                total_chunks=total_chunks,
                already_present=True,
            )

        uploaded = await self._count_chunks(db, session_id)
        session.uploaded_chunks = uploaded
        await db.commit()

        logger.info(
            "Session %s: chunk %d stored on %s (%d/%d)",
            session_id, chunk_index, ref.node_id, uploaded, total_chunks,
        )
        return ChunkProgress(
            session_id=session_id,
            chunk_index=chunk_index,
            uploaded_chunks=uploaded,
            total_chunks=total_chunks,
        )

    async def complete_session(
        self, db: AsyncSession, session_id: str, owner_id: str
    ) -> FileRecord:
        session = await self._load_pending(db, session_id, owner_id)

        result = await db.execute(
            select(UploadChunk)
            .where(UploadChunk.session_id == session_id)
            .order_by(UploadChunk.chunk_index)
        )
        chunks = list(result.scalars().all())

        if len(chunks) != session.total_chunks:
            logger.info(
                "Session %s incomplete: %d/%d chunks",
                session_id, len(chunks), session.total_chunks,
            )
            raise ChunksMissingError(expected=session.total_chunks, actual=len(chunks))

        stored_size = sum(c.size_bytes for c in chunks)
        if stored_size != session.file_size:
            logger.warning(
                "Session %s declared %d bytes but chunks hold %d",
                session_id, session.file_size, stored_size,
            )

        first = chunks[0]
        record = FileRecord(
            id=str(uuid.uuid4()),
            owner_id=session.owner_id,
            folder_id=session.folder_id,
            name=session.file_name,
            size_bytes=stored_size,
            mime_type=session.mime_type,
            is_encrypted=session.is_encrypted,
            encryption_version=session.encryption_version,
            original_mime_type=session.original_mime_type,
            original_size=session.original_size,
            node_id=first.node_id,
            blob_id=first.blob_id,
            is_chunked=session.total_chunks > 1,
            total_chunks=session.total_chunks,
        )
        db.add(record)
        db.add_all(
            FileChunk(
                file_id=record.id,
                chunk_index=c.chunk_index,
                node_id=c.node_id,
                blob_id=c.blob_id,
                size_bytes=c.size_bytes,
            )
            for c in chunks
        )
        await self._quota.record_upload(db, session.owner_id, record.accounted_size)

        session.status = SESSION_COMPLETED
        await self._delete_rows(db, session_id)
        await db.commit()
        await db.refresh(record)

        logger.info(
            "Session %s finalized into file %s (%s, %d chunks)",
            session_id, record.id, record.name, record.total_chunks,
        )
        return record

    async def cancel_session(self, db: AsyncSession, session_id: str, owner_id: str) -> None:
        await self._load_owned(db, session_id, owner_id)
        await self._discard(db, session_id, "cancelled")
        await db.commit()
        logger.info("Session %s cancelled by %s", session_id, owner_id)

    # --- queries -------------------------------------------------------------

    async def get_session(
        self, db: AsyncSession, session_id: str, owner_id: str
    ) -> SessionProgress:
        session = await self._load_pending(db, session_id, owner_id)
        result = await db.execute(
            select(UploadChunk.chunk_index)
            .where(UploadChunk.session_id == session_id)
            .order_by(UploadChunk.chunk_index)
        )
        return SessionProgress(session=session, received=list(result.scalars().all()))

    async def list_sessions(self, db: AsyncSession, owner_id: str) -> list[UploadSession]:
        """Owner's pending sessions; expired ones are reaped on the way."""
        result = await db.execute(
            select(UploadSession)
            .where(UploadSession.owner_id == owner_id, UploadSession.status == SESSION_PENDING)
            .order_by(UploadSession.created_at)
        )
        now = self._clock()
        live: list[UploadSession] = []
        reaped = 0
        for session in result.scalars().all():
            if now > session.expires_at:
                await self._discard(db, session.id, "expired")
                reaped += 1
            else:
                live.append(session)
        if reaped:
            await db.commit()
            logger.info("Reaped %d expired session(s) of %s", reaped, owner_id)
        return live

    async def purge_expired(self, db: AsyncSession) -> int:
        """Delete every expired session. Used by the out-of-band sweeper."""
        result = await db.execute(
            select(UploadSession.id).where(UploadSession.expires_at < self._clock())
        )
        expired = list(result.scalars().all())
        for session_id in expired:
            await self._discard(db, session_id, "expired")
        if expired:
            await db.commit()
        return len(expired)

    # --- internals -----------------------------------------------------------

    async def _load_owned(
        self, db: AsyncSession, session_id: str, owner_id: str
    ) -> UploadSession:
        session = await db.get(UploadSession, session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if session.owner_id != owner_id:
            logger.warning("Owner %s denied access to session %s", owner_id, session_id)
            raise SessionForbiddenError(session_id)
        return session

    async def _load_pending(
        self, db: AsyncSession, session_id: str, owner_id: str
    ) -> UploadSession:
        session = await self._load_owned(db, session_id, owner_id)
        if session.status != SESSION_PENDING:
            raise SessionConflictError(session_id, session.status)
        if self._clock() > session.expires_at:
            logger.info("Session %s expired at %s, reaping", session_id, session.expires_at)
            await self._discard(db, session_id, "expired")
            await db.commit()
            raise SessionExpiredError(session_id)
        return session

    async def _count_chunks(self, db: AsyncSession, session_id: str) -> int:
        count = await db.scalar(
            select(func.count(func.distinct(UploadChunk.chunk_index))).where(
                UploadChunk.session_id == session_id
            )
        )
        return count or 0

    async def _discard(self, db: AsyncSession, session_id: str, reason: str) -> None:
        result = await db.execute(
            select(UploadChunk.node_id, UploadChunk.blob_id).where(
                UploadChunk.session_id == session_id
            )
        )
        log_orphaned_blobs(
            (BlobRef(node_id=n, blob_id=b) for n, b in result.all()),
            f"session {session_id} {reason}",
        )
        await self._delete_rows(db, session_id)

    @staticmethod
    async def _delete_rows(db: AsyncSession, session_id: str) -> None:
        await db.execute(delete(UploadChunk).where(UploadChunk.session_id == session_id))
        await db.execute(delete(UploadSession).where(UploadSession.id == session_id))
