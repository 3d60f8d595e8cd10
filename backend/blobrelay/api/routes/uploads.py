"""Resumable upload routes — init, chunk, complete, cancel, progress."""

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from blobrelay.api.deps import get_owner_id
from blobrelay.database import get_db
from blobrelay.schemas.files import FileOut
from blobrelay.schemas.uploads import (
    ChunkAcceptedOut,
    UploadInitRequest,
    UploadProgressOut,
    UploadSessionOut,
)
from blobrelay.services import get_session_manager
from blobrelay.services.upload_sessions import UploadSessionManager

router = APIRouter()


@router.post("", response_model=UploadSessionOut, status_code=201)
async def init_upload(
    body: UploadInitRequest,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
    sessions: UploadSessionManager = Depends(get_session_manager),
):
    """Open a session; the response tells the client how to chunk."""
    return await sessions.init_session(db, owner_id, **body.model_dump())


@router.get("", response_model=list[UploadSessionOut])
async def list_uploads(
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
    sessions: UploadSessionManager = Depends(get_session_manager),
):
    return await sessions.list_sessions(db, owner_id)


@router.get("/{session_id}", response_model=UploadProgressOut)
async def get_upload(
    session_id: str,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
    sessions: UploadSessionManager = Depends(get_session_manager),
):
    """Session progress, including which chunks a resuming client must send."""
    progress = await sessions.get_session(db, session_id, owner_id)
    out = UploadSessionOut.model_validate(progress.session)
    return UploadProgressOut(
        **out.model_dump(),
        received_chunks=progress.received,
        missing_chunks=progress.missing,
    )


@router.put("/{session_id}/chunks/{chunk_index}", response_model=ChunkAcceptedOut)
async def upload_chunk(
    session_id: str,
    chunk_index: int,
    request: Request,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
    sessions: UploadSessionManager = Depends(get_session_manager),
):
    """Store one chunk. The raw request body is the chunk payload."""
    data = await request.body()
    progress = await sessions.accept_chunk(db, session_id, owner_id, chunk_index, data)
    return ChunkAcceptedOut(
        session_id=progress.session_id,
        chunk_index=progress.chunk_index,
        uploaded_chunks=progress.uploaded_chunks,
        total_chunks=progress.total_chunks,
        already_present=progress.already_present,
    )


@router.post("/{session_id}/complete", response_model=FileOut, status_code=201)
async def complete_upload(
    session_id: str,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
    sessions: UploadSessionManager = Depends(get_session_manager),
):
    return await sessions.complete_session(db, session_id, owner_id)


@router.delete("/{session_id}", status_code=204)
async def cancel_upload(
    session_id: str,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
    sessions: UploadSessionManager = Depends(get_session_manager),
):
    await sessions.cancel_session(db, session_id, owner_id)
    return Response(status_code=204)
