"""File API routes — direct upload, metadata and reassembled download."""

from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from blobrelay.api.deps import get_owner_id
from blobrelay.database import get_db
from blobrelay.schemas.files import FileOut
from blobrelay.services import get_file_store, get_reader
from blobrelay.services.file_store import FileStore
from blobrelay.services.reassembly import ReassemblyReader

router = APIRouter()


@router.post("/upload", response_model=FileOut, status_code=201)
async def upload_file(
    file: UploadFile = File(...),
    folder_id: str | None = Form(None),
    is_encrypted: bool = Form(False),
    encryption_version: int = Form(1),
    original_mime_type: str | None = Form(None),
    original_size: int | None = Form(None),
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
    store: FileStore = Depends(get_file_store),
):
    """Upload a whole file in one request. Large files use /uploads instead."""
    data = await file.read()
    return await store.store_direct(
        db,
        owner_id,
        data,
        name=file.filename or "upload",
        mime_type=file.content_type or "application/octet-stream",
        folder_id=folder_id,
        is_encrypted=is_encrypted,
        encryption_version=encryption_version,
        original_mime_type=original_mime_type,
        original_size=original_size,
    )


@router.get("/{file_id}", response_model=FileOut)
async def get_file(
    file_id: str,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
    store: FileStore = Depends(get_file_store),
):
    return await store.get_file(db, file_id, owner_id)


@router.get("/{file_id}/download")
async def download_file(
    file_id: str,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
    store: FileStore = Depends(get_file_store),
    reader: ReassemblyReader = Depends(get_reader),
):
    """Stream the file back, blob by blob, in chunk order."""
    record = await store.get_file(db, file_id, owner_id)
    # Resolve and validate references before the response starts
    parts = await reader.parts_for(db, record)
    return StreamingResponse(
        reader.stream(parts),
        media_type=record.mime_type,
        headers={
            "Content-Length": str(record.size_bytes),
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(record.name)}",
        },
    )
