"""Business logic services — singleton registry."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from blobrelay.config import settings

if TYPE_CHECKING:
    from blobrelay.services.blob_transfer import BlobTransfer
    from blobrelay.services.file_store import FileStore
    from blobrelay.services.node_registry import NodeRegistry
    from blobrelay.services.reassembly import ReassemblyReader
    from blobrelay.services.scheduler import SessionSweeper
    from blobrelay.services.upload_sessions import UploadSessionManager

logger = logging.getLogger(__name__)

_registry: NodeRegistry | None = None
_transfer: BlobTransfer | None = None
_session_manager: UploadSessionManager | None = None
_file_store: FileStore | None = None
_reader: ReassemblyReader | None = None
_sweeper: SessionSweeper | None = None


async def init_services() -> None:
    """Create and wire up all service singletons."""
    global _registry, _transfer, _session_manager, _file_store, _reader, _sweeper

    from blobrelay.services.blob_transfer import BlobTransfer, RetryPolicy
    from blobrelay.services.chunker import SizeLimitChunker
    from blobrelay.services.file_store import FileStore
    from blobrelay.services.node_registry import NodeRegistry
    from blobrelay.services.node_selector import NodeSelector
    from blobrelay.services.quota import AccountQuota
    from blobrelay.services.reassembly import ReassemblyReader
    from blobrelay.services.scheduler import SessionSweeper
    from blobrelay.services.telegram_backend import TelegramBackend
    from blobrelay.services.upload_sessions import UploadSessionManager

    _registry = NodeRegistry(settings.bot_tokens, failure_limit=settings.node_failure_limit)
    selector = NodeSelector(_registry, recovery_seconds=settings.node_recovery_seconds)
    _transfer = BlobTransfer(
        _registry,
        selector,
        TelegramBackend(),
        retry=RetryPolicy.from_settings(),
        call_timeout=settings.backend_timeout_seconds,
    )
    if not settings.storage_chat_id:
        logger.warning(
            "BLOBRELAY_STORAGE_CHAT_ID not set — blobs go to each bot's own chat"
        )

    quota = AccountQuota()
    chunker = SizeLimitChunker(_transfer)
    _file_store = FileStore(chunker, _transfer, quota)
    _reader = ReassemblyReader(_transfer)
    _session_manager = UploadSessionManager(_transfer, quota)

    _sweeper = SessionSweeper(_session_manager)
    _sweeper.start()
    logger.info("Storage services initialized with %d backend node(s)", len(_registry))


async def shutdown_services() -> None:
    """Stop the sweeper."""
    global _sweeper
    if _sweeper:
        await _sweeper.stop()
        _sweeper = None


def get_registry() -> NodeRegistry:
    if _registry is None:
        raise RuntimeError("Services not initialized — call init_services() first")
    return _registry


def get_transfer() -> BlobTransfer:
    if _transfer is None:
        raise RuntimeError("Services not initialized — call init_services() first")
    return _transfer


def get_session_manager() -> UploadSessionManager:
    if _session_manager is None:
        raise RuntimeError("Services not initialized — call init_services() first")
    return _session_manager


def get_file_store() -> FileStore:
    if _file_store is None:
        raise RuntimeError("Services not initialized — call init_services() first")
    return _file_store


def get_reader() -> ReassemblyReader:
    if _reader is None:
        raise RuntimeError("Services not initialized — call init_services() first")
    return _reader
