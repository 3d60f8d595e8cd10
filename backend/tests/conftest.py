"""Test fixtures — in-memory SQLite, fake blob backend and FastAPI test client."""

from __future__ import annotations

import itertools

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from blobrelay.database import get_db
from blobrelay.exceptions import BackendRequestError
from blobrelay.main import create_app
from blobrelay.models.base import Base
from blobrelay.services import get_file_store, get_reader, get_registry, get_session_manager
from blobrelay.services.blob_transfer import BlobTransfer, RetryPolicy
from blobrelay.services.chunker import SizeLimitChunker
from blobrelay.services.file_store import FileStore
from blobrelay.services.node_registry import BackendNode, NodeRegistry
from blobrelay.services.node_selector import NodeSelector
from blobrelay.services.quota import AccountQuota
from blobrelay.services.reassembly import ReassemblyReader
from blobrelay.services.upload_sessions import UploadSessionManager

KIB = 1024


class FakeBackend:
    """In-memory blob sink. Failures are scripted per call or per node."""

    def __init__(self):
        self.blobs: dict[str, bytes] = {}
        self.uploads: list[tuple[str, str, int]] = []  # (node_id, name, size)
        self.downloads: list[tuple[str, str]] = []
        self.fail_uploads = 0
        self.fail_downloads = 0
        self.failing_nodes: set[str] = set()
        self.error_factory = lambda: BackendRequestError("scripted failure")
        self._ids = itertools.count(1)

    async def upload(self, node: BackendNode, data: bytes, name: str) -> str:
        if node.id in self.failing_nodes:
            raise self.error_factory()
        if self.fail_uploads > 0:
            self.fail_uploads -= 1
            raise self.error_factory()
        blob_id = f"blob-{next(self._ids)}"
        self.blobs[blob_id] = bytes(data)
        self.uploads.append((node.id, name, len(data)))
        return blob_id

    async def download(self, node: BackendNode, blob_id: str) -> bytes:
        self.downloads.append((node.id, blob_id))
        if self.fail_downloads > 0:
            self.fail_downloads -= 1
            raise self.error_factory()
        try:
            return self.blobs[blob_id]
        except KeyError:
            raise BackendRequestError(f"no blob {blob_id}")


class FakeSleep:
    """Records requested delays instead of waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest_asyncio.fixture
async def db_session():
    """Provide an async in-memory SQLite session for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """File-backed database for tests that need two connections at once."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'blobrelay.db'}",
        connect_args={"timeout": 1.0},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry() -> NodeRegistry:
    return NodeRegistry(["token-a", "token-b", "token-c"])


@pytest.fixture
def selector(registry: NodeRegistry, clock: FakeClock) -> NodeSelector:
    return NodeSelector(registry, recovery_seconds=60.0, clock=clock)


@pytest.fixture
def transfer(registry, selector, backend, sleep) -> BlobTransfer:
    return BlobTransfer(registry, selector, backend, retry=RetryPolicy(), sleep=sleep)


@pytest.fixture
def quota() -> AccountQuota:
    return AccountQuota(default_storage_limit=10 * 1024 * 1024 * 1024, default_upload_limit=-1)


@pytest.fixture
def chunker(transfer: BlobTransfer) -> SizeLimitChunker:
    # Scaled-down backend ceiling: 48 KiB single blob, 19 KiB parts
    return SizeLimitChunker(transfer, max_single_size=48 * KIB, part_size=19 * KIB)


@pytest.fixture
def sessions(transfer: BlobTransfer, quota: AccountQuota) -> UploadSessionManager:
    return UploadSessionManager(transfer, quota, chunk_size=10 * KIB)


@pytest.fixture
def file_store(chunker, transfer, quota) -> FileStore:
    return FileStore(chunker, transfer, quota, max_direct_size=100 * KIB)


@pytest.fixture
def reader(transfer: BlobTransfer) -> ReassemblyReader:
    return ReassemblyReader(transfer)


@pytest.fixture
def read_file(reader: ReassemblyReader):
    """Read a stored file back in full through the reassembly stream."""

    async def _read(db: AsyncSession, record) -> bytes:
        parts = await reader.parts_for(db, record)
        return b"".join([chunk async for chunk in reader.stream(parts)])

    return _read


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, registry, sessions, file_store, reader):
    """Provide an async test client with overridden DB and service dependencies."""
    app = create_app()

    async def _override_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_session_manager] = lambda: sessions
    app.dependency_overrides[get_file_store] = lambda: file_store
    app.dependency_overrides[get_reader] = lambda: reader

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
