"""Tests for per-owner storage quota accounting."""

import pytest

from blobrelay.exceptions import QuotaExceededError, UploadLimitReachedError
from blobrelay.models.user_quota import UserQuota
from blobrelay.services.quota import AccountQuota


async def _row(db, owner_id: str) -> UserQuota:
    row = await db.get(UserQuota, owner_id)
    await db.refresh(row)
    return row


@pytest.mark.asyncio
async def test_defaults_created_on_first_use(db_session):
    quota = AccountQuota(default_storage_limit=1000, default_upload_limit=-1)
    await quota.check(db_session, "alice", 0)

    row = await _row(db_session, "alice")
    assert row.storage_limit == 1000
    assert row.storage_used == 0
    assert row.upload_limit == -1


@pytest.mark.asyncio
async def test_record_upload_accumulates(db_session):
    quota = AccountQuota(default_storage_limit=1000)
    await quota.record_upload(db_session, "alice", 300)
    await quota.record_upload(db_session, "alice", 200)
    await db_session.commit()

    row = await _row(db_session, "alice")
    assert row.storage_used == 500
    assert row.uploads_count == 2


@pytest.mark.asyncio
async def test_check_rejects_over_limit(db_session):
    quota = AccountQuota(default_storage_limit=1000)
    await quota.record_upload(db_session, "alice", 900)

    await quota.check(db_session, "alice", 100)
    with pytest.raises(QuotaExceededError) as exc_info:
        await quota.check(db_session, "alice", 101)
    assert exc_info.value.required_bytes == 101
    assert exc_info.value.extra()["storage_used"] == 900


@pytest.mark.asyncio
async def test_upload_limit(db_session):
    quota = AccountQuota(default_storage_limit=1000, default_upload_limit=2)
    await quota.record_upload(db_session, "alice", 1)
    await quota.record_upload(db_session, "alice", 1)
    await db_session.commit()

    with pytest.raises(UploadLimitReachedError):
        await quota.check(db_session, "alice", 1)
