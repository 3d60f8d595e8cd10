"""Storage quota hooks consumed by the upload paths."""

from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from blobrelay.config import settings
from blobrelay.exceptions import QuotaExceededError, UploadLimitReachedError
from blobrelay.models.user_quota import UserQuota

logger = logging.getLogger(__name__)


class QuotaPolicy(Protocol):
    async def check(self, db: AsyncSession, owner_id: str, required_bytes: int) -> None:
        """Raise a capacity error if the owner cannot store required_bytes more."""
        ...

    async def record_upload(self, db: AsyncSession, owner_id: str, size_bytes: int) -> None:
        """Account a finished upload. Runs inside the caller's transaction."""
        ...


class AccountQuota:
    """Quota backed by the user_quotas table; missing rows get the defaults."""

    def __init__(
        self,
        default_storage_limit: int | None = None,
        default_upload_limit: int | None = None,
    ):
        self._storage_limit = default_storage_limit or settings.default_storage_limit_bytes
        self._upload_limit = (
            default_upload_limit if default_upload_limit is not None else settings.default_upload_limit
        )

    async def _get_or_create(self, db: AsyncSession, owner_id: str) -> UserQuota:
        result = await db.execute(
            select(UserQuota)
            .where(UserQuota.owner_id == owner_id)
            .execution_options(populate_existing=True)
        )
        quota = result.scalar_one_or_none()
        if quota is None:
            quota = UserQuota(
                owner_id=owner_id,
                storage_limit=self._storage_limit,
                storage_used=0,
                upload_limit=self._upload_limit,
                uploads_count=0,
            )
            db.add(quota)
            await db.flush()
        return quota

    async def check(self, db: AsyncSession, owner_id: str, required_bytes: int) -> None:
        quota = await self._get_or_create(db, owner_id)
        if quota.upload_limit != -1 and quota.uploads_count >= quota.upload_limit:
            raise UploadLimitReachedError(quota.uploads_count, quota.upload_limit)
        if quota.storage_used + required_bytes > quota.storage_limit:
            logger.info(
                "Quota check failed for %s: used=%d limit=%d required=%d",
                owner_id, quota.storage_used, quota.storage_limit, required_bytes,
            )
            raise QuotaExceededError(quota.storage_limit, quota.storage_used, required_bytes)

    async def record_upload(self, db: AsyncSession, owner_id: str, size_bytes: int) -> None:
        await self._get_or_create(db, owner_id)
        # Increment in SQL so concurrent completions do not overwrite each other
        await db.execute(
            update(UserQuota)
            .where(UserQuota.owner_id == owner_id)
            .values(
                storage_used=UserQuota.storage_used + size_bytes,
                uploads_count=UserQuota.uploads_count + 1,
            )
        )
