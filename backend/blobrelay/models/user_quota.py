"""Per-owner storage accounting consumed by the upload paths."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from blobrelay.models.base import Base


class UserQuota(Base):
    __tablename__ = "user_quotas"

    owner_id: Mapped[str] = mapped_column(String, primary_key=True)
    storage_limit: Mapped[int] = mapped_column(BigInteger, nullable=False)
    storage_used: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    upload_limit: Mapped[int] = mapped_column(Integer, default=-1, nullable=False)
    uploads_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<UserQuota(owner={self.owner_id}, used={self.storage_used}/{self.storage_limit})>"
