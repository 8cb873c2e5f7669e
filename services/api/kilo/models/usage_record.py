"""Per-user quota ledger."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from kilo.database.base import Base, created_at_column, id_column, updated_at_column


class UsageRecord(Base):
    """
    Durable usage counters for one user.

    Daily query count resets at midnight UTC; `query_reset_at` always holds
    the next reset instant and is read together with the counter.
    Mutated only through the atomic ledger functions in
    `kilo.services.utils.usage`.
    """

    __tablename__ = "usage_tracking"

    id: Mapped[str] = id_column()
    user_id: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )

    daily_query_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_query_count: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    file_upload_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    storage_used_bytes: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    query_reset_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()
