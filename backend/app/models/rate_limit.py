"""
User API Backend — Rate Limit Counter Model
============================================

What:  ORM model for the `rate_limits` table: one row per limiter key.
How:   Rows are fully overwritten on every check (session.merge); nothing
       deletes them on the request path. `expires_at` marks rows the
       application treats as absent and that `purge_expired()` may remove.

Timestamps are integer epoch seconds, matching the limiter's resolution.
"""

from typing import List, Optional

from sqlalchemy import JSON, BigInteger, Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class RateLimitCounter(Base):
    __tablename__ = "rate_limits"

    # Format: <prefix>:<user|ip>:<identifier>[:<route segments>]
    key: Mapped[str] = mapped_column(String(512), primary_key=True)

    # Request timestamps observed inside the retention window
    requests: Mapped[List[int]] = mapped_column(JSON, nullable=False, default=list)

    blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    blocked_until: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    expires_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index("idx_rate_limits_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<RateLimitCounter(key={self.key!r}, blocked={self.blocked})>"
