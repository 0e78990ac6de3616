from __future__ import annotations

from sqlalchemy import Float, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class KeyValueEntry(Base):
    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    # Unix seconds; rows past this point are treated as absent.
    expires_at: Mapped[float] = mapped_column(Float, nullable=False)

    __table_args__ = (Index("idx_kv_entries_expires_at", "expires_at"),)
