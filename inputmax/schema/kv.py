from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from inputmax.core.database import Base


class KvEntry(Base):
  __tablename__ = "kv_entries"

  key: Mapped[str] = mapped_column(String, primary_key=True)
  value: Mapped[str] = mapped_column(Text, nullable=False)
  expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
