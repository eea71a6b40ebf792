from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..db.database import Base


class RelayValue(Base):
    """跨页面交接用的键值对，对应 relay_values 表。value 为 JSON 文本，None 表示已清空。"""

    __tablename__ = "relay_values"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str | None] = mapped_column(Text, nullable=True)
    update_time: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "value": self.value,
            "update_time": self.update_time.isoformat() if self.update_time else None,
        }
