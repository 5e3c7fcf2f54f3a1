"""Option model: named JSON values (plugin settings blob)."""

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from smart_cart_recovery.models.base import Base, JSONType


class Option(Base):
    """A single named option, e.g. ``scrm_settings``."""

    __tablename__ = "scrm_options"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(
        String(191),
        nullable=False,
        unique=True,
    )
    value: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Option {self.name}>"
