from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.knockbase.models import Base, JSONType
from app.knockbase.utils import utcnow


class Lead(Base):
    __tablename__ = "leads"
    __table_args__ = (
        Index("idx_leads_owner_id", "owner_id"),
        Index("idx_leads_status", "status"),
        Index("idx_leads_knocked_at", "knocked_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Exactly one owning actor; changed only through reassignment.
    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)

    first_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    phone: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(320), nullable=False, default="")
    address: Mapped[str] = mapped_column(Text, nullable=False, default="")

    latitude: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    longitude: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    territory_id: Mapped[int | None] = mapped_column(ForeignKey("territories.id", ondelete="SET NULL"), nullable=True)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="untouched")
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    tags: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    follow_up_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    appointment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    # Set when the door is first knocked (disposition recorded).
    knocked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
