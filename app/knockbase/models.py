from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from app.knockbase.constants import ActorRole
from app.knockbase.utils import utcnow

logger = logging.getLogger(__name__)

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class RoleType(TypeDecorator):
    """
    Stores ActorRole as its string value.
    Legacy spellings ("admin", "sales_rep") are folded into the current tiers on the way in and out,
    so nothing above the data layer ever sees them.
    """

    impl = String(32)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, ActorRole):
            return value.value
        role = ActorRole.from_legacy(value)
        if role is None:
            raise ValueError(f"Unknown actor role: {value!r}")
        return role.value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        role = ActorRole.from_legacy(value)
        if role is None:
            logger.warning("Unknown stored role %r; treating as rep", value)
            return ActorRole.REP
        return role


class User(Base):
    """An actor: anybody who signs in (owner, manager or rep)."""

    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_manager_id", "manager_id"),
        Index("idx_users_org_unit_id", "org_unit_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(150), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    phone: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    role: Mapped[ActorRole] = mapped_column(RoleType(), nullable=False, default=ActorRole.REP)
    # Supervising manager; only meaningful for reps.
    manager_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    org_unit_id: Mapped[int | None] = mapped_column(ForeignKey("org_units.id", ondelete="SET NULL"), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    @property
    def display_name(self) -> str:
        return self.full_name or self.username or self.email


class AuditEvent(Base):
    """
    Append-only audit trail event.
    Keep this table intentionally generic; module-specific tables can refer to it by id if needed.
    """

    __tablename__ = "audit_events"
    __table_args__ = (
        UniqueConstraint("request_id", "id", name="uq_audit_request_id_id"),
        Index("idx_audit_events_action", "action"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    client_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)

    actor_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    actor_user_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    action: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "lead.reassign"
    entity_type: Mapped[str | None] = mapped_column(String(128), nullable=True)  # e.g. "Lead"
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # small JSON string


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.knockbase.modules.org_units.models import OrgUnit  # noqa: E402,F401
from app.knockbase.modules.territories.models import Territory  # noqa: E402,F401
from app.knockbase.modules.leads.models import Lead  # noqa: E402,F401
