"""Organization membership profiles.

Profiles are owned by the CRM's account service; this table is the read model
used for role lookup and for counting seat-consuming brokers.
"""
from __future__ import annotations

import datetime as dt
import enum
import uuid

from sqlalchemy import DateTime, Enum, Index, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base_class import Base


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def generate_uuid() -> str:
    return str(uuid.uuid4())


class ProfileRole(str, enum.Enum):
    """Organization roles."""
    OWNER = "owner"  # Account owner - may manage billing
    MANAGER = "manager"  # May manage billing and team
    BROKER = "broker"  # Consumes a seat while active
    ASSISTANT = "assistant"  # Back-office access, no seat


class ProfileStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


# Roles allowed to read and change the seat plan
BILLING_MANAGER_ROLES = frozenset({ProfileRole.OWNER, ProfileRole.MANAGER})

# Roles that occupy a broker seat while active
SEAT_CONSUMING_ROLES = frozenset({ProfileRole.BROKER})


class Profile(Base):
    __table_args__ = (
        Index("ix_profile_org_role_status", "organization_id", "role", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[ProfileRole] = mapped_column(
        Enum(ProfileRole, values_callable=lambda e: [m.value for m in e], native_enum=False),
        default=ProfileRole.BROKER,
        nullable=False,
    )
    status: Mapped[ProfileStatus] = mapped_column(
        Enum(ProfileStatus, values_callable=lambda e: [m.value for m in e], native_enum=False),
        default=ProfileStatus.ACTIVE,
        nullable=False,
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )
