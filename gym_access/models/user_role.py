from __future__ import annotations

from uuid import UUID

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from gym_access.models.base import TimestampedBase


class UserRole(TimestampedBase):
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "gym_id", "role", name="uq_user_roles_user_gym_role"),
    )

    user_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, index=True)
    # NULL gym_id marks a platform-scoped assignment.
    gym_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True), ForeignKey("gyms.id", ondelete="CASCADE"), nullable=True, index=True
    )
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    is_trainer: Mapped[bool] = mapped_column(nullable=False, default=False)
