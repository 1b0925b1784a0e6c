from __future__ import annotations

from sqlalchemy import Enum as SqlEnum
from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from reading_billing.db.models.enums import Role
from reading_billing.db.models.mixins import TimestampMixin
from reading_billing.db.session import Base


class User(TimestampMixin, Base):
    """Local mirror of an identity issued by the external identity provider."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    role: Mapped[Role] = mapped_column(
        SqlEnum(Role, name="role_enum", native_enum=False),
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True, server_default="true")

    __table_args__ = (Index("ix_users_role", "role"),)
