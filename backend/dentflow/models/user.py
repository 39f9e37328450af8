"""User model - staff principals of a practice."""

from typing import Optional

from sqlalchemy import Enum as SQLEnum
from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from dentflow.models.base import BaseModel
from dentflow.security.permissions import Role


class User(BaseModel):
    """
    User model.

    Users belong to a practice and carry a role for RBAC.
    Offboarding deactivates the account; rows are never deleted.
    """

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("practice_id", "email", name="uq_users_practice_email"),
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="Email address (used for login)",
    )

    full_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Full name of user",
    )

    role: Mapped[Role] = mapped_column(
        SQLEnum(Role, name="user_role", native_enum=False, create_constraint=True),
        nullable=False,
        default=Role.DENTIST,
        comment="User role for RBAC",
    )

    is_active: Mapped[bool] = mapped_column(
        default=True,
        nullable=False,
        comment="Whether user account is active",
    )

    big_number: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="BIG registration number (care professionals)",
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<User {self.email} ({self.role.value})>"
