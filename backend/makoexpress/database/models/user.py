"""
Platform accounts.

A user is reached by email or phone (at least one is required) and carries
the role that gates the API. Accounts are deactivated, never deleted.
"""

import enum
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Enum as SQLEnum, String
from sqlalchemy.orm import Mapped, mapped_column

from makoexpress.database.base import BaseModel, create_table_args


class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    DRIVER = "driver"
    ADMIN = "admin"


class User(BaseModel):
    __tablename__ = "users"

    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, index=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String(32), unique=True, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    # Written by the identity provider that issues our access tokens
    password_hash: Mapped[Optional[str]] = mapped_column(String(255))
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, name="user_role", create_constraint=True),
        nullable=False,
        default=UserRole.CUSTOMER,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = create_table_args(
        CheckConstraint(
            "email IS NOT NULL OR phone_number IS NOT NULL",
            name="ck_users_contact_present",
        ),
        comment="Platform accounts",
    )
