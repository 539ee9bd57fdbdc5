"""
Gym Membership Service - Member Model

Member profile as seen by the membership engine. Accounts are issued by the
auth service; this table mirrors what we need for re-authentication on plan
changes and for the personal-data confirmation step on reactivation.

Portal roles:
- Member: owns a membership
- Trainer / Nutritionist: staff portals, no membership management rights
- Front Desk / Admin: may manage the plan catalog and sign members up
"""

from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, String, Text, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel

if TYPE_CHECKING:
    from app.models.membership import MembershipRecord


class MemberRole(str, Enum):
    """Portal roles."""
    MEMBER = "member"
    TRAINER = "trainer"
    FRONT_DESK = "front_desk"
    NUTRITIONIST = "nutritionist"
    ADMIN = "admin"


STAFF_ROLES = (MemberRole.FRONT_DESK, MemberRole.ADMIN)


class Member(BaseModel):
    """
    Member account and personal data.
    """

    __tablename__ = "members"

    # Basic Info
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    hashed_password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    emergency_contact_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    emergency_contact_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    role: Mapped[MemberRole] = mapped_column(
        SQLEnum(MemberRole, values_callable=lambda x: [e.value for e in x]),
        default=MemberRole.MEMBER,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    memberships: Mapped[List["MembershipRecord"]] = relationship(
        "MembershipRecord",
        back_populates="member",
        order_by="MembershipRecord.version",
        lazy="raise",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES
