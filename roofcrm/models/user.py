"""
User model as seen by the commission engine.

Users are created and authenticated by the CRM; the engine reads the
role and the assigned commission plan.
"""

from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, ForeignKey, Integer, String
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roofcrm.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from roofcrm.models.commission_plan import CommissionPlan


class UserRole(str, Enum):
    """Company roles."""
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    OFFICE = "office"
    SALES_MANAGER = "sales_manager"
    SALES = "sales"
    PRODUCTION = "production"
    MARKETING = "marketing"


ADMIN_ROLES = (UserRole.SUPER_ADMIN, UserRole.ADMIN)


class User(Base, TimestampMixin):
    """
    CRM user account.

    - admin: manages plans, overrides and approves commissions
    - everyone else: may earn commission through a plan or a location override
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    company_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    full_name: Mapped[str] = mapped_column(
        String(150),
        nullable=False,
    )
    role: Mapped[UserRole] = mapped_column(
        SQLAlchemyEnum(
            UserRole,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    commission_plan_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("commission_plans.id"),
        nullable=True,
        index=True,
        comment="Assigned commission plan (None = role default applies)",
    )

    # Relationships
    commission_plan: Mapped[Optional["CommissionPlan"]] = relationship(
        "CommissionPlan",
        foreign_keys=[commission_plan_id],
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role={self.role})>"
