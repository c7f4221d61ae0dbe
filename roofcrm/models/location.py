"""
Locations (offices), their members and per-location commission overrides.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roofcrm.models.base import MONEY, RATE, Base, TimestampMixin
from roofcrm.models.commission_plan import (
    CalculateOn,
    CommissionType,
    PaidWhen,
    calculate_on_enum,
    commission_type_enum,
    paid_when_enum,
)
from roofcrm.models.user import User


class Location(Base, TimestampMixin):
    """A company office."""

    __tablename__ = "locations"

    id: Mapped[int] = mapped_column(primary_key=True)
    company_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String(150),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Location(id={self.id}, name='{self.name}')>"


class LocationUser(Base, TimestampMixin):
    """Membership of a user in a location's team."""

    __tablename__ = "location_users"
    __table_args__ = (
        UniqueConstraint("location_id", "user_id", name="uq_location_users_member"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    user: Mapped["User"] = relationship("User")


class LocationCommissionSetting(Base, TimestampMixin):
    """
    Per-location, per-user commission override.

    Every override field is nullable; a null value falls through to the
    user's plan. Also marks team leads and office managers of a location.
    """

    __tablename__ = "location_commission_settings"
    __table_args__ = (
        UniqueConstraint("location_id", "user_id", name="uq_location_commission_settings_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    company_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
    )
    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    # Overrides (None = use plan value)
    commission_type: Mapped[Optional[CommissionType]] = mapped_column(
        commission_type_enum,
        nullable=True,
    )
    commission_rate: Mapped[Optional[Decimal]] = mapped_column(
        RATE,
        nullable=True,
    )
    flat_amount: Mapped[Optional[Decimal]] = mapped_column(
        MONEY,
        nullable=True,
    )
    paid_when: Mapped[Optional[PaidWhen]] = mapped_column(
        paid_when_enum,
        nullable=True,
    )
    calculate_on: Mapped[Optional[CalculateOn]] = mapped_column(
        calculate_on_enum,
        nullable=True,
    )

    # Flags
    commission_enabled: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    team_lead_for_location: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    include_own_sales: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Team lead aggregate includes the lead's own deals",
    )
    office_manager_for_location: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Earns commission on every lead of the location",
    )

    user: Mapped["User"] = relationship("User")

    def __repr__(self) -> str:
        return (
            f"<LocationCommissionSetting(location_id={self.location_id}, "
            f"user_id={self.user_id}, enabled={self.commission_enabled})>"
        )
