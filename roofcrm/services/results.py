"""
Typed outcomes returned by the commission engine.

These are values, not exceptions: callers branch on them with isinstance()
so that "no commission due" is never confused with a failure.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from roofcrm.models.commission import CommissionStatus


@dataclass(frozen=True)
class CommissionError:
    """Base class for every typed engine outcome that is not a ledger row."""

    @property
    def message(self) -> str:
        return self.__class__.__name__


@dataclass(frozen=True)
class ConfigurationMissing(CommissionError):
    """The participant has no resolvable commission terms. Not a failure."""

    user_id: int
    reason: str = "no plan, location override or role default"

    @property
    def message(self) -> str:
        return f"User {self.user_id} earns no commission: {self.reason}"


@dataclass(frozen=True)
class LockedAfterApproval(CommissionError):
    """Recalculation attempted on an approved or paid row."""

    commission_id: int
    status: CommissionStatus
    attempted_base_amount: Decimal

    @property
    def message(self) -> str:
        return (
            f"Commission {self.commission_id} is {self.status.value}; "
            f"amount is locked (attempted base {self.attempted_base_amount})"
        )


@dataclass(frozen=True)
class InvalidTransition(CommissionError):
    """The state machine forbids the requested status change."""

    commission_id: int
    current: CommissionStatus
    requested: CommissionStatus
    reason: Optional[str] = None

    @property
    def message(self) -> str:
        text = (
            f"Cannot move commission {self.commission_id} "
            f"from {self.current.value} to {self.requested.value}"
        )
        if self.reason:
            text = f"{text}: {self.reason}"
        return text


@dataclass(frozen=True)
class DuplicateLedgerRow(CommissionError):
    """An insert lost the race against the unique (lead, user) index."""

    lead_id: int
    user_id: int


@dataclass(frozen=True)
class CommissionNotFound(CommissionError):
    commission_id: int

    @property
    def message(self) -> str:
        return f"Commission {self.commission_id} not found"


@dataclass(frozen=True)
class PayoutRejected(CommissionError):
    """A payout amount that cannot be applied to the row."""

    commission_id: int
    reason: str

    @property
    def message(self) -> str:
        return f"Payout for commission {self.commission_id} rejected: {self.reason}"
