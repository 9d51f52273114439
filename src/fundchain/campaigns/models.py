"""
Normalized campaign model and derived facts.

``normalize`` is pure: the same raw record and timestamp always produce the
same ``Campaign``. Progress is kept as an exact ``Fraction`` so the
``>= 100`` decision can never be flipped by rounding.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from fractions import Fraction

from fundchain.campaigns.amounts import DEFAULT_DECIMALS, format_amount, format_percent, short_address
from fundchain.ledger.interface import RawCampaign

SECONDS_PER_HOUR = 3_600
SECONDS_PER_DAY = 86_400

FULLY_FUNDED = Fraction(100)


class CampaignPhase(str, Enum):
    """Campaign lifecycle phase as seen from ledger state."""

    OPEN = "open"
    SUCCESSFUL = "successful"
    FAILED = "failed"
    COMPLETED = "completed"


class CampaignAction(str, Enum):
    """The four mutating actions a viewer may take on an existing campaign."""

    FUND = "fund"
    WITHDRAW = "withdraw"
    REFUND = "refund"
    COMPLETE = "complete"


# Phase in which each action is allowed at all, before viewer-specific checks.
ACTION_PHASES: dict[CampaignAction, CampaignPhase] = {
    CampaignAction.FUND: CampaignPhase.OPEN,
    CampaignAction.WITHDRAW: CampaignPhase.SUCCESSFUL,
    CampaignAction.COMPLETE: CampaignPhase.SUCCESSFUL,
    CampaignAction.REFUND: CampaignPhase.FAILED,
}


@dataclass(frozen=True)
class Campaign:
    """Campaign with derived facts, computed at one instant ``as_of``."""

    id: int
    creator: str
    name: str
    description: str
    target: int
    deadline: int
    amount: int
    amount_raised: int
    amount_withdrawn: int
    amount_refunded: int
    completed: bool
    as_of: int
    is_expired: bool
    progress_percent: Fraction
    time_left: str
    phase: CampaignPhase
    decimals: int = DEFAULT_DECIMALS

    @property
    def successful(self) -> bool:
        return self.is_expired and self.progress_percent >= FULLY_FUNDED

    @property
    def failed(self) -> bool:
        return self.is_expired and self.progress_percent < FULLY_FUNDED

    @property
    def active(self) -> bool:
        return not self.is_expired

    @property
    def deadline_at(self) -> datetime:
        return datetime.fromtimestamp(self.deadline, tz=timezone.utc)

    @property
    def target_display(self) -> str:
        return format_amount(self.target, self.decimals)

    @property
    def amount_raised_display(self) -> str:
        return format_amount(self.amount_raised, self.decimals)

    @property
    def amount_withdrawn_display(self) -> str:
        return format_amount(self.amount_withdrawn, self.decimals)

    @property
    def amount_refunded_display(self) -> str:
        return format_amount(self.amount_refunded, self.decimals)

    @property
    def progress_display(self) -> str:
        return format_percent(self.progress_percent)

    @property
    def creator_short(self) -> str:
        return short_address(self.creator)

    @property
    def status_label(self) -> str:
        """Badge text shown on campaign cards."""
        return {
            CampaignPhase.COMPLETED: "Completed",
            CampaignPhase.SUCCESSFUL: "Successful",
            CampaignPhase.FAILED: "Ended",
            CampaignPhase.OPEN: "Active",
        }[self.phase]

    def is_created_by(self, identity: str | None) -> bool:
        return identity is not None and identity.lower() == self.creator.lower()


def is_expired(deadline: int, now: int) -> bool:
    return deadline <= now


def progress_percent(amount_raised: int, target: int) -> Fraction:
    """``amount_raised / target * 100`` in exact rational arithmetic.

    An unused ledger slot has ``target == 0``; it reports no progress.
    """
    if target <= 0:
        return Fraction(0)
    return Fraction(amount_raised * 100, target)


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}{'s' if n > 1 else ''} left"


def time_left(deadline: int, now: int) -> str:
    """Human-scale remaining time, floored so it never rounds up into a bucket."""
    if is_expired(deadline, now):
        return "Ended"

    seconds_left = deadline - now
    days = seconds_left // SECONDS_PER_DAY
    if days >= 1:
        return _plural(days, "day")
    hours = seconds_left // SECONDS_PER_HOUR
    if hours >= 1:
        return _plural(hours, "hour")
    return "Less than an hour left"


def classify(completed: bool, expired: bool, progress: Fraction) -> CampaignPhase:
    if completed:
        return CampaignPhase.COMPLETED
    if not expired:
        return CampaignPhase.OPEN
    if progress >= FULLY_FUNDED:
        return CampaignPhase.SUCCESSFUL
    return CampaignPhase.FAILED


def normalize(raw: RawCampaign, now_timestamp: int, decimals: int = DEFAULT_DECIMALS) -> Campaign:
    """Turn a raw ledger record into a ``Campaign`` as of ``now_timestamp``."""
    expired = is_expired(raw.deadline, now_timestamp)
    progress = progress_percent(raw.amount_raised, raw.target)

    return Campaign(
        id=raw.id,
        creator=raw.creator,
        name=raw.name,
        description=raw.description,
        target=raw.target,
        deadline=raw.deadline,
        amount=raw.amount,
        amount_raised=raw.amount_raised,
        amount_withdrawn=raw.amount_withdrawn,
        amount_refunded=raw.amount_refunded,
        completed=raw.completed,
        as_of=now_timestamp,
        is_expired=expired,
        progress_percent=progress,
        time_left=time_left(raw.deadline, now_timestamp),
        phase=classify(raw.completed, expired, progress),
        decimals=decimals,
    )
