"""
Ledger gateway interface definition.

The gateway is a typed view of the deployed crowdfunding contract. It owns no
state: writes return a handle for the submitted transaction and
``wait_for_settlement`` suspends until that transaction is final.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class LedgerMethod(str, Enum):
    """Contract method names, as exposed by the deployed ledger."""

    CREATE_CAMPAIGN = "createCampaign"
    FUND_CAMPAIGN = "fundCampaign"
    WITHDRAW_FUNDS = "withdrawFunds"
    REFUND = "refund"
    COMPLETE_CAMPAIGN = "completeCampaign"
    CAMPAIGN_COUNT = "campaignCount"
    CAMPAIGNS = "campaigns"
    CONTRIBUTIONS = "contributions"


class SettlementStatus(str, Enum):
    """Lifecycle of a submitted transaction."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REVERTED = "reverted"


# Order of the fields returned by ``campaigns(id)``.
CAMPAIGN_FIELDS: tuple[str, ...] = (
    "creator",
    "name",
    "description",
    "target",
    "deadline",
    "amount",
    "amount_raised",
    "amount_withdrawn",
    "amount_refunded",
    "completed",
)


@dataclass(frozen=True)
class RawCampaign:
    """Campaign record exactly as stored by the ledger.

    Amounts are integer minor units (wei), ``deadline`` is epoch seconds.
    """

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

    @classmethod
    def from_tuple(cls, campaign_id: int, values: list[Any] | tuple[Any, ...]) -> "RawCampaign":
        """Build from the positional tuple returned by ``campaigns(id)``."""
        if len(values) != len(CAMPAIGN_FIELDS):
            raise ValueError(
                f"campaigns({campaign_id}) returned {len(values)} fields, "
                f"expected {len(CAMPAIGN_FIELDS)}"
            )
        data = dict(zip(CAMPAIGN_FIELDS, values))
        return cls(
            id=campaign_id,
            creator=str(data["creator"]),
            name=str(data["name"]),
            description=str(data["description"]),
            target=int(data["target"]),
            deadline=int(data["deadline"]),
            amount=int(data["amount"]),
            amount_raised=int(data["amount_raised"]),
            amount_withdrawn=int(data["amount_withdrawn"]),
            amount_refunded=int(data["amount_refunded"]),
            completed=_as_bool(data["completed"]),
        )


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1")
    return bool(value)


@dataclass(frozen=True)
class SubmittedAction:
    """A write accepted by the ledger but not yet final."""

    method: LedgerMethod
    tx_hash: str
    sender: str
    args: tuple[Any, ...] = ()
    value: int = 0


@dataclass(frozen=True)
class SettlementReceipt:
    """Final outcome of a submitted action."""

    tx_hash: str
    status: SettlementStatus
    settled_at: datetime
    block_number: int | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


class LedgerGatewayError(Exception):
    """Base exception for ledger gateway errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        provider_response: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.provider_response = provider_response or {}


class LedgerReadError(LedgerGatewayError):
    """A read accessor could not be served."""


class SubmissionRejectedError(LedgerGatewayError):
    """The ledger refused a write before accepting it."""


class SettlementRevertedError(LedgerGatewayError):
    """An accepted write reverted during settlement."""

    def __init__(
        self,
        message: str,
        tx_hash: str,
        error_code: str | None = None,
        provider_response: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, provider_response=provider_response)
        self.tx_hash = tx_hash


class LedgerGateway(ABC):
    """Abstract interface to the crowdfunding ledger.

    Argument order of every method follows the contract's ABI; ``sender`` is
    the identity signing the write and comes first because it is not part of
    the contract arguments.
    """

    # Writes

    @abstractmethod
    async def create_campaign(
        self,
        sender: str,
        name: str,
        description: str,
        target_wei: int,
        deadline_days: int,
    ) -> SubmittedAction:
        """Submit ``createCampaign``; the ledger turns days into a deadline timestamp."""
        ...

    @abstractmethod
    async def fund_campaign(self, sender: str, campaign_id: int, value: int) -> SubmittedAction:
        """Submit ``fundCampaign`` with ``value`` attached."""
        ...

    @abstractmethod
    async def withdraw_funds(self, sender: str, campaign_id: int) -> SubmittedAction:
        ...

    @abstractmethod
    async def refund(self, sender: str, campaign_id: int) -> SubmittedAction:
        ...

    @abstractmethod
    async def complete_campaign(self, sender: str, campaign_id: int) -> SubmittedAction:
        ...

    @abstractmethod
    async def wait_for_settlement(self, submitted: SubmittedAction) -> SettlementReceipt:
        """Suspend until ``submitted`` is final.

        Raises:
            SettlementRevertedError: If the action reverted.
        """
        ...

    # Reads

    @abstractmethod
    async def campaign_count(self) -> int:
        ...

    @abstractmethod
    async def campaigns(self, campaign_id: int) -> RawCampaign:
        ...

    @abstractmethod
    async def contributions(self, address: str, campaign_id: int) -> int:
        """``address``'s recorded contribution to campaign ``campaign_id``.

        The contract call is ``contributions(address)``, answered in the
        context of the campaign being queried.
        """
        ...

    async def close(self) -> None:
        """Release transport resources, if any."""
        return None
