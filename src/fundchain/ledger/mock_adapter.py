"""
In-memory ledger adapter.

Simulates the deployed crowdfunding contract closely enough to drive the
core end to end: sequential ids, deadlines derived from a day count,
contract-side reverts, per-campaign contribution balances and a payout log.
Writes take effect when they settle, the way a mined transaction does.
"""

import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable

import anyio

from fundchain.ledger.interface import (
    LedgerGateway,
    LedgerMethod,
    LedgerReadError,
    RawCampaign,
    SettlementReceipt,
    SettlementRevertedError,
    SettlementStatus,
    SubmissionRejectedError,
    SubmittedAction,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86_400


@dataclass(frozen=True)
class Payout:
    """Funds sent out of the contract."""

    recipient: str
    amount: int
    campaign_id: int
    method: LedgerMethod


@dataclass
class _Failure:
    message: str
    error_code: str
    methods: frozenset[LedgerMethod] | None = None

    def applies_to(self, method: LedgerMethod) -> bool:
        return self.methods is None or method in self.methods


@dataclass
class _LedgerState:
    campaigns: dict[int, RawCampaign] = field(default_factory=dict)
    # (campaign_id, lower-cased address) -> minor units
    contributions: dict[tuple[int, str], int] = field(default_factory=dict)
    payouts: list[Payout] = field(default_factory=list)


def _key(campaign_id: int, address: str) -> tuple[int, str]:
    return campaign_id, address.lower()


class InMemoryLedger(LedgerGateway):
    """Mock ledger gateway for tests and local runs."""

    def __init__(self, clock: Callable[[], int] | None = None) -> None:
        self._clock = clock or (lambda: int(time.time()))
        self.reset()

    def reset(self) -> None:
        self._state = _LedgerState()
        self._submissions: list[SubmittedAction] = []
        self._pending: dict[str, SubmittedAction] = {}
        self._receipts: dict[str, SettlementReceipt] = {}
        self._reverts: dict[str, SettlementRevertedError] = {}
        self._next_tx: int = 1
        self._block_number: int = 0
        self._submit_failure: _Failure | None = None
        self._revert_failure: _Failure | None = None
        self._read_failure: _Failure | None = None
        self._hold = False
        self._release: anyio.Event | None = None

    # ------------------------------------------------------------------
    # Test controls
    # ------------------------------------------------------------------

    def configure_failure(
        self,
        should_fail: bool = True,
        error_message: str = "Mock submission rejected",
        error_code: str = "MOCK_REJECTED",
        methods: set[LedgerMethod] | None = None,
    ) -> None:
        """Reject subsequent submissions before they reach the ledger."""
        self._submit_failure = (
            _Failure(error_message, error_code, frozenset(methods) if methods else None)
            if should_fail
            else None
        )

    def configure_revert(
        self,
        should_revert: bool = True,
        error_message: str = "Mock revert",
        error_code: str = "MOCK_REVERTED",
        methods: set[LedgerMethod] | None = None,
    ) -> None:
        """Force subsequent settlements to revert."""
        self._revert_failure = (
            _Failure(error_message, error_code, frozenset(methods) if methods else None)
            if should_revert
            else None
        )

    def configure_read_failure(
        self,
        should_fail: bool = True,
        error_message: str = "Mock ledger unreachable",
        methods: set[LedgerMethod] | None = None,
    ) -> None:
        self._read_failure = (
            _Failure(error_message, "MOCK_READ_FAILED", frozenset(methods) if methods else None)
            if should_fail
            else None
        )

    def hold_settlement(self) -> None:
        """Keep every settlement wait suspended until ``release_settlement``."""
        self._hold = True

    def release_settlement(self) -> None:
        self._hold = False
        if self._release is not None:
            self._release.set()

    def add_campaign(
        self,
        creator: str,
        target: int,
        deadline: int,
        name: str = "Campaign",
        description: str = "",
        amount_raised: int = 0,
        amount_withdrawn: int = 0,
        amount_refunded: int = 0,
        completed: bool = False,
        contributions: dict[str, int] | None = None,
    ) -> int:
        """Insert a campaign record directly, bypassing submission."""
        campaign_id = len(self._state.campaigns) + 1
        self._state.campaigns[campaign_id] = RawCampaign(
            id=campaign_id,
            creator=creator,
            name=name,
            description=description,
            target=target,
            deadline=deadline,
            amount=amount_raised - amount_withdrawn - amount_refunded,
            amount_raised=amount_raised,
            amount_withdrawn=amount_withdrawn,
            amount_refunded=amount_refunded,
            completed=completed,
        )
        for address, value in (contributions or {}).items():
            key = _key(campaign_id, address)
            self._state.contributions[key] = self._state.contributions.get(key, 0) + value
        return campaign_id

    @property
    def submissions(self) -> list[SubmittedAction]:
        return self._submissions.copy()

    @property
    def payouts(self) -> list[Payout]:
        return self._state.payouts.copy()

    @property
    def pending(self) -> list[SubmittedAction]:
        return list(self._pending.values())

    def get_last_submission(self) -> SubmittedAction | None:
        return self._submissions[-1] if self._submissions else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_campaign(
        self,
        sender: str,
        name: str,
        description: str,
        target_wei: int,
        deadline_days: int,
    ) -> SubmittedAction:
        return self._submit(
            LedgerMethod.CREATE_CAMPAIGN,
            sender,
            (name, description, target_wei, deadline_days),
        )

    async def fund_campaign(self, sender: str, campaign_id: int, value: int) -> SubmittedAction:
        return self._submit(LedgerMethod.FUND_CAMPAIGN, sender, (campaign_id,), value=value)

    async def withdraw_funds(self, sender: str, campaign_id: int) -> SubmittedAction:
        return self._submit(LedgerMethod.WITHDRAW_FUNDS, sender, (campaign_id,))

    async def refund(self, sender: str, campaign_id: int) -> SubmittedAction:
        return self._submit(LedgerMethod.REFUND, sender, (campaign_id,))

    async def complete_campaign(self, sender: str, campaign_id: int) -> SubmittedAction:
        return self._submit(LedgerMethod.COMPLETE_CAMPAIGN, sender, (campaign_id,))

    def _submit(
        self,
        method: LedgerMethod,
        sender: str,
        args: tuple[Any, ...],
        value: int = 0,
    ) -> SubmittedAction:
        logger.info(
            "Mock: submitting ledger action",
            extra={"method": method.value, "sender": sender, "call_args": list(args), "value": value},
        )

        failure = self._submit_failure
        if failure is not None and failure.applies_to(method):
            raise SubmissionRejectedError(
                message=failure.message,
                error_code=failure.error_code,
            )

        tx_hash = f"0x{self._next_tx:064x}"
        self._next_tx += 1

        submitted = SubmittedAction(
            method=method,
            tx_hash=tx_hash,
            sender=sender,
            args=args,
            value=value,
        )
        self._submissions.append(submitted)
        self._pending[tx_hash] = submitted
        return submitted

    async def wait_for_settlement(self, submitted: SubmittedAction) -> SettlementReceipt:
        while self._hold:
            if self._release is None:
                self._release = anyio.Event()
            await self._release.wait()
            self._release = None

        self._settle(submitted.tx_hash)

        if submitted.tx_hash in self._reverts:
            raise self._reverts[submitted.tx_hash]
        return self._receipts[submitted.tx_hash]

    async def settle_pending(self) -> None:
        """Mine every submitted action nobody waited for."""
        for tx_hash in list(self._pending):
            self._settle(tx_hash)

    def _settle(self, tx_hash: str) -> None:
        submitted = self._pending.pop(tx_hash, None)
        if submitted is None:
            if tx_hash not in self._receipts and tx_hash not in self._reverts:
                raise SettlementRevertedError(
                    message=f"Unknown transaction {tx_hash}",
                    tx_hash=tx_hash,
                    error_code="UNKNOWN_TX",
                )
            return

        self._block_number += 1
        try:
            failure = self._revert_failure
            if failure is not None and failure.applies_to(submitted.method):
                raise _Revert(failure.message)
            self._apply(submitted)
        except _Revert as exc:
            logger.info(
                "Mock: ledger action reverted",
                extra={"tx_hash": tx_hash, "method": submitted.method.value, "reason": str(exc)},
            )
            self._reverts[tx_hash] = SettlementRevertedError(
                message=str(exc),
                tx_hash=tx_hash,
                error_code="REVERTED",
                provider_response={"reason": str(exc), "block_number": self._block_number},
            )
            return

        self._receipts[tx_hash] = SettlementReceipt(
            tx_hash=tx_hash,
            status=SettlementStatus.CONFIRMED,
            settled_at=datetime.now(timezone.utc),
            block_number=self._block_number,
            raw_response={"mock": True, "method": submitted.method.value},
        )

    # ------------------------------------------------------------------
    # Contract rules
    # ------------------------------------------------------------------

    def _apply(self, submitted: SubmittedAction) -> None:
        now = self._clock()
        method = submitted.method
        sender = submitted.sender

        if method == LedgerMethod.CREATE_CAMPAIGN:
            name, description, target, days = submitted.args
            _require(target > 0, "Target must be greater than zero")
            _require(days > 0, "Deadline must be in the future")
            campaign_id = len(self._state.campaigns) + 1
            self._state.campaigns[campaign_id] = RawCampaign(
                id=campaign_id,
                creator=sender,
                name=name,
                description=description,
                target=target,
                deadline=now + days * SECONDS_PER_DAY,
                amount=0,
                amount_raised=0,
                amount_withdrawn=0,
                amount_refunded=0,
                completed=False,
            )
            return

        (campaign_id,) = submitted.args
        campaign = self._state.campaigns.get(campaign_id)
        if campaign is None:
            raise _Revert("Campaign does not exist")
        expired = campaign.deadline <= now
        reached = campaign.amount_raised >= campaign.target
        is_creator = sender.lower() == campaign.creator.lower()

        if method == LedgerMethod.FUND_CAMPAIGN:
            _require(not expired, "Campaign has ended")
            _require(not campaign.completed, "Campaign is completed")
            _require(submitted.value > 0, "Funding amount must be greater than zero")
            self._state.campaigns[campaign_id] = replace(
                campaign,
                amount=campaign.amount + submitted.value,
                amount_raised=campaign.amount_raised + submitted.value,
            )
            key = _key(campaign_id, sender)
            self._state.contributions[key] = self._state.contributions.get(key, 0) + submitted.value

        elif method == LedgerMethod.WITHDRAW_FUNDS:
            _require(is_creator, "Only the creator can withdraw")
            _require(expired, "Campaign has not ended")
            _require(reached, "Target not reached")
            _require(not campaign.completed, "Campaign is completed")
            payout = campaign.amount_raised - campaign.amount_withdrawn
            _require(payout > 0, "Nothing to withdraw")
            self._state.campaigns[campaign_id] = replace(
                campaign,
                amount=campaign.amount - payout,
                amount_withdrawn=campaign.amount_withdrawn + payout,
            )
            self._state.payouts.append(Payout(sender, payout, campaign_id, method))

        elif method == LedgerMethod.REFUND:
            _require(expired, "Campaign has not ended")
            _require(not reached, "Target was reached")
            _require(not campaign.completed, "Campaign is completed")
            key = _key(campaign_id, sender)
            contributed = self._state.contributions.get(key, 0)
            _require(contributed > 0, "No contribution to refund")
            self._state.campaigns[campaign_id] = replace(
                campaign,
                amount=campaign.amount - contributed,
                amount_refunded=campaign.amount_refunded + contributed,
            )
            self._state.contributions[key] = 0
            self._state.payouts.append(Payout(sender, contributed, campaign_id, method))

        elif method == LedgerMethod.COMPLETE_CAMPAIGN:
            _require(is_creator, "Only the creator can complete")
            _require(expired, "Campaign has not ended")
            _require(reached, "Target not reached")
            _require(not campaign.completed, "Campaign is completed")
            self._state.campaigns[campaign_id] = replace(campaign, completed=True)

        else:
            raise _Revert(f"Unsupported method {method.value}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _check_read(self, method: LedgerMethod) -> None:
        failure = self._read_failure
        if failure is not None and failure.applies_to(method):
            raise LedgerReadError(message=failure.message, error_code=failure.error_code)

    async def campaign_count(self) -> int:
        self._check_read(LedgerMethod.CAMPAIGN_COUNT)
        return len(self._state.campaigns)

    async def campaigns(self, campaign_id: int) -> RawCampaign:
        self._check_read(LedgerMethod.CAMPAIGNS)
        campaign = self._state.campaigns.get(campaign_id)
        if campaign is None:
            # Solidity mappings return a zeroed struct for unknown keys.
            return RawCampaign(
                id=campaign_id,
                creator="0x" + "0" * 40,
                name="",
                description="",
                target=0,
                deadline=0,
                amount=0,
                amount_raised=0,
                amount_withdrawn=0,
                amount_refunded=0,
                completed=False,
            )
        return campaign

    async def contributions(self, address: str, campaign_id: int) -> int:
        self._check_read(LedgerMethod.CONTRIBUTIONS)
        return self._state.contributions.get(_key(campaign_id, address), 0)


class _Revert(Exception):
    pass


def _require(condition: bool, reason: str) -> None:
    if not condition:
        raise _Revert(reason)
