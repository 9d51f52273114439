"""
Action orchestrator.

The only place where ledger state is changed. Each invocation:

1. refetches the campaign and re-evaluates the gate for the requested action,
2. submits exactly one write through the gateway (no automatic retry),
3. waits for settlement,
4. refetches so callers get the state the ledger now holds.

Every failure comes back as an ``ActionResult`` carrying a typed
``ActionFailure``; nothing is swallowed.
"""

from dataclasses import dataclass

import anyio

from fundchain.campaigns.models import CampaignAction
from fundchain.campaigns.service import CampaignService, CampaignView
from fundchain.ledger.interface import (
    LedgerGateway,
    LedgerGatewayError,
    LedgerReadError,
    SettlementReceipt,
    SubmittedAction,
)
from fundchain.shared.exceptions import (
    ActionFailure,
    ConfirmationFailure,
    PreconditionFailure,
    ReadFailure,
    SubmissionFailure,
    ValidationError,
)
from fundchain.shared.logging import get_logger
from fundchain.wallet.session import WalletSession

logger = get_logger(__name__)

CREATE = "create"


@dataclass(frozen=True)
class ActionResult:
    """Outcome of one orchestrated action."""

    action: str
    campaign_id: int | None
    ok: bool
    view: CampaignView | None = None
    submitted: SubmittedAction | None = None
    receipt: SettlementReceipt | None = None
    failure: ActionFailure | None = None

    @property
    def tx_hash(self) -> str | None:
        return self.submitted.tx_hash if self.submitted is not None else None


class ActionOrchestrator:
    """Sequences permitted actions against the ledger gateway."""

    def __init__(
        self,
        gateway: LedgerGateway,
        service: CampaignService | None = None,
    ) -> None:
        self._gateway = gateway
        self._service = service or CampaignService(gateway)
        self._locks: dict[int, anyio.Lock] = {}

    @property
    def service(self) -> CampaignService:
        return self._service

    def is_pending(self, campaign_id: int) -> bool:
        lock = self._locks.get(campaign_id)
        return lock is not None and lock.locked()

    def _fail(
        self,
        action: str,
        campaign_id: int | None,
        failure: ActionFailure,
        view: CampaignView | None = None,
        submitted: SubmittedAction | None = None,
    ) -> ActionResult:
        logger.warning(
            "Campaign action failed",
            extra={
                "action": action,
                "campaign_id": campaign_id,
                "failure_kind": failure.kind.value,
                "failure_code": failure.code,
                "error": failure.message,
                "tx_hash": failure.tx_hash,
            },
        )
        return ActionResult(
            action=action,
            campaign_id=campaign_id,
            ok=False,
            view=view,
            submitted=submitted,
            failure=failure,
        )

    async def perform(
        self,
        action: CampaignAction | str,
        campaign_id: int,
        session: WalletSession,
        amount: int | None = None,
    ) -> ActionResult:
        """Run one gated action on an existing campaign.

        Args:
            action: fund, withdraw, refund or complete.
            campaign_id: Target campaign.
            session: Wallet session of the acting viewer.
            amount: Minor units to contribute; required and > 0 for fund,
                ignored otherwise.

        Raises:
            CampaignNotFoundError: If the campaign does not exist.
        """
        action = CampaignAction(action)
        name = action.value

        if action == CampaignAction.FUND and (amount is None or amount <= 0):
            return self._fail(
                name,
                campaign_id,
                PreconditionFailure(
                    "Funding amount must be greater than zero",
                    campaign_id=campaign_id,
                    action=name,
                ),
            )

        sender = session.account
        if sender is None:
            return self._fail(
                name,
                campaign_id,
                PreconditionFailure("Wallet not connected", campaign_id=campaign_id, action=name),
            )

        lock = self._locks.get(campaign_id)
        if lock is None:
            lock = self._locks[campaign_id] = anyio.Lock()
        try:
            lock.acquire_nowait()
        except anyio.WouldBlock:
            return self._fail(
                name,
                campaign_id,
                PreconditionFailure(
                    "Another action is pending for this campaign",
                    campaign_id=campaign_id,
                    action=name,
                ),
            )
        try:
            return await self._perform_locked(action, campaign_id, session, sender, amount)
        finally:
            lock.release()
            # acquire_nowait never queues waiters.
            del self._locks[campaign_id]

    async def _perform_locked(
        self,
        action: CampaignAction,
        campaign_id: int,
        session: WalletSession,
        sender: str,
        amount: int | None,
    ) -> ActionResult:
        name = action.value

        view = await self._service.get_view(campaign_id, session)
        if view.read_error is not None:
            return self._fail(name, campaign_id, view.read_error, view=view)

        if not view.eligibility.allows(action):
            return self._fail(
                name,
                campaign_id,
                PreconditionFailure(
                    f"Action '{name}' is not permitted for this campaign",
                    campaign_id=campaign_id,
                    action=name,
                ),
                view=view,
            )

        try:
            submitted = await self._submit(action, sender, campaign_id, amount)
        except LedgerGatewayError as e:
            return self._fail(
                name,
                campaign_id,
                SubmissionFailure(str(e), campaign_id=campaign_id, action=name),
                view=view,
            )

        logger.info(
            "Campaign action submitted",
            extra={
                "action": name,
                "campaign_id": campaign_id,
                "sender": sender,
                "tx_hash": submitted.tx_hash,
            },
        )

        return await self._settle(name, campaign_id, session, submitted, view)

    async def _submit(
        self,
        action: CampaignAction,
        sender: str,
        campaign_id: int,
        amount: int | None,
    ) -> SubmittedAction:
        if action == CampaignAction.FUND:
            return await self._gateway.fund_campaign(sender, campaign_id, amount or 0)
        if action == CampaignAction.WITHDRAW:
            return await self._gateway.withdraw_funds(sender, campaign_id)
        if action == CampaignAction.REFUND:
            return await self._gateway.refund(sender, campaign_id)
        return await self._gateway.complete_campaign(sender, campaign_id)

    async def _wait(self, name: str, campaign_id: int | None, submitted: SubmittedAction) -> SettlementReceipt:
        try:
            return await self._gateway.wait_for_settlement(submitted)
        except anyio.get_cancelled_exc_class():
            logger.info(
                "Stopped waiting for settlement; the action may still land",
                extra={"action": name, "campaign_id": campaign_id, "tx_hash": submitted.tx_hash},
            )
            raise

    async def _settle(
        self,
        name: str,
        campaign_id: int,
        session: WalletSession,
        submitted: SubmittedAction,
        view: CampaignView,
    ) -> ActionResult:
        try:
            receipt = await self._wait(name, campaign_id, submitted)
        except LedgerGatewayError as e:
            return self._fail(
                name,
                campaign_id,
                ConfirmationFailure(
                    str(e),
                    campaign_id=campaign_id,
                    action=name,
                    tx_hash=submitted.tx_hash,
                ),
                view=view,
                submitted=submitted,
            )

        logger.info(
            "Campaign action settled; refetching campaign",
            extra={
                "action": name,
                "campaign_id": campaign_id,
                "tx_hash": submitted.tx_hash,
                "block_number": receipt.block_number,
            },
        )

        fresh = await self._service.get_view(campaign_id, session)
        return ActionResult(
            action=name,
            campaign_id=campaign_id,
            ok=True,
            view=fresh,
            submitted=submitted,
            receipt=receipt,
        )

    async def create(
        self,
        session: WalletSession,
        name: str,
        description: str,
        target: int,
        deadline_days: int,
    ) -> ActionResult:
        """Create a campaign and return the view of the settled record.

        ``target`` is in minor units; ``deadline_days`` is converted into an
        absolute deadline by the ledger.

        Raises:
            ValidationError: If the draft is incomplete or out of range.
        """
        problem = _draft_problem(name, description, target, deadline_days)
        if problem is not None:
            raise ValidationError(problem, details={"action": CREATE})

        sender = session.account
        if sender is None:
            return self._fail(CREATE, None, PreconditionFailure("Wallet not connected", action=CREATE))

        try:
            count_before = await self._gateway.campaign_count()
        except LedgerReadError as e:
            return self._fail(CREATE, None, ReadFailure(str(e), action=CREATE))

        try:
            submitted = await self._gateway.create_campaign(
                sender, name.strip(), description.strip(), target, deadline_days
            )
        except LedgerGatewayError as e:
            return self._fail(CREATE, None, SubmissionFailure(str(e), action=CREATE))

        logger.info(
            "Campaign creation submitted",
            extra={"sender": sender, "tx_hash": submitted.tx_hash, "target": str(target)},
        )

        try:
            receipt = await self._wait(CREATE, None, submitted)
        except LedgerGatewayError as e:
            return self._fail(
                CREATE,
                None,
                ConfirmationFailure(str(e), action=CREATE, tx_hash=submitted.tx_hash),
                submitted=submitted,
            )

        try:
            campaign_id = await self._locate_created(session, name.strip(), count_before)
        except LedgerReadError as e:
            failure = ReadFailure(
                f"Campaign created but could not be read back: {e}",
                action=CREATE,
                tx_hash=submitted.tx_hash,
            )
            return self._fail(CREATE, None, failure, submitted=submitted)

        logger.info(
            "Campaign created",
            extra={"campaign_id": campaign_id, "sender": sender, "tx_hash": submitted.tx_hash},
        )

        view = await self._service.get_view(campaign_id, session)
        return ActionResult(
            action=CREATE,
            campaign_id=campaign_id,
            ok=True,
            view=view,
            submitted=submitted,
            receipt=receipt,
        )

    async def _locate_created(self, session: WalletSession, name: str, count_before: int) -> int:
        # Other clients may have created campaigns in the meantime; take the
        # newest record that matches this sender and name.
        count = await self._gateway.campaign_count()
        for campaign_id in range(count, count_before, -1):
            raw = await self._gateway.campaigns(campaign_id)
            if session.is_account(raw.creator) and raw.name == name:
                return campaign_id
        return count


def _draft_problem(name: str, description: str, target: int, deadline_days: int) -> str | None:
    if not name or not name.strip():
        return "Campaign name is required"
    if not description or not description.strip():
        return "Campaign description is required"
    if target <= 0:
        return "Target must be greater than zero"
    if deadline_days < 1:
        return "Deadline must be at least one day in the future"
    return None
