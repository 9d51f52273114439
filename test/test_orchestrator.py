"""Tests for the action orchestrator."""

import anyio
import pytest

from conftest import BACKER, CREATOR, DAY, ETH, NOW, STRANGER, FakeClock
from fundchain.campaigns.models import CampaignAction, CampaignPhase
from fundchain.campaigns.orchestrator import CREATE, ActionOrchestrator
from fundchain.ledger.interface import LedgerMethod, SettlementStatus
from fundchain.ledger.mock_adapter import InMemoryLedger
from fundchain.shared.exceptions import CampaignNotFoundError, FailureKind, ValidationError
from fundchain.wallet.session import WalletSession


class TestFund:
    @pytest.mark.asyncio
    async def test_fund_settles_and_refetches(
        self,
        orchestrator: ActionOrchestrator,
        ledger: InMemoryLedger,
        open_campaign: int,
        stranger_session: WalletSession,
    ) -> None:
        result = await orchestrator.perform(CampaignAction.FUND, open_campaign, stranger_session, amount=ETH)

        assert result.ok is True
        assert result.failure is None
        assert result.receipt is not None
        assert result.receipt.status == SettlementStatus.CONFIRMED
        assert result.tx_hash == ledger.submissions[0].tx_hash
        assert result.view is not None
        assert result.view.campaign.amount_raised == 5 * ETH
        assert result.view.contribution == ETH
        assert len(ledger.submissions) == 1

    @pytest.mark.asyncio
    async def test_fund_past_target_is_allowed(
        self,
        orchestrator: ActionOrchestrator,
        open_campaign: int,
        stranger_session: WalletSession,
    ) -> None:
        result = await orchestrator.perform("fund", open_campaign, stranger_session, amount=20 * ETH)

        assert result.ok is True
        assert result.view.campaign.progress_display == "240.00"
        assert result.view.eligibility.can_fund is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [None, 0, -1])
    async def test_fund_requires_positive_amount(
        self,
        orchestrator: ActionOrchestrator,
        ledger: InMemoryLedger,
        open_campaign: int,
        stranger_session: WalletSession,
        amount: int | None,
    ) -> None:
        result = await orchestrator.perform(CampaignAction.FUND, open_campaign, stranger_session, amount=amount)

        assert result.ok is False
        assert result.failure.kind == FailureKind.PRECONDITION
        assert ledger.submissions == []

    @pytest.mark.asyncio
    async def test_stale_gate_is_rechecked(
        self,
        orchestrator: ActionOrchestrator,
        ledger: InMemoryLedger,
        clock: FakeClock,
        open_campaign: int,
        stranger_session: WalletSession,
    ) -> None:
        view = await orchestrator.service.get_view(open_campaign, stranger_session)
        assert view.eligibility.can_fund is True

        clock.advance(5 * DAY)
        result = await orchestrator.perform(CampaignAction.FUND, open_campaign, stranger_session, amount=ETH)

        assert result.ok is False
        assert result.failure.kind == FailureKind.PRECONDITION
        assert result.view.campaign.phase == CampaignPhase.FAILED
        assert ledger.submissions == []


class TestGates:
    @pytest.mark.asyncio
    async def test_without_wallet(
        self, orchestrator: ActionOrchestrator, ledger: InMemoryLedger, open_campaign: int
    ) -> None:
        result = await orchestrator.perform(
            CampaignAction.FUND, open_campaign, WalletSession.anonymous(), amount=ETH
        )

        assert result.ok is False
        assert result.failure.kind == FailureKind.PRECONDITION
        assert "Wallet not connected" in result.failure.message
        assert ledger.submissions == []

    @pytest.mark.asyncio
    async def test_non_creator_cannot_withdraw(
        self,
        orchestrator: ActionOrchestrator,
        ledger: InMemoryLedger,
        successful_campaign: int,
        backer_session: WalletSession,
    ) -> None:
        result = await orchestrator.perform(CampaignAction.WITHDRAW, successful_campaign, backer_session)

        assert result.ok is False
        assert result.failure.kind == FailureKind.PRECONDITION
        assert result.failure.action == "withdraw"
        assert ledger.submissions == []

    @pytest.mark.asyncio
    async def test_unknown_campaign(
        self, orchestrator: ActionOrchestrator, open_campaign: int, backer_session: WalletSession
    ) -> None:
        with pytest.raises(CampaignNotFoundError):
            await orchestrator.perform(CampaignAction.REFUND, 99, backer_session)

    @pytest.mark.asyncio
    async def test_nothing_allowed_after_completion(
        self,
        orchestrator: ActionOrchestrator,
        ledger: InMemoryLedger,
        successful_campaign: int,
        creator_session: WalletSession,
    ) -> None:
        completed = await orchestrator.perform(CampaignAction.COMPLETE, successful_campaign, creator_session)
        assert completed.ok is True
        assert completed.view.campaign.phase == CampaignPhase.COMPLETED

        for action in (CampaignAction.WITHDRAW, CampaignAction.COMPLETE, CampaignAction.FUND):
            result = await orchestrator.perform(action, successful_campaign, creator_session, amount=ETH)
            assert result.failure.kind == FailureKind.PRECONDITION
        assert len(ledger.submissions) == 1


class TestCloseOut:
    @pytest.mark.asyncio
    async def test_withdraw_then_complete(
        self,
        orchestrator: ActionOrchestrator,
        ledger: InMemoryLedger,
        successful_campaign: int,
        creator_session: WalletSession,
    ) -> None:
        withdrawn = await orchestrator.perform(CampaignAction.WITHDRAW, successful_campaign, creator_session)

        assert withdrawn.ok is True
        assert withdrawn.view.campaign.amount_withdrawn == 10 * ETH
        # Same gate: complete is still offered after a withdrawal
        assert withdrawn.view.eligibility.can_complete is True
        assert ledger.payouts[0].recipient == CREATOR

        completed = await orchestrator.perform(CampaignAction.COMPLETE, successful_campaign, creator_session)
        assert completed.ok is True
        assert completed.view.campaign.completed is True

    @pytest.mark.asyncio
    async def test_second_withdraw_reverts_as_confirmation_failure(
        self,
        orchestrator: ActionOrchestrator,
        successful_campaign: int,
        creator_session: WalletSession,
    ) -> None:
        await orchestrator.perform(CampaignAction.WITHDRAW, successful_campaign, creator_session)

        result = await orchestrator.perform(CampaignAction.WITHDRAW, successful_campaign, creator_session)

        assert result.ok is False
        assert result.failure.kind == FailureKind.CONFIRMATION
        assert result.failure.tx_hash == result.tx_hash
        assert "Nothing to withdraw" in result.failure.message


class TestRefund:
    @pytest.mark.asyncio
    async def test_refund_once(
        self,
        orchestrator: ActionOrchestrator,
        ledger: InMemoryLedger,
        failed_campaign: int,
        backer_session: WalletSession,
    ) -> None:
        result = await orchestrator.perform(CampaignAction.REFUND, failed_campaign, backer_session)

        assert result.ok is True
        assert result.view.contribution == 0
        assert result.view.eligibility.can_refund is False
        assert result.view.campaign.amount_refunded == 4 * ETH
        assert ledger.payouts[0].amount == 4 * ETH

        again = await orchestrator.perform(CampaignAction.REFUND, failed_campaign, backer_session)
        assert again.failure.kind == FailureKind.PRECONDITION
        assert len(ledger.submissions) == 1

    @pytest.mark.asyncio
    async def test_refund_pays_only_this_campaigns_contribution(
        self,
        orchestrator: ActionOrchestrator,
        ledger: InMemoryLedger,
        clock: FakeClock,
        open_campaign: int,
        backer_session: WalletSession,
    ) -> None:
        other = ledger.add_campaign(
            creator=CREATOR,
            target=10 * ETH,
            deadline=NOW - DAY,
            amount_raised=ETH,
            contributions={STRANGER: ETH},
        )
        clock.advance(6 * DAY)

        # Funded only the first campaign
        denied = await orchestrator.perform(CampaignAction.REFUND, other, backer_session)
        assert denied.failure.kind == FailureKind.PRECONDITION
        assert ledger.submissions == []

        paid = await orchestrator.perform(CampaignAction.REFUND, open_campaign, backer_session)
        assert paid.ok is True
        assert [p.amount for p in ledger.payouts] == [4 * ETH]
        assert (await ledger.campaigns(other)).amount == ETH

    @pytest.mark.asyncio
    async def test_refund_across_two_failed_campaigns(
        self,
        orchestrator: ActionOrchestrator,
        ledger: InMemoryLedger,
        failed_campaign: int,
        backer_session: WalletSession,
    ) -> None:
        other = ledger.add_campaign(
            creator=CREATOR,
            target=10 * ETH,
            deadline=NOW - DAY,
            amount_raised=ETH,
            contributions={BACKER: ETH},
        )

        first = await orchestrator.perform(CampaignAction.REFUND, failed_campaign, backer_session)
        second = await orchestrator.perform(CampaignAction.REFUND, other, backer_session)

        assert first.ok is True
        assert second.ok is True
        assert [p.amount for p in ledger.payouts] == [4 * ETH, ETH]
        assert second.view.campaign.amount == 0
        assert first.view.campaign.amount == 0


class TestFailures:
    @pytest.mark.asyncio
    async def test_submission_failure(
        self,
        orchestrator: ActionOrchestrator,
        ledger: InMemoryLedger,
        open_campaign: int,
        stranger_session: WalletSession,
    ) -> None:
        ledger.configure_failure(error_message="User rejected the request")

        result = await orchestrator.perform(CampaignAction.FUND, open_campaign, stranger_session, amount=ETH)

        assert result.ok is False
        assert result.failure.kind == FailureKind.SUBMISSION
        assert result.failure.message == "User rejected the request"
        assert result.submitted is None

    @pytest.mark.asyncio
    async def test_confirmation_failure_leaves_state(
        self,
        orchestrator: ActionOrchestrator,
        ledger: InMemoryLedger,
        open_campaign: int,
        stranger_session: WalletSession,
    ) -> None:
        ledger.configure_revert(error_message="execution reverted")

        result = await orchestrator.perform(CampaignAction.FUND, open_campaign, stranger_session, amount=ETH)

        assert result.ok is False
        assert result.failure.kind == FailureKind.CONFIRMATION
        assert result.submitted is not None
        assert result.failure.tx_hash == result.submitted.tx_hash
        assert (await ledger.campaigns(open_campaign)).amount_raised == 4 * ETH

    @pytest.mark.asyncio
    async def test_read_failure_blocks_submission(
        self,
        orchestrator: ActionOrchestrator,
        ledger: InMemoryLedger,
        failed_campaign: int,
        backer_session: WalletSession,
    ) -> None:
        ledger.configure_read_failure(methods={LedgerMethod.CONTRIBUTIONS})

        result = await orchestrator.perform(CampaignAction.REFUND, failed_campaign, backer_session)

        assert result.ok is False
        assert result.failure.kind == FailureKind.READ
        assert ledger.submissions == []

    @pytest.mark.asyncio
    async def test_no_automatic_retry(
        self,
        orchestrator: ActionOrchestrator,
        ledger: InMemoryLedger,
        open_campaign: int,
        stranger_session: WalletSession,
    ) -> None:
        ledger.configure_revert()

        await orchestrator.perform(CampaignAction.FUND, open_campaign, stranger_session, amount=ETH)

        assert len(ledger.submissions) == 1

    @pytest.mark.asyncio
    async def test_lock_released_after_failure(
        self,
        orchestrator: ActionOrchestrator,
        ledger: InMemoryLedger,
        open_campaign: int,
        stranger_session: WalletSession,
    ) -> None:
        ledger.configure_revert()
        await orchestrator.perform(CampaignAction.FUND, open_campaign, stranger_session, amount=ETH)
        ledger.configure_revert(should_revert=False)

        result = await orchestrator.perform(CampaignAction.FUND, open_campaign, stranger_session, amount=ETH)

        assert result.ok is True
        assert orchestrator.is_pending(open_campaign) is False
        assert orchestrator._locks == {}


class TestPendingLock:
    @pytest.mark.asyncio
    async def test_second_action_rejected_while_pending(
        self,
        orchestrator: ActionOrchestrator,
        ledger: InMemoryLedger,
        open_campaign: int,
        stranger_session: WalletSession,
        backer_session: WalletSession,
    ) -> None:
        ledger.hold_settlement()
        results = []

        async def fund() -> None:
            results.append(
                await orchestrator.perform(CampaignAction.FUND, open_campaign, stranger_session, amount=ETH)
            )

        async with anyio.create_task_group() as tg:
            tg.start_soon(fund)
            await anyio.sleep(0.01)
            assert orchestrator.is_pending(open_campaign) is True

            second = await orchestrator.perform(CampaignAction.FUND, open_campaign, backer_session, amount=ETH)
            assert second.ok is False
            assert second.failure.kind == FailureKind.PRECONDITION
            assert "pending" in second.failure.message

            ledger.release_settlement()

        assert results[0].ok is True
        assert len(ledger.submissions) == 1
        assert orchestrator.is_pending(open_campaign) is False

    @pytest.mark.asyncio
    async def test_other_campaigns_not_blocked(
        self,
        orchestrator: ActionOrchestrator,
        ledger: InMemoryLedger,
        open_campaign: int,
        failed_campaign: int,
        stranger_session: WalletSession,
        backer_session: WalletSession,
    ) -> None:
        ledger.hold_settlement()

        async with anyio.create_task_group() as tg:
            tg.start_soon(
                lambda: orchestrator.perform(CampaignAction.FUND, open_campaign, stranger_session, amount=ETH)
            )
            await anyio.sleep(0.01)

            assert orchestrator.is_pending(failed_campaign) is False
            tg.start_soon(lambda: orchestrator.perform(CampaignAction.REFUND, failed_campaign, backer_session))
            await anyio.sleep(0.01)
            assert len(ledger.submissions) == 2

            ledger.release_settlement()

    @pytest.mark.asyncio
    async def test_locks_do_not_accumulate(
        self,
        orchestrator: ActionOrchestrator,
        open_campaign: int,
        stranger_session: WalletSession,
    ) -> None:
        for campaign_id in range(100, 110):
            with pytest.raises(CampaignNotFoundError):
                await orchestrator.perform(CampaignAction.REFUND, campaign_id, stranger_session)
        await orchestrator.perform(CampaignAction.FUND, open_campaign, stranger_session, amount=ETH)

        assert orchestrator._locks == {}

    @pytest.mark.asyncio
    async def test_cancelled_wait_releases_lock_and_effect_lands(
        self,
        orchestrator: ActionOrchestrator,
        ledger: InMemoryLedger,
        open_campaign: int,
        stranger_session: WalletSession,
    ) -> None:
        ledger.hold_settlement()

        async with anyio.create_task_group() as tg:
            tg.start_soon(
                lambda: orchestrator.perform(CampaignAction.FUND, open_campaign, stranger_session, amount=ETH)
            )
            await anyio.sleep(0.01)
            assert orchestrator.is_pending(open_campaign) is True
            tg.cancel_scope.cancel()

        assert orchestrator.is_pending(open_campaign) is False

        ledger.release_settlement()
        await ledger.settle_pending()
        assert (await ledger.contributions(STRANGER, open_campaign)) == ETH
        assert orchestrator._locks == {}


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_returns_new_campaign(
        self,
        orchestrator: ActionOrchestrator,
        ledger: InMemoryLedger,
        open_campaign: int,
        creator_session: WalletSession,
    ) -> None:
        result = await orchestrator.create(creator_session, "  Garden  ", "Raised beds", 3 * ETH, 7)

        assert result.ok is True
        assert result.action == CREATE
        assert result.campaign_id == open_campaign + 1
        campaign = result.view.campaign
        assert campaign.name == "Garden"
        assert campaign.creator == CREATOR
        assert campaign.deadline == NOW + 7 * DAY
        assert campaign.phase == CampaignPhase.OPEN
        assert ledger.submissions[0].args == ("Garden", "Raised beds", 3 * ETH, 7)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("name", "description", "target", "days"),
        [
            ("", "desc", ETH, 1),
            ("   ", "desc", ETH, 1),
            ("Name", "", ETH, 1),
            ("Name", "desc", 0, 1),
            ("Name", "desc", ETH, 0),
        ],
    )
    async def test_invalid_draft(
        self,
        orchestrator: ActionOrchestrator,
        ledger: InMemoryLedger,
        creator_session: WalletSession,
        name: str,
        description: str,
        target: int,
        days: int,
    ) -> None:
        with pytest.raises(ValidationError):
            await orchestrator.create(creator_session, name, description, target, days)

        assert ledger.submissions == []

    @pytest.mark.asyncio
    async def test_create_without_wallet(self, orchestrator: ActionOrchestrator, ledger: InMemoryLedger) -> None:
        result = await orchestrator.create(WalletSession.anonymous(), "Name", "desc", ETH, 1)

        assert result.failure.kind == FailureKind.PRECONDITION
        assert ledger.submissions == []

    @pytest.mark.asyncio
    async def test_create_rejected(
        self, orchestrator: ActionOrchestrator, ledger: InMemoryLedger, creator_session: WalletSession
    ) -> None:
        ledger.configure_failure(methods={LedgerMethod.CREATE_CAMPAIGN})

        result = await orchestrator.create(creator_session, "Name", "desc", ETH, 1)

        assert result.failure.kind == FailureKind.SUBMISSION

    @pytest.mark.asyncio
    async def test_create_reverted(
        self, orchestrator: ActionOrchestrator, ledger: InMemoryLedger, creator_session: WalletSession
    ) -> None:
        ledger.configure_revert()

        result = await orchestrator.create(creator_session, "Name", "desc", ETH, 1)

        assert result.failure.kind == FailureKind.CONFIRMATION
        assert await ledger.campaign_count() == 0

    @pytest.mark.asyncio
    async def test_create_locates_own_record_among_concurrent_creations(
        self,
        orchestrator: ActionOrchestrator,
        ledger: InMemoryLedger,
        creator_session: WalletSession,
    ) -> None:
        ledger.hold_settlement()

        async with anyio.create_task_group() as tg:
            results = []

            async def create() -> None:
                results.append(await orchestrator.create(creator_session, "Mine", "desc", ETH, 1))

            tg.start_soon(create)
            await anyio.sleep(0.01)
            # Someone else's campaign lands after ours was submitted
            other = await ledger.create_campaign(BACKER, "Theirs", "desc", ETH, 1)
            ledger.release_settlement()
            await ledger.wait_for_settlement(other)

        assert results[0].ok is True
        assert results[0].view.campaign.name == "Mine"
        assert results[0].view.campaign.creator == CREATOR
