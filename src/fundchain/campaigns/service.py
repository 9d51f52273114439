"""
Campaign read side.

Fetches fresh ledger state, normalizes it and evaluates the viewer's gates.
A failed read never yields a permissive answer: the view is marked degraded
and every flag is false.
"""

import time
from dataclasses import dataclass
from typing import Callable

from fundchain.campaigns.amounts import DEFAULT_DECIMALS, format_amount
from fundchain.campaigns.eligibility import Eligibility, evaluate
from fundchain.campaigns.models import Campaign, normalize
from fundchain.ledger.interface import LedgerGateway, LedgerReadError
from fundchain.shared.exceptions import CampaignNotFoundError, ReadFailure
from fundchain.shared.logging import get_logger
from fundchain.wallet.session import WalletSession

logger = get_logger(__name__)


def system_clock() -> int:
    return int(time.time())


@dataclass(frozen=True)
class CampaignView:
    """One viewer's picture of one campaign at one instant."""

    campaign_id: int
    campaign: Campaign | None
    viewer: str | None
    contribution: int
    eligibility: Eligibility
    read_error: ReadFailure | None = None

    @property
    def degraded(self) -> bool:
        return self.read_error is not None

    @property
    def contribution_display(self) -> str:
        decimals = self.campaign.decimals if self.campaign is not None else DEFAULT_DECIMALS
        return format_amount(self.contribution, decimals)


class CampaignService:
    """Read-only access to campaigns through the ledger gateway."""

    def __init__(
        self,
        gateway: LedgerGateway,
        clock: Callable[[], int] = system_clock,
        decimals: int = DEFAULT_DECIMALS,
    ) -> None:
        self._gateway = gateway
        self._clock = clock
        self._decimals = decimals

    @property
    def gateway(self) -> LedgerGateway:
        return self._gateway

    def now(self) -> int:
        return self._clock()

    async def list_campaigns(self, now: int | None = None) -> list[Campaign]:
        """Enumerate ids ``1..campaignCount()``.

        Raises:
            ReadFailure: If the ledger could not be read.
        """
        try:
            count = await self._gateway.campaign_count()
            raws = [await self._gateway.campaigns(i) for i in range(1, count + 1)]
        except LedgerReadError as e:
            logger.warning(
                "Campaign listing unavailable",
                extra={"error": str(e), "error_code": e.error_code},
            )
            raise ReadFailure(f"Could not load campaigns: {e}") from e

        instant = self.now() if now is None else now
        return [normalize(raw, instant, self._decimals) for raw in raws]

    async def get_campaign(self, campaign_id: int, now: int | None = None) -> Campaign:
        """Fetch and normalize one campaign.

        Raises:
            CampaignNotFoundError: If ``campaign_id`` is outside ``1..count``.
            ReadFailure: If the ledger could not be read.
        """
        try:
            count = await self._gateway.campaign_count()
            if campaign_id < 1 or campaign_id > count:
                raise CampaignNotFoundError(campaign_id)
            raw = await self._gateway.campaigns(campaign_id)
        except LedgerReadError as e:
            raise ReadFailure(
                f"Could not load campaign {campaign_id}: {e}",
                campaign_id=campaign_id,
            ) from e

        instant = self.now() if now is None else now
        return normalize(raw, instant, self._decimals)

    async def get_view(
        self,
        campaign_id: int,
        session: WalletSession | None = None,
        now: int | None = None,
    ) -> CampaignView:
        """Fresh campaign state plus the viewer's contribution and gates.

        Raises:
            CampaignNotFoundError: If ``campaign_id`` does not exist.
        """
        viewer = session.account if session is not None else None

        try:
            campaign = await self.get_campaign(campaign_id, now=now)
            contribution = await self._gateway.contributions(viewer, campaign_id) if viewer else 0
        except ReadFailure as e:
            logger.warning(
                "Campaign view degraded",
                extra={"campaign_id": campaign_id, "viewer": viewer, "error": e.message},
            )
            return CampaignView(
                campaign_id=campaign_id,
                campaign=None,
                viewer=viewer,
                contribution=0,
                eligibility=Eligibility.denied(),
                read_error=e,
            )
        except LedgerReadError as e:
            logger.warning(
                "Contribution read failed; campaign view degraded",
                extra={"campaign_id": campaign_id, "viewer": viewer, "error": str(e)},
            )
            return CampaignView(
                campaign_id=campaign_id,
                campaign=campaign,
                viewer=viewer,
                contribution=0,
                eligibility=Eligibility.denied(),
                read_error=ReadFailure(
                    f"Could not load contribution for {viewer}: {e}",
                    campaign_id=campaign_id,
                ),
            )

        return CampaignView(
            campaign_id=campaign_id,
            campaign=campaign,
            viewer=viewer,
            contribution=contribution,
            eligibility=evaluate(campaign, viewer, contribution),
        )
