"""
Eligibility engine.

Decides which of fund/withdraw/refund/complete a viewer may perform on a
campaign. Pure function of normalized ledger state; nothing is remembered
between calls, so the answer can always be re-derived from a fresh read.
"""

from dataclasses import asdict, dataclass

from fundchain.campaigns.models import ACTION_PHASES, Campaign, CampaignAction


@dataclass(frozen=True)
class Eligibility:
    """Gate flags for the four mutating actions."""

    can_fund: bool = False
    can_withdraw: bool = False
    can_refund: bool = False
    can_complete: bool = False

    @classmethod
    def denied(cls) -> "Eligibility":
        """All flags false; used whenever the underlying read failed."""
        return cls()

    def allows(self, action: CampaignAction) -> bool:
        return {
            CampaignAction.FUND: self.can_fund,
            CampaignAction.WITHDRAW: self.can_withdraw,
            CampaignAction.REFUND: self.can_refund,
            CampaignAction.COMPLETE: self.can_complete,
        }[action]

    @property
    def available_actions(self) -> list[CampaignAction]:
        return [action for action in CampaignAction if self.allows(action)]

    def to_dict(self) -> dict[str, bool]:
        return asdict(self)


def evaluate(
    campaign: Campaign,
    viewer: str | None,
    viewer_contribution: int,
) -> Eligibility:
    """Evaluate the gates for ``viewer`` on ``campaign``.

    Args:
        campaign: Normalized campaign.
        viewer: Viewer's address, or None without a wallet session.
        viewer_contribution: Viewer's recorded contribution in minor units.
    """
    in_phase = {action: campaign.phase == phase for action, phase in ACTION_PHASES.items()}
    is_creator = campaign.is_created_by(viewer)

    # Withdraw and complete share one gate; ordering between them is not enforced.
    close_out = is_creator and in_phase[CampaignAction.WITHDRAW]

    return Eligibility(
        can_fund=in_phase[CampaignAction.FUND],
        can_withdraw=close_out,
        can_refund=viewer_contribution > 0 and in_phase[CampaignAction.REFUND],
        can_complete=close_out,
    )
