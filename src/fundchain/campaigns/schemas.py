"""
Pydantic schemas for the campaign API.
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from fundchain.campaigns.amounts import to_minor_units
from fundchain.campaigns.eligibility import Eligibility
from fundchain.campaigns.models import Campaign, CampaignPhase
from fundchain.campaigns.orchestrator import ActionResult
from fundchain.campaigns.service import CampaignView
from fundchain.shared.exceptions import ValidationError


def _positive_amount(value: str) -> str:
    try:
        minor = to_minor_units(value)
    except ValidationError as e:
        raise ValueError(e.message) from e
    if minor <= 0:
        raise ValueError("Amount must be greater than zero")
    return value.strip()


class CampaignCreate(BaseModel):
    """Request body for creating a campaign."""

    name: str = Field(..., min_length=1, max_length=255, description="Campaign name")
    description: str = Field(..., min_length=1, max_length=5000, description="Campaign description")
    target: str = Field(..., description="Funding target as decimal text, e.g. '10.5'")
    deadline_days: int = Field(..., ge=1, le=3650, description="Campaign duration in days")

    @field_validator("name", "description")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    @field_validator("target")
    @classmethod
    def validate_target(cls, v: str) -> str:
        return _positive_amount(v)

    @property
    def target_wei(self) -> int:
        return to_minor_units(self.target)


class FundRequest(BaseModel):
    """Request body for funding a campaign."""

    amount: str = Field(..., description="Contribution as decimal text, e.g. '0.25'")

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: str) -> str:
        return _positive_amount(v)

    @property
    def amount_wei(self) -> int:
        return to_minor_units(self.amount)


class EligibilityResponse(BaseModel):
    can_fund: bool
    can_withdraw: bool
    can_refund: bool
    can_complete: bool
    available_actions: list[str]

    @classmethod
    def from_eligibility(cls, eligibility: Eligibility) -> "EligibilityResponse":
        return cls(
            **eligibility.to_dict(),
            available_actions=[a.value for a in eligibility.available_actions],
        )


class CampaignResponse(BaseModel):
    """Normalized campaign as returned by the API."""

    id: int
    creator: str
    creator_short: str
    name: str
    description: str
    target: str
    target_wei: str
    deadline: int
    deadline_at: datetime
    amount_raised: str
    amount_raised_wei: str
    amount_withdrawn: str
    amount_refunded: str
    completed: bool
    is_expired: bool
    progress: str = Field(..., description="Percentage of target raised, two decimals")
    time_left: str
    phase: CampaignPhase
    status_label: str

    @classmethod
    def from_campaign(cls, campaign: Campaign) -> "CampaignResponse":
        return cls(
            id=campaign.id,
            creator=campaign.creator,
            creator_short=campaign.creator_short,
            name=campaign.name,
            description=campaign.description,
            target=campaign.target_display,
            target_wei=str(campaign.target),
            deadline=campaign.deadline,
            deadline_at=campaign.deadline_at,
            amount_raised=campaign.amount_raised_display,
            amount_raised_wei=str(campaign.amount_raised),
            amount_withdrawn=campaign.amount_withdrawn_display,
            amount_refunded=campaign.amount_refunded_display,
            completed=campaign.completed,
            is_expired=campaign.is_expired,
            progress=campaign.progress_display,
            time_left=campaign.time_left,
            phase=campaign.phase,
            status_label=campaign.status_label,
        )


class CampaignListResponse(BaseModel):
    campaigns: list[CampaignResponse]
    count: int


class FailureResponse(BaseModel):
    kind: str
    code: str
    message: str
    campaign_id: int | None = None
    action: str | None = None
    tx_hash: str | None = None


class CampaignDetailResponse(BaseModel):
    """Campaign plus what the viewer may do with it."""

    campaign_id: int
    campaign: CampaignResponse | None
    viewer: str | None
    is_creator: bool
    contribution: str
    contribution_wei: str
    eligibility: EligibilityResponse
    degraded: bool = False
    error: FailureResponse | None = None

    @classmethod
    def from_view(cls, view: CampaignView) -> "CampaignDetailResponse":
        campaign = view.campaign
        return cls(
            campaign_id=view.campaign_id,
            campaign=CampaignResponse.from_campaign(campaign) if campaign is not None else None,
            viewer=view.viewer,
            is_creator=campaign is not None and campaign.is_created_by(view.viewer),
            contribution=view.contribution_display,
            contribution_wei=str(view.contribution),
            eligibility=EligibilityResponse.from_eligibility(view.eligibility),
            degraded=view.degraded,
            error=FailureResponse(**view.read_error.to_dict()) if view.read_error else None,
        )


class ActionResponse(BaseModel):
    """Result of a settled action."""

    action: str
    campaign_id: int | None
    ok: bool
    tx_hash: str | None = None
    block_number: int | None = None
    view: CampaignDetailResponse | None = None

    @classmethod
    def from_result(cls, result: ActionResult) -> "ActionResponse":
        return cls(
            action=result.action,
            campaign_id=result.campaign_id,
            ok=result.ok,
            tx_hash=result.tx_hash,
            block_number=result.receipt.block_number if result.receipt else None,
            view=CampaignDetailResponse.from_view(result.view) if result.view else None,
        )
