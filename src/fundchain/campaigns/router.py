"""
Campaign API router.

Listing, detail, creation and the four gated actions. The viewer is
identified by the ``X-Wallet-Address`` header; requests without it are
treated as having no wallet session.
"""

from typing import Annotated, NoReturn

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from fundchain.campaigns.models import CampaignAction
from fundchain.campaigns.orchestrator import ActionOrchestrator, ActionResult
from fundchain.campaigns.schemas import (
    ActionResponse,
    CampaignCreate,
    CampaignDetailResponse,
    CampaignListResponse,
    CampaignResponse,
    FundRequest,
)
from fundchain.campaigns.service import CampaignService
from fundchain.shared.exceptions import ActionFailure, FailureKind, ReadFailure
from fundchain.shared.logging import get_logger
from fundchain.wallet.session import WalletSession

logger = get_logger(__name__)

router = APIRouter(prefix="/api/campaigns", tags=["campaigns"])

FAILURE_STATUS: dict[FailureKind, int] = {
    FailureKind.PRECONDITION: status.HTTP_409_CONFLICT,
    FailureKind.SUBMISSION: status.HTTP_502_BAD_GATEWAY,
    FailureKind.CONFIRMATION: status.HTTP_502_BAD_GATEWAY,
    FailureKind.READ: status.HTTP_503_SERVICE_UNAVAILABLE,
}

FAILURE_RESPONSES = {
    404: {"description": "Campaign not found"},
    409: {"description": "Action not permitted or another action is pending"},
    502: {"description": "Submission rejected or settlement failed"},
    503: {"description": "Ledger could not be read"},
}


def get_campaign_service(request: Request) -> CampaignService:
    """Dependency for the campaign read service."""
    return request.app.state.campaign_service


def get_orchestrator(request: Request) -> ActionOrchestrator:
    """Dependency for the action orchestrator."""
    return request.app.state.orchestrator


def get_wallet_session(
    x_wallet_address: Annotated[str | None, Header()] = None,
) -> WalletSession:
    """Build the viewer's wallet session from the request header."""
    if not x_wallet_address:
        return WalletSession.anonymous()
    return WalletSession(account=x_wallet_address.strip())


def _raise_failure(failure: ActionFailure) -> NoReturn:
    raise HTTPException(
        status_code=FAILURE_STATUS[failure.kind],
        detail=failure.to_dict(),
    )


def _respond(result: ActionResult) -> ActionResponse:
    if result.failure is not None:
        _raise_failure(result.failure)
    return ActionResponse.from_result(result)


@router.get("", response_model=CampaignListResponse, responses={503: FAILURE_RESPONSES[503]})
async def list_campaigns(
    service: Annotated[CampaignService, Depends(get_campaign_service)],
) -> CampaignListResponse:
    """List every campaign on the ledger, normalized as of now."""
    try:
        campaigns = await service.list_campaigns()
    except ReadFailure as e:
        _raise_failure(e)

    return CampaignListResponse(
        campaigns=[CampaignResponse.from_campaign(c) for c in campaigns],
        count=len(campaigns),
    )


@router.get(
    "/{campaign_id}",
    response_model=CampaignDetailResponse,
    responses={404: FAILURE_RESPONSES[404], 503: FAILURE_RESPONSES[503]},
)
async def get_campaign(
    campaign_id: int,
    service: Annotated[CampaignService, Depends(get_campaign_service)],
    session: Annotated[WalletSession, Depends(get_wallet_session)],
) -> CampaignDetailResponse:
    """Campaign detail with the viewer's contribution and permitted actions.

    If only the contribution read fails, the campaign is still returned with
    ``degraded`` set and every action denied.
    """
    view = await service.get_view(campaign_id, session)
    if view.campaign is None and view.read_error is not None:
        _raise_failure(view.read_error)
    return CampaignDetailResponse.from_view(view)


@router.post(
    "",
    response_model=ActionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={k: v for k, v in FAILURE_RESPONSES.items() if k != 404},
)
async def create_campaign(
    body: CampaignCreate,
    orchestrator: Annotated[ActionOrchestrator, Depends(get_orchestrator)],
    session: Annotated[WalletSession, Depends(get_wallet_session)],
) -> ActionResponse:
    """Create a campaign and wait until the ledger has settled it."""
    logger.info(
        "Campaign creation requested",
        extra={"sender": session.account, "deadline_days": body.deadline_days},
    )
    result = await orchestrator.create(
        session,
        name=body.name,
        description=body.description,
        target=body.target_wei,
        deadline_days=body.deadline_days,
    )
    return _respond(result)


@router.post("/{campaign_id}/fund", response_model=ActionResponse, responses=FAILURE_RESPONSES)
async def fund_campaign(
    campaign_id: int,
    body: FundRequest,
    orchestrator: Annotated[ActionOrchestrator, Depends(get_orchestrator)],
    session: Annotated[WalletSession, Depends(get_wallet_session)],
) -> ActionResponse:
    """Contribute ``amount`` to an open campaign."""
    result = await orchestrator.perform(
        CampaignAction.FUND, campaign_id, session, amount=body.amount_wei
    )
    return _respond(result)


@router.post("/{campaign_id}/withdraw", response_model=ActionResponse, responses=FAILURE_RESPONSES)
async def withdraw_funds(
    campaign_id: int,
    orchestrator: Annotated[ActionOrchestrator, Depends(get_orchestrator)],
    session: Annotated[WalletSession, Depends(get_wallet_session)],
) -> ActionResponse:
    result = await orchestrator.perform(CampaignAction.WITHDRAW, campaign_id, session)
    return _respond(result)


@router.post("/{campaign_id}/refund", response_model=ActionResponse, responses=FAILURE_RESPONSES)
async def refund(
    campaign_id: int,
    orchestrator: Annotated[ActionOrchestrator, Depends(get_orchestrator)],
    session: Annotated[WalletSession, Depends(get_wallet_session)],
) -> ActionResponse:
    result = await orchestrator.perform(CampaignAction.REFUND, campaign_id, session)
    return _respond(result)


@router.post("/{campaign_id}/complete", response_model=ActionResponse, responses=FAILURE_RESPONSES)
async def complete_campaign(
    campaign_id: int,
    orchestrator: Annotated[ActionOrchestrator, Depends(get_orchestrator)],
    session: Annotated[WalletSession, Depends(get_wallet_session)],
) -> ActionResponse:
    result = await orchestrator.perform(CampaignAction.COMPLETE, campaign_id, session)
    return _respond(result)
