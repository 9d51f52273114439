"""
Pytest configuration and shared fixtures.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from fundchain.campaigns.orchestrator import ActionOrchestrator
from fundchain.campaigns.service import CampaignService
from fundchain.ledger.mock_adapter import InMemoryLedger
from fundchain.main import create_app
from fundchain.wallet.session import WalletSession

NOW = 1_700_000_000
DAY = 86_400
ETH = 10**18

CREATOR = "0x" + "c" * 40
BACKER = "0x" + "b" * 40
STRANGER = "0x" + "5" * 40


class FakeClock:
    """Settable Unix-time source shared by the ledger and the service."""

    def __init__(self, now: int = NOW) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ledger(clock: FakeClock) -> InMemoryLedger:
    return InMemoryLedger(clock=clock)


@pytest.fixture
def service(ledger: InMemoryLedger, clock: FakeClock) -> CampaignService:
    return CampaignService(ledger, clock=clock)


@pytest.fixture
def orchestrator(ledger: InMemoryLedger, service: CampaignService) -> ActionOrchestrator:
    return ActionOrchestrator(ledger, service)


@pytest.fixture
def creator_session() -> WalletSession:
    return WalletSession(account=CREATOR)


@pytest.fixture
def backer_session() -> WalletSession:
    return WalletSession(account=BACKER)


@pytest.fixture
def stranger_session() -> WalletSession:
    return WalletSession(account=STRANGER)


@pytest.fixture
def open_campaign(ledger: InMemoryLedger) -> int:
    """Open for five more days, 4 of 10 ETH raised."""
    return ledger.add_campaign(
        creator=CREATOR,
        name="Solar Roof",
        description="Panels for the community hall",
        target=10 * ETH,
        deadline=NOW + 5 * DAY,
        amount_raised=4 * ETH,
        contributions={BACKER: 4 * ETH},
    )


@pytest.fixture
def successful_campaign(ledger: InMemoryLedger) -> int:
    """Expired with the target exactly reached."""
    return ledger.add_campaign(
        creator=CREATOR,
        name="Library",
        target=10 * ETH,
        deadline=NOW - DAY,
        amount_raised=10 * ETH,
        contributions={BACKER: 10 * ETH},
    )


@pytest.fixture
def failed_campaign(ledger: InMemoryLedger) -> int:
    """Expired at 40% of target."""
    return ledger.add_campaign(
        creator=CREATOR,
        name="Boat",
        target=10 * ETH,
        deadline=NOW - DAY,
        amount_raised=4 * ETH,
        contributions={BACKER: 4 * ETH},
    )


@pytest_asyncio.fixture
async def api_client(ledger: InMemoryLedger, clock: FakeClock) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(gateway=ledger, clock=clock)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
