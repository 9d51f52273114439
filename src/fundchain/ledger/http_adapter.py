"""
HTTP ledger gateway adapter.

Talks to a ledger relay that signs, broadcasts and reads contract calls on the
application's behalf:

- ``POST /calls``                 read-only contract call
- ``POST /transactions``          submit a write, returns ``tx_hash``
- ``GET  /transactions/{hash}``   settlement status (pending/confirmed/reverted)

uint256 values travel as decimal strings so no precision is lost in JSON.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import anyio
import httpx

from fundchain.ledger.config import LedgerConfig, get_ledger_config
from fundchain.ledger.interface import (
    LedgerGateway,
    LedgerGatewayError,
    LedgerMethod,
    LedgerReadError,
    RawCampaign,
    SettlementReceipt,
    SettlementRevertedError,
    SettlementStatus,
    SubmissionRejectedError,
    SubmittedAction,
)
from fundchain.shared.correlation import inject_correlation_headers
from fundchain.shared.logging import get_logger

logger = get_logger(__name__)


def _error_payload(response: httpx.Response) -> dict[str, Any]:
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError:
        return {"message": response.text}
    return data if isinstance(data, dict) else {"message": str(data)}


def _json_body(response: httpx.Response) -> dict[str, Any] | None:
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


class HttpLedgerGateway(LedgerGateway):
    """Ledger gateway backed by a JSON/HTTP relay."""

    def __init__(
        self,
        config: LedgerConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or get_ledger_config()
        self._http_client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.request_timeout_seconds),
            )
        return self._http_client

    async def close(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        return inject_correlation_headers(headers)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _call(
        self,
        method: LedgerMethod,
        *args: Any,
        campaign_id: int | None = None,
    ) -> Any:
        payload: dict[str, Any] = {
            "contract": self._config.contract_address,
            "method": method.value,
            "args": [str(a) if isinstance(a, int) else a for a in args],
        }
        if campaign_id is not None:
            payload["context"] = {"campaign_id": str(campaign_id)}
        try:
            response = await self._get_client().post(
                self._config.get_endpoint_url("/calls"),
                json=payload,
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            logger.warning(
                "Ledger read failed",
                extra={"method": method.value, "error": str(e)},
            )
            raise LedgerReadError(
                message=f"HTTP error: {e!s}",
                error_code="HTTP_ERROR",
            ) from e

        if response.status_code >= 400:
            error_data = _error_payload(response)
            logger.warning(
                "Ledger read rejected",
                extra={
                    "method": method.value,
                    "status_code": response.status_code,
                    "error": error_data,
                },
            )
            raise LedgerReadError(
                message=error_data.get("message", "Ledger read failed"),
                error_code=str(error_data.get("code", response.status_code)),
                provider_response=error_data,
            )

        data = _json_body(response)
        if data is None or "result" not in data:
            raise LedgerReadError(
                message=f"Malformed response for {method.value}",
                error_code="MALFORMED_RESPONSE",
                provider_response=data or {"body": response.text[:200]},
            )
        return data["result"]

    async def _call_uint(self, method: LedgerMethod, *args: Any, **kwargs: Any) -> int:
        result = await self._call(method, *args, **kwargs)
        try:
            return int(result)
        except (TypeError, ValueError) as e:
            raise LedgerReadError(
                message=f"Non-numeric result for {method.value}: {result!r}",
                error_code="MALFORMED_RESPONSE",
                provider_response={"result": result},
            ) from e

    async def campaign_count(self) -> int:
        return await self._call_uint(LedgerMethod.CAMPAIGN_COUNT)

    async def campaigns(self, campaign_id: int) -> RawCampaign:
        result = await self._call(LedgerMethod.CAMPAIGNS, campaign_id)
        try:
            return RawCampaign.from_tuple(campaign_id, result)
        except (TypeError, ValueError) as e:
            raise LedgerReadError(
                message=str(e),
                error_code="MALFORMED_RESPONSE",
                provider_response={"result": result},
            ) from e

    async def contributions(self, address: str, campaign_id: int) -> int:
        return await self._call_uint(LedgerMethod.CONTRIBUTIONS, address, campaign_id=campaign_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def _transact(
        self,
        method: LedgerMethod,
        sender: str,
        args: tuple[Any, ...],
        value: int = 0,
    ) -> SubmittedAction:
        payload = {
            "contract": self._config.contract_address,
            "method": method.value,
            "args": [str(a) if isinstance(a, int) else a for a in args],
            "from": sender,
            "value": str(value),
        }

        logger.info(
            "Submitting ledger action",
            extra={"method": method.value, "sender": sender, "value": str(value)},
        )

        try:
            response = await self._get_client().post(
                self._config.get_endpoint_url("/transactions"),
                json=payload,
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            logger.exception(
                "HTTP error during ledger submission",
                extra={"method": method.value},
            )
            raise SubmissionRejectedError(
                message=f"HTTP error: {e!s}",
                error_code="HTTP_ERROR",
            ) from e

        if response.status_code >= 400:
            error_data = _error_payload(response)
            logger.error(
                "Ledger submission rejected",
                extra={
                    "method": method.value,
                    "status_code": response.status_code,
                    "error": error_data,
                },
            )
            raise SubmissionRejectedError(
                message=error_data.get("message", "Submission rejected"),
                error_code=str(error_data.get("code", response.status_code)),
                provider_response=error_data,
            )

        data = _json_body(response)
        if data is None:
            raise SubmissionRejectedError(
                message=f"Malformed response for {method.value}",
                error_code="MALFORMED_RESPONSE",
                provider_response={"body": response.text[:200]},
            )
        tx_hash = data.get("tx_hash")
        if not tx_hash:
            raise SubmissionRejectedError(
                message="Relay accepted the action without a transaction hash",
                error_code="MISSING_TX_HASH",
                provider_response=data,
            )

        return SubmittedAction(
            method=method,
            tx_hash=tx_hash,
            sender=sender,
            args=args,
            value=value,
        )

    async def create_campaign(
        self,
        sender: str,
        name: str,
        description: str,
        target_wei: int,
        deadline_days: int,
    ) -> SubmittedAction:
        return await self._transact(
            LedgerMethod.CREATE_CAMPAIGN,
            sender,
            (name, description, target_wei, deadline_days),
        )

    async def fund_campaign(self, sender: str, campaign_id: int, value: int) -> SubmittedAction:
        return await self._transact(LedgerMethod.FUND_CAMPAIGN, sender, (campaign_id,), value=value)

    async def withdraw_funds(self, sender: str, campaign_id: int) -> SubmittedAction:
        return await self._transact(LedgerMethod.WITHDRAW_FUNDS, sender, (campaign_id,))

    async def refund(self, sender: str, campaign_id: int) -> SubmittedAction:
        return await self._transact(LedgerMethod.REFUND, sender, (campaign_id,))

    async def complete_campaign(self, sender: str, campaign_id: int) -> SubmittedAction:
        return await self._transact(LedgerMethod.COMPLETE_CAMPAIGN, sender, (campaign_id,))

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    async def _poll_status(self, tx_hash: str) -> dict[str, Any] | None:
        try:
            response = await self._get_client().get(
                self._config.get_endpoint_url(f"/transactions/{tx_hash}"),
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            logger.warning(
                "Settlement poll failed; will retry",
                extra={"tx_hash": tx_hash, "error": str(e)},
            )
            return None

        if response.status_code == 404:
            # Relay has not indexed the transaction yet.
            return None
        if response.status_code >= 400:
            logger.warning(
                "Settlement poll rejected; will retry",
                extra={"tx_hash": tx_hash, "status_code": response.status_code},
            )
            return None
        data = _json_body(response)
        if data is None:
            logger.warning(
                "Settlement poll returned a malformed body; will retry",
                extra={"tx_hash": tx_hash, "status_code": response.status_code},
            )
        return data

    async def wait_for_settlement(self, submitted: SubmittedAction) -> SettlementReceipt:
        interval = self._config.settlement_poll_interval_seconds

        while True:
            data = await self._poll_status(submitted.tx_hash) or {}
            status_str = str(data.get("status", SettlementStatus.PENDING.value)).lower()

            try:
                status = SettlementStatus(status_str)
            except ValueError:
                raise LedgerGatewayError(
                    message=f"Unknown settlement status: {status_str}",
                    error_code="UNKNOWN_STATUS",
                    provider_response=data,
                )

            if status == SettlementStatus.CONFIRMED:
                return SettlementReceipt(
                    tx_hash=submitted.tx_hash,
                    status=status,
                    settled_at=datetime.now(timezone.utc),
                    block_number=data.get("block_number"),
                    raw_response=data,
                )

            if status == SettlementStatus.REVERTED:
                logger.error(
                    "Ledger action reverted",
                    extra={
                        "tx_hash": submitted.tx_hash,
                        "method": submitted.method.value,
                        "reason": data.get("reason"),
                    },
                )
                raise SettlementRevertedError(
                    message=data.get("reason") or "Transaction reverted",
                    tx_hash=submitted.tx_hash,
                    error_code="REVERTED",
                    provider_response=data,
                )

            await anyio.sleep(interval)
