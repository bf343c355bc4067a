"""
TON ledger client (toncenter HTTP API v2).

Read-only: fetches the most recent transactions of the receiving wallet so
the payment verifier can look for a transfer carrying the payment reference
in its comment.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from lessonbot.config import config
from lessonbot.utils.logging import payment_logger as logger


class LedgerUnavailable(Exception):
    """The ledger API could not be reached or returned an error."""
    pass


@dataclass
class LedgerTransaction:
    """An inbound transaction. `memo` is the text comment, empty when absent."""
    hash: str
    memo: str
    amount: int
    utime: int
    source: str = ""

    @property
    def amount_ton(self) -> float:
        return self.amount / 1_000_000_000

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "LedgerTransaction":
        in_msg = raw.get("in_msg") or {}
        transaction_id = raw.get("transaction_id") or {}
        try:
            amount = int(in_msg.get("value") or 0)
        except (TypeError, ValueError):
            amount = 0
        return cls(
            hash=str(transaction_id.get("hash", "")),
            memo=in_msg.get("message") or "",
            amount=amount,
            utime=int(raw.get("utime") or 0),
            source=in_msg.get("source") or "",
        )


class TonLedgerClient:
    """Async toncenter client."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        headers = {}
        api_key = api_key or config.TON_API_KEY
        if api_key:
            headers["X-API-Key"] = api_key

        self.client = client or httpx.AsyncClient(
            base_url=(api_url or config.TON_API_URL).rstrip("/"),
            headers=headers,
            timeout=timeout or config.LEDGER_TIMEOUT_SECONDS,
        )

    async def get_transactions(self, address: str, limit: int = 20) -> List[LedgerTransaction]:
        """
        Newest-first transactions for an address.

        Raises:
            LedgerUnavailable: network error, non-200 status or ok=false body
        """
        try:
            response = await self.client.get(
                "/getTransactions",
                params={"address": address, "limit": limit},
            )
        except httpx.HTTPError as e:
            logger.warning("Ledger request failed", error=str(e))
            raise LedgerUnavailable(str(e)) from e

        if response.status_code != 200:
            logger.warning("Ledger returned error status", status_code=response.status_code)
            raise LedgerUnavailable(f"HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise LedgerUnavailable("Ledger returned non-JSON body") from e

        if not isinstance(data, dict):
            raise LedgerUnavailable("Ledger returned unexpected body")
        if not data.get("ok"):
            raise LedgerUnavailable(data.get("error") or "Ledger returned ok=false")

        return [LedgerTransaction.from_api(tx) for tx in data.get("result") or []]

    async def close(self) -> None:
        await self.client.aclose()
