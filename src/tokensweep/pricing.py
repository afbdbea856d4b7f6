"""Jupiter price lookup used to order tokens by estimated USD value.

Prices only decide which tokens move first; a failed lookup degrades to scan
order and never blocks a sweep.
API docs: https://dev.jup.ag/docs/price-api
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

import httpx

from tokensweep.models import TokenBalance
from tokensweep.sweep.planner import PriorityKey

logger = logging.getLogger(__name__)

JUPITER_PRICE_API = "https://lite-api.jup.ag/price/v2"

# Jupiter accepts at most 100 ids per request
MAX_IDS_PER_REQUEST = 100


class JupiterPriceSource:
    """USD prices by mint from the Jupiter Price API."""

    def __init__(
        self,
        base_url: str = JUPITER_PRICE_API,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _get_headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    async def get_prices(self, mints: Iterable[str]) -> dict[str, Decimal]:
        """Get USD prices for mints. Unknown mints are absent from the result."""
        unique = list(dict.fromkeys(mints))
        prices: dict[str, Decimal] = {}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                for start in range(0, len(unique), MAX_IDS_PER_REQUEST):
                    chunk = unique[start:start + MAX_IDS_PER_REQUEST]
                    response = await client.get(
                        self.base_url,
                        headers=self._get_headers(),
                        params={"ids": ",".join(chunk)},
                    )

                    if response.status_code != 200:
                        logger.warning(f"Jupiter price API error: {response.status_code} - {response.text}")
                        continue

                    data = response.json().get("data") or {}
                    for mint, entry in data.items():
                        price = (entry or {}).get("price")
                        if price is None:
                            continue
                        try:
                            prices[mint] = Decimal(str(price))
                        except InvalidOperation:
                            logger.debug(f"Bad price for {mint}: {price!r}")

        except httpx.HTTPError as e:
            logger.error(f"Jupiter price error: {e}")

        return prices


def value_priority(prices: dict[str, Decimal]) -> PriorityKey:
    """Priority key ranking tokens by estimated USD value (unknown price = 0)."""

    def key(token: TokenBalance) -> Decimal:
        return prices.get(token.mint, Decimal("0")) * token.ui_amount

    return key
