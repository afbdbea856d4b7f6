"""Helius DAS balance index.

``getAssetsByOwner`` returns every fungible holding and the native balance in
a few paged calls, instead of one ``getTokenAccountsByOwner`` per token
program plus ``getBalance``.
"""

import logging
from typing import Optional

import httpx

from tokensweep.chain.base import (
    NATIVE_ASSET_KEY,
    BalanceIndex,
    IndexedAmount,
    describe_http_error,
)
from tokensweep.exceptions import RpcError
from tokensweep.models import TOKEN_PROGRAM_ID

logger = logging.getLogger(__name__)

HELIUS_MAINNET = "https://mainnet.helius-rpc.com"

FUNGIBLE_INTERFACES = ("FungibleToken", "FungibleAsset")


class HeliusBalanceIndex(BalanceIndex):
    """Balance index backed by the Helius DAS API."""

    def __init__(
        self,
        api_key: str,
        page_limit: int = 1000,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self.page_limit = page_limit
        self.timeout = timeout
        self.base_url = f"{HELIUS_MAINNET}/?api-key={api_key}"
        self._transport = transport

    async def _get_page(self, client: httpx.AsyncClient, account: str, page: int) -> dict:
        response = await client.post(
            self.base_url,
            json={
                "jsonrpc": "2.0",
                "id": "tokensweep",
                "method": "getAssetsByOwner",
                "params": {
                    "ownerAddress": account,
                    "page": page,
                    "limit": self.page_limit,
                    "displayOptions": {
                        "showFungible": True,
                        "showNativeBalance": True,
                    },
                },
            },
        )
        response.raise_for_status()
        data = response.json()
        if data.get("error"):
            raise RpcError("getAssetsByOwner", str(data["error"].get("message", data["error"])))
        return data.get("result") or {}

    async def get_indexed_balances(self, account: str) -> dict[str, IndexedAmount]:
        balances: dict[str, IndexedAmount] = {}
        page = 1

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                while True:
                    result = await self._get_page(client, account, page)

                    native = result.get("nativeBalance")
                    if native is not None and NATIVE_ASSET_KEY not in balances:
                        balances[NATIVE_ASSET_KEY] = IndexedAmount(
                            raw_amount=int(native.get("lamports", 0)),
                            decimals=9,
                        )

                    items = result.get("items", []) or []
                    for item in items:
                        if item.get("interface") not in FUNGIBLE_INTERFACES:
                            continue
                        token_info = item.get("token_info") or {}
                        if "balance" not in token_info:
                            continue
                        balances[item["id"]] = IndexedAmount(
                            raw_amount=int(token_info["balance"]),
                            decimals=int(token_info.get("decimals", 0)),
                            account=token_info.get("associated_token_address"),
                            token_program=token_info.get("token_program") or TOKEN_PROGRAM_ID,
                        )

                    if len(items) < self.page_limit:
                        break
                    page += 1

        except httpx.HTTPError as e:
            raise RpcError("getAssetsByOwner", describe_http_error(e)) from e

        if NATIVE_ASSET_KEY not in balances:
            raise RpcError("getAssetsByOwner", "Native balance missing from index response")

        logger.debug(f"Helius index returned {len(balances) - 1} fungible holdings for {account}")
        return balances
