from __future__ import annotations

import logging
from typing import Any

import httpx

from solcases_backend.wallets.base import WalletInfo, WalletProvider, WalletProviderError


logger = logging.getLogger(__name__)


class PrivyWalletProvider(WalletProvider):
    """Creates embedded Solana wallets through the Privy REST API.

    Balances are read from a Solana JSON-RPC node, not from Privy.
    """

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        api_base: str = "https://api.privy.io/v1",
        rpc_url: str = "https://api.mainnet-beta.solana.com",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._rpc = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._client = httpx.AsyncClient(
            base_url=api_base,
            auth=(app_id, app_secret),
            headers={"privy-app-id": app_id},
            timeout=timeout,
            transport=transport,
        )

    async def create_wallet(self, handle: str) -> WalletInfo:
        user = await self._call(
            "POST",
            "/users",
            json={
                "create_solana_wallet": True,
                "linked_accounts": [{"type": "email", "address": f"{handle}@solcases.fun"}],
            },
        )
        wallet = self._solana_account(user)
        if wallet is None:
            raise WalletProviderError("No Solana wallet found in user response")
        logger.info("Created Privy user %s with wallet %s", user["id"], wallet["address"])
        return WalletInfo(user_id=user["id"], address=wallet["address"])

    async def get_balance(self, address: str) -> int:
        try:
            response = await self._rpc.post(
                self._rpc_url,
                json={"jsonrpc": "2.0", "id": 1, "method": "getBalance", "params": [address]},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise WalletProviderError(f"Solana RPC request failed: {exc}") from exc

        body = response.json()
        if "result" not in body:
            raise WalletProviderError(f"Solana RPC error: {body.get('error')}")
        return int(body["result"]["value"])

    async def aclose(self) -> None:
        await self._client.aclose()
        await self._rpc.aclose()

    async def _call(self, method: str, path: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            raise WalletProviderError(f"Privy request failed: {exc}") from exc
        if response.is_error:
            logger.error("Privy API error %s: %s", response.status_code, response.text)
            raise WalletProviderError(f"Privy API error: {response.status_code}")
        return response.json()

    @staticmethod
    def _solana_account(user: dict[str, Any]) -> dict[str, Any] | None:
        for account in user.get("linked_accounts", []):
            if account.get("type") == "wallet" and account.get("chain_type") == "solana":
                return account
        return None
