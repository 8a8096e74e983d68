"""wallet-balance — native balance of an address above/below a threshold."""

from __future__ import annotations

from typing import Any, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field

from x402_sentinel.evaluators.base import CheckResult, ConditionEvaluator
from x402_sentinel.exceptions import EvaluationError

WEI_PER_ETHER = 10**18

DEFAULT_RPC_URLS = {
    "base": "https://mainnet.base.org",
    "ethereum": "https://eth.llamarpc.com",
    "optimism": "https://mainnet.optimism.io",
    "arbitrum": "https://arb1.arbitrum.io/rpc",
}


class WalletBalanceConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    address: str = Field(
        pattern=r"^0x[a-fA-F0-9]{40}$",
        description="Wallet address to watch",
    )
    threshold: float = Field(ge=0, description="Balance threshold in ETH")
    direction: Literal["above", "below"] = Field(
        description="Alert when balance goes above or below threshold",
    )
    chain: Literal["base", "ethereum", "optimism", "arbitrum"] = Field(
        default="base",
        description="Which chain to monitor",
    )


class WalletBalanceEvaluator(ConditionEvaluator):
    EXECUTOR_ID = "wallet-balance"
    NAME = "Wallet Balance Alert"
    DESCRIPTION = "Get notified when a wallet balance goes above or below a threshold"
    CATEGORY = "wallet"
    CONFIG_MODEL = WalletBalanceConfig

    def __init__(
        self,
        rpc_urls: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        super().__init__(client=client, timeout=timeout)
        self._rpc_urls = dict(DEFAULT_RPC_URLS)
        if rpc_urls:
            self._rpc_urls.update(rpc_urls)

    async def get_balance(self, chain: str, address: str) -> float:
        """Return the balance of *address* on *chain* in ether."""
        url = self._rpc_urls.get(chain)
        if url is None:
            raise EvaluationError(
                f"Unsupported chain: {chain}", executor_id=self.EXECUTOR_ID, transient=False
            )
        body = await self._request(
            "POST",
            url,
            json={
                "jsonrpc": "2.0",
                "id": 1,
                "method": "eth_getBalance",
                "params": [address, "latest"],
            },
        )
        if not isinstance(body, dict) or "error" in body or "result" not in body:
            error = body.get("error") if isinstance(body, dict) else body
            raise EvaluationError(
                f"eth_getBalance failed on {chain}: {error}",
                executor_id=self.EXECUTOR_ID,
                transient=True,
            )
        try:
            wei = int(body["result"], 16)
        except (TypeError, ValueError) as exc:
            raise EvaluationError(
                f"Malformed balance from {chain}: {body['result']!r}",
                executor_id=self.EXECUTOR_ID,
                transient=False,
            ) from exc
        return wei / WEI_PER_ETHER

    async def check(self, config: dict[str, Any]) -> CheckResult:
        cfg: WalletBalanceConfig = self.parse_config(config)
        balance = await self.get_balance(cfg.chain, cfg.address)

        if cfg.direction == "above":
            triggered = balance > cfg.threshold
        else:
            triggered = balance < cfg.threshold

        return CheckResult(
            triggered=triggered,
            data={
                "address": cfg.address,
                "chain": cfg.chain,
                "balance": balance,
                "threshold": cfg.threshold,
                "direction": cfg.direction,
                "condition": (
                    f"{balance:.6f} ETH is {cfg.direction} {cfg.threshold:g} ETH"
                ),
            },
        )
