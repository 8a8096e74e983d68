"""token-price — CoinGecko spot price above/below a threshold."""

from __future__ import annotations

from typing import Any, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field

from x402_sentinel.evaluators.base import CheckResult, ConditionEvaluator
from x402_sentinel.exceptions import EvaluationError

DEFAULT_API_URL = "https://api.coingecko.com/api/v3"

# Common symbol → CoinGecko id.  Anything else is passed through as an id.
TOKEN_IDS = {
    "eth": "ethereum",
    "btc": "bitcoin",
    "usdc": "usd-coin",
    "usdt": "tether",
    "dai": "dai",
    "weth": "weth",
    "matic": "matic-network",
    "sol": "solana",
    "avax": "avalanche-2",
    "op": "optimism",
    "arb": "arbitrum",
    "link": "chainlink",
    "uni": "uniswap",
    "aave": "aave",
}


def resolve_coin_id(token: str) -> str:
    lowered = token.strip().lower()
    return TOKEN_IDS.get(lowered, lowered)


class TokenPriceConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    token: str = Field(
        min_length=1,
        description="Token symbol (e.g., ETH, BTC) or CoinGecko ID",
    )
    threshold: float = Field(ge=0, description="Price threshold in the quote currency")
    direction: Literal["above", "below"] = Field(
        description="Alert when price goes above or below threshold",
    )
    currency: str = Field(default="usd", min_length=1, description="Quote currency")


class TokenPriceEvaluator(ConditionEvaluator):
    """Uses the CoinGecko free API (rate limited to roughly 10-30 calls/minute)."""

    EXECUTOR_ID = "token-price"
    NAME = "Token Price Alert"
    DESCRIPTION = "Get notified when a token price crosses a threshold"
    CATEGORY = "price"
    CONFIG_MODEL = TokenPriceConfig

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        super().__init__(client=client, timeout=timeout)
        self._api_url = api_url.rstrip("/")

    async def get_price(self, coin_id: str, currency: str) -> float:
        body = await self._request(
            "GET",
            f"{self._api_url}/simple/price",
            params={"ids": coin_id, "vs_currencies": currency},
        )
        price = body.get(coin_id, {}).get(currency) if isinstance(body, dict) else None
        if price is None:
            raise EvaluationError(
                f"Price not found for {coin_id} in {currency}",
                executor_id=self.EXECUTOR_ID,
                transient=False,
            )
        return float(price)

    async def check(self, config: dict[str, Any]) -> CheckResult:
        cfg: TokenPriceConfig = self.parse_config(config)
        coin_id = resolve_coin_id(cfg.token)
        currency = cfg.currency.lower()
        price = await self.get_price(coin_id, currency)

        if cfg.direction == "above":
            triggered = price > cfg.threshold
        else:
            triggered = price < cfg.threshold

        symbol = cfg.token.upper()
        return CheckResult(
            triggered=triggered,
            data={
                "token": symbol,
                "coin_id": coin_id,
                "price": price,
                "currency": currency.upper(),
                "threshold": cfg.threshold,
                "direction": cfg.direction,
                "condition": (
                    f"{symbol} at {price:,} {currency.upper()} is {cfg.direction} "
                    f"{cfg.threshold:,} {currency.upper()}"
                ),
            },
        )
