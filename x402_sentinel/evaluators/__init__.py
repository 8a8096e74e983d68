"""Condition evaluators — pluggable checks behind watcher types.

Built-in evaluators:
    wallet-balance  — native balance via JSON-RPC eth_getBalance
    token-price     — spot price via the CoinGecko simple price API
"""

from x402_sentinel.evaluators.base import CheckResult, ConditionEvaluator, ValidationResult
from x402_sentinel.evaluators.registry import EvaluatorRegistry, build_default_registry
from x402_sentinel.evaluators.token_price import TokenPriceEvaluator
from x402_sentinel.evaluators.wallet_balance import WalletBalanceEvaluator

__all__ = [
    "CheckResult",
    "ConditionEvaluator",
    "ValidationResult",
    "EvaluatorRegistry",
    "build_default_registry",
    "TokenPriceEvaluator",
    "WalletBalanceEvaluator",
]
