"""Evaluator registry — executor id → condition evaluator.

The registry is an explicit object built at startup and injected into the
lifecycle manager, the trigger engine and the API.  There is no module
level instance; tests build their own with fake evaluators.

Any object with callable ``check`` and ``describe`` attributes can be
registered.  ``validate`` is optional.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from x402_sentinel.exceptions import InvalidEvaluatorError
from x402_sentinel.logging import get_logger

if TYPE_CHECKING:
    from x402_sentinel.config import Settings

log = get_logger(__name__)

_REQUIRED = ("check", "describe")


class EvaluatorRegistry:
    """Runtime registry for condition evaluators.

    Usage::

        registry = EvaluatorRegistry()
        registry.register("wallet-balance", WalletBalanceEvaluator())

        evaluator = registry.resolve("wallet-balance")
        result = await evaluator.check({"address": "0x...", "threshold": 1, "direction": "below"})
    """

    def __init__(self) -> None:
        self._evaluators: dict[str, Any] = {}

    def register(self, executor_id: str, evaluator: Any) -> None:
        """Register *evaluator* under *executor_id*, replacing any previous one.

        Raises:
            InvalidEvaluatorError: ``check`` or ``describe`` is missing or not callable.
        """
        if not executor_id:
            raise ValueError("executor_id must be a non-empty string.")
        missing = [name for name in _REQUIRED if not callable(getattr(evaluator, name, None))]
        if missing:
            raise InvalidEvaluatorError(executor_id=executor_id, missing=missing)

        if executor_id in self._evaluators:
            log.warning("evaluator_replaced", executor_id=executor_id)
        self._evaluators[executor_id] = evaluator
        log.debug("evaluator_registered", executor_id=executor_id)

    def resolve(self, executor_id: str | None) -> Any | None:
        """Return the evaluator for *executor_id*, or None if unregistered."""
        if executor_id is None:
            return None
        return self._evaluators.get(executor_id)

    def list(self) -> list[str]:
        """Return registered executor ids in registration order."""
        return list(self._evaluators)

    def describe_all(self) -> list[dict[str, Any]]:
        descriptions = []
        for executor_id, evaluator in self._evaluators.items():
            try:
                info = dict(evaluator.describe())
            except Exception as exc:
                log.warning("evaluator_describe_failed", executor_id=executor_id, error=str(exc))
                continue
            info.setdefault("id", executor_id)
            descriptions.append(info)
        return descriptions

    def unregister(self, executor_id: str) -> None:
        """Remove an evaluator (used in tests)."""
        self._evaluators.pop(executor_id, None)

    def __contains__(self, executor_id: object) -> bool:
        return executor_id in self._evaluators

    def __len__(self) -> int:
        return len(self._evaluators)


def build_default_registry(settings: "Settings | None" = None) -> EvaluatorRegistry:
    """Return a registry with the built-in evaluators configured from *settings*."""
    from x402_sentinel.evaluators.token_price import TokenPriceEvaluator
    from x402_sentinel.evaluators.wallet_balance import WalletBalanceEvaluator

    rpc_urls = None
    api_url = None
    timeout = 10.0
    if settings is not None:
        rpc_urls = settings.evaluators.rpc_urls
        api_url = settings.evaluators.coingecko_api_url
        timeout = settings.evaluators.request_timeout_seconds

    registry = EvaluatorRegistry()
    registry.register(
        WalletBalanceEvaluator.EXECUTOR_ID,
        WalletBalanceEvaluator(rpc_urls=rpc_urls, timeout=timeout),
    )
    if api_url:
        token_price = TokenPriceEvaluator(api_url=api_url, timeout=timeout)
    else:
        token_price = TokenPriceEvaluator(timeout=timeout)
    registry.register(TokenPriceEvaluator.EXECUTOR_ID, token_price)
    return registry
