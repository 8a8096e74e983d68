"""x402-sentinel — Exception hierarchy.

All exceptions raised by the service inherit from SentinelError so that
callers can catch the full family with a single except clause when needed.

Hierarchy:
    SentinelError
    ├── MarketplaceError
    │   ├── OperatorNotFoundError
    │   ├── WatcherTypeNotFoundError
    │   ├── WatcherTypeUnavailableError
    │   ├── WatcherNotFoundError
    │   ├── InvalidWebhookError
    │   ├── InvalidConfigError
    │   ├── InvalidStatusTransitionError
    │   └── RecordIntegrityError
    ├── LedgerError
    │   └── ReceiptExistsError
    ├── EvaluatorError
    │   ├── InvalidEvaluatorError
    │   └── EvaluationError
    ├── DeliveryError
    └── EngineError
        └── CycleInProgressError
"""

from __future__ import annotations

from typing import Any


class SentinelError(Exception):
    """Base exception for all x402-sentinel errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context})"


# ---------------------------------------------------------------------------
# Marketplace layer
# ---------------------------------------------------------------------------


class MarketplaceError(SentinelError):
    """Base for operator / watcher-type / watcher errors."""


class OperatorNotFoundError(MarketplaceError):
    def __init__(self, operator_id: str) -> None:
        super().__init__(
            f"Operator not found: '{operator_id}'",
            context={"operator_id": operator_id},
        )
        self.operator_id = operator_id


class WatcherTypeNotFoundError(MarketplaceError):
    def __init__(self, type_id: str) -> None:
        super().__init__(
            f"Watcher type not found: '{type_id}'",
            context={"type_id": type_id},
        )
        self.type_id = type_id


class WatcherTypeUnavailableError(MarketplaceError):
    """The watcher type exists but no longer accepts new instances."""

    def __init__(self, type_id: str, status: str) -> None:
        super().__init__(
            f"Watcher type '{type_id}' is {status} and cannot be purchased",
            context={"type_id": type_id, "status": status},
        )
        self.type_id = type_id
        self.status = status


class WatcherNotFoundError(MarketplaceError):
    def __init__(self, watcher_id: str) -> None:
        super().__init__(
            f"Watcher not found: '{watcher_id}'",
            context={"watcher_id": watcher_id},
        )
        self.watcher_id = watcher_id


class InvalidWebhookError(MarketplaceError):
    """The webhook is not a well-formed http(s) URL."""

    def __init__(self, webhook: Any) -> None:
        super().__init__(
            "Valid webhook URL required (http or https)",
            context={"webhook": webhook},
        )
        self.webhook = webhook


class InvalidConfigError(MarketplaceError):
    """Watcher config was rejected by the evaluator's validate()."""

    def __init__(self, errors: list[str], executor_id: str | None = None) -> None:
        super().__init__(
            "Invalid config",
            context={"errors": errors, "executor_id": executor_id},
        )
        self.errors = errors
        self.executor_id = executor_id


class InvalidStatusTransitionError(MarketplaceError):
    def __init__(self, watcher_id: str, current: str, target: str) -> None:
        super().__init__(
            f"Watcher '{watcher_id}' cannot move from {current} to {target}",
            context={"watcher_id": watcher_id, "current": current, "target": target},
        )
        self.watcher_id = watcher_id
        self.current = current
        self.target = target


class RecordIntegrityError(MarketplaceError):
    """The record store references an entity that does not exist.

    Raised when a watcher type points at a missing operator.  This is a
    server-side inconsistency, never a client mistake.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message, context=context)


# ---------------------------------------------------------------------------
# Idempotency ledger
# ---------------------------------------------------------------------------


class LedgerError(SentinelError):
    """Base for idempotency ledger errors."""


class ReceiptExistsError(LedgerError):
    """A receipt already exists for this fulfillment hash.

    Callers treat this as "return the existing receipt", never as a failure
    to surface to the end user.
    """

    def __init__(self, fulfillment_hash: str) -> None:
        super().__init__(
            f"Receipt already recorded for fulfillment '{fulfillment_hash}'",
            context={"fulfillment_hash": fulfillment_hash},
        )
        self.fulfillment_hash = fulfillment_hash


# ---------------------------------------------------------------------------
# Evaluators
# ---------------------------------------------------------------------------


class EvaluatorError(SentinelError):
    """Base for condition evaluator errors."""


class InvalidEvaluatorError(EvaluatorError):
    """An object registered as an evaluator lacks a mandatory capability."""

    def __init__(self, executor_id: str, missing: list[str]) -> None:
        super().__init__(
            f"Evaluator '{executor_id}' must provide callable {', '.join(missing)}()",
            context={"executor_id": executor_id, "missing": missing},
        )
        self.executor_id = executor_id
        self.missing = missing


class EvaluationError(EvaluatorError):
    """A condition check could not be completed.

    ``transient`` is True for failures that may succeed on a later cycle
    (timeouts, 5xx, rate limits, connection errors).
    """

    def __init__(
        self,
        message: str,
        executor_id: str | None = None,
        transient: bool = True,
    ) -> None:
        super().__init__(
            message,
            context={"executor_id": executor_id, "transient": transient},
        )
        self.executor_id = executor_id
        self.transient = transient


# ---------------------------------------------------------------------------
# Notification sink
# ---------------------------------------------------------------------------


class DeliveryError(SentinelError):
    """A webhook POST failed (transport error, timeout or non-2xx status)."""

    def __init__(
        self,
        webhook: str,
        reason: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(
            f"Webhook delivery to '{webhook}' failed: {reason}",
            context={"webhook": webhook, "reason": reason, "status_code": status_code},
        )
        self.webhook = webhook
        self.reason = reason
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Trigger engine
# ---------------------------------------------------------------------------


class EngineError(SentinelError):
    """Base for trigger engine errors."""


class CycleInProgressError(EngineError):
    """A cycle was requested while another one is still running."""

    def __init__(self, running_cycle_id: str | None) -> None:
        super().__init__(
            "A trigger cycle is already in progress",
            context={"running_cycle_id": running_cycle_id},
        )
        self.running_cycle_id = running_cycle_id
