"""ConditionEvaluator — abstract base class for all condition checks.

An evaluator answers one question about the outside world ("is this
wallet's balance below 0.5 ETH?") for a given watcher config.  The trigger
engine only ever calls the three methods below; it never knows which data
source is behind them.

Contract
--------
- ``describe()``        — static metadata: name, description, config schema
- ``await check(cfg)``  — returns ``CheckResult(triggered, data)``;
                          raises ``EvaluationError`` when the data source
                          cannot be read
- ``validate(cfg)``     — optional; returns ``ValidationResult`` or None
                          when the evaluator does not validate configs

Subclasses declare ``EXECUTOR_ID`` and a pydantic ``CONFIG_MODEL``; the
default ``describe()`` and ``validate()`` are derived from the model.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar

import httpx
from pydantic import BaseModel, ValidationError

from x402_sentinel.exceptions import EvaluationError
from x402_sentinel.logging import get_logger

log = get_logger(__name__)


@dataclass
class CheckResult:
    triggered: bool
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


def format_validation_errors(exc: ValidationError) -> list[str]:
    """Flatten a pydantic ValidationError into ``"field: message"`` strings."""
    errors = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "config"
        errors.append(f"{loc}: {err['msg']}")
    return errors


class ConditionEvaluator(ABC):
    """Abstract base for condition evaluators.

    HTTP-backed evaluators accept an optional ``httpx.AsyncClient``.  When
    omitted, a short-lived client is opened per request with
    ``timeout`` seconds.
    """

    EXECUTOR_ID: ClassVar[str] = ""
    NAME: ClassVar[str] = ""
    DESCRIPTION: ClassVar[str] = ""
    CATEGORY: ClassVar[str] = "custom"
    CONFIG_MODEL: ClassVar[type[BaseModel] | None] = None

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 10.0) -> None:
        self._client = client
        self._timeout = timeout

    # ---------------------------------------------------------------------------
    # Public contract
    # ---------------------------------------------------------------------------

    def describe(self) -> dict[str, Any]:
        schema = self.CONFIG_MODEL.model_json_schema() if self.CONFIG_MODEL else {}
        return {
            "id": self.EXECUTOR_ID,
            "name": self.NAME,
            "description": self.DESCRIPTION,
            "category": self.CATEGORY,
            "config_schema": schema,
        }

    @abstractmethod
    async def check(self, config: dict[str, Any]) -> CheckResult:
        """Evaluate the condition for *config*."""

    def validate(self, config: dict[str, Any]) -> ValidationResult | None:
        if self.CONFIG_MODEL is None:
            return None
        try:
            self.CONFIG_MODEL.model_validate(config)
        except ValidationError as exc:
            return ValidationResult(valid=False, errors=format_validation_errors(exc))
        return ValidationResult(valid=True)

    # ---------------------------------------------------------------------------
    # Helpers for subclasses
    # ---------------------------------------------------------------------------

    def parse_config(self, config: dict[str, Any]) -> Any:
        """Return the typed config, or raise a permanent EvaluationError."""
        assert self.CONFIG_MODEL is not None
        try:
            return self.CONFIG_MODEL.model_validate(config)
        except ValidationError as exc:
            raise EvaluationError(
                "Invalid config: " + "; ".join(format_validation_errors(exc)),
                executor_id=self.EXECUTOR_ID,
                transient=False,
            ) from exc

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        """Perform an HTTP request and return the decoded JSON body.

        Transport errors, timeouts, 429 and 5xx are transient; other non-2xx
        statuses and undecodable bodies are permanent.
        """
        try:
            if self._client is not None:
                response = await self._client.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise EvaluationError(
                f"Timed out calling {url}", executor_id=self.EXECUTOR_ID, transient=True
            ) from exc
        except httpx.HTTPError as exc:
            raise EvaluationError(
                f"Request to {url} failed: {exc}", executor_id=self.EXECUTOR_ID, transient=True
            ) from exc

        if response.status_code >= 400:
            transient = response.status_code == 429 or response.status_code >= 500
            raise EvaluationError(
                f"{url} returned HTTP {response.status_code}",
                executor_id=self.EXECUTOR_ID,
                transient=transient,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise EvaluationError(
                f"{url} returned a non-JSON body", executor_id=self.EXECUTOR_ID, transient=False
            ) from exc
