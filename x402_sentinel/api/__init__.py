"""API layer — FastAPI HTTP surface."""

from x402_sentinel.api.server import create_app

__all__ = ["create_app"]
