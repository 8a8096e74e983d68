"""x402-sentinel — Paid watcher marketplace with a webhook trigger engine.

Customers pay (via an x402 payment rail) to create *watchers* that
periodically evaluate an external condition (a wallet balance, a token
price) and POST to a webhook when the condition holds.  Operators publish
watcher types and receive 80% of every payment; the platform keeps 20%.

Architecture layers (bottom to top):
    1. Evaluators   — pluggable condition checks + explicit registry
    2. Marketplace  — records, SQLite store, idempotency ledger,
                      lifecycle manager, accounting
    3. Triggers     — trigger engine, webhook notifier, cycle scheduler
    4. API/CLI      — FastAPI HTTP surface, Typer command line
"""

__version__ = "0.1.0"
__author__ = "x402-sentinel Contributors"
__license__ = "MIT"

__all__ = ["__version__"]
