"""Event contracts (Pydantic models) for billing and ledger messaging."""

__all__ = [
    "billing_v1",
    "ledger_v1",
]
