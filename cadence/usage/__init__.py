"""Session-level API usage and cost ledger."""

from cadence.usage.ledger import UsageEntry, UsageLedger, UsageService, UsageSummary, calculate_cost

__all__ = ["UsageEntry", "UsageLedger", "UsageService", "UsageSummary", "calculate_cost"]
