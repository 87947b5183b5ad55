"""Leave Ledger — multi-tenant leave balance ledger and allocation engine."""

__version__ = "1.0.0"
