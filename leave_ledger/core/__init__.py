"""Core module — Tenant and User models and the user repository."""

from leave_ledger.core.models import Tenant, User

__all__ = ["Tenant", "User"]
