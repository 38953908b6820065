"""Database models for Sinoman."""

from sinoman.db.models.tenant import Tenant
from sinoman.db.models.member import Member
from sinoman.db.models.resources import Transaction, SavingsAccount, WasteBalance, Order
from sinoman.db.models.audit import AuditLog, AuditLevel, SecurityAlert

__all__ = [
    "Tenant",
    "Member",
    "Transaction",
    "SavingsAccount",
    "WasteBalance",
    "Order",
    "AuditLog",
    "AuditLevel",
    "SecurityAlert",
]
