"""Member-owned business records.

Only the ownership columns (tenant_id, member_id) matter to access control;
the remaining columns are the minimum each screen of the app relies on.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Numeric, ForeignKey

from sinoman.db.base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    member_id = Column(String(36), ForeignKey("members.id"), nullable=False, index=True)
    transaction_type = Column(String(50), nullable=False, default="deposit")
    amount = Column(Numeric(15, 2), nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)


class SavingsAccount(Base):
    __tablename__ = "savings_accounts"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    member_id = Column(String(36), ForeignKey("members.id"), nullable=False, index=True)
    savings_type = Column(String(50), nullable=False, default="pokok")
    balance = Column(Numeric(15, 2), nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)


class WasteBalance(Base):
    __tablename__ = "waste_balances"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    member_id = Column(String(36), ForeignKey("members.id"), nullable=False, index=True)
    balance = Column(Numeric(15, 2), nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    member_id = Column(String(36), ForeignKey("members.id"), nullable=False, index=True)
    status = Column(String(30), nullable=False, default="pending")
    total_amount = Column(Numeric(15, 2), nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
