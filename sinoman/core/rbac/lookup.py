"""SQLAlchemy-backed resource lookup for permission checks."""

from typing import Dict, Optional, Type

from sqlalchemy.orm import Session

from sinoman.db.base import Base
from sinoman.db.models import Member, Order, SavingsAccount, Transaction, WasteBalance

from .checker import MemberRoleAndTenant, ResourceLookup, ResourceOwnership

# Resource type -> model carrying (member_id, tenant_id)
RESOURCE_MODELS: Dict[str, Type[Base]] = {
    "transaction": Transaction,
    "savings_account": SavingsAccount,
    "waste_balance": WasteBalance,
    "order": Order,
}


class SQLResourceLookup(ResourceLookup):
    """Reads member roles and resource ownership from the application database."""

    def __init__(self, db: Session):
        self.db = db

    def find_member_role_and_tenant(self, user_id: str) -> Optional[MemberRoleAndTenant]:
        row = (
            self.db.query(Member.role, Member.tenant_id)
            .filter(Member.id == user_id, Member.is_active == True)  # noqa: E712
            .first()
        )
        if row is None:
            return None
        return MemberRoleAndTenant(role=row.role, tenant_id=row.tenant_id)

    def find_resource_owner_and_tenant(
        self, resource_type: str, resource_id: str
    ) -> Optional[ResourceOwnership]:
        # A member owns itself
        if resource_type == "member":
            row = self.db.query(Member.id, Member.tenant_id).filter(Member.id == resource_id).first()
            return ResourceOwnership(owner_id=row.id, tenant_id=row.tenant_id) if row else None

        model = RESOURCE_MODELS.get(resource_type)
        if model is None:
            return None

        row = (
            self.db.query(model.member_id, model.tenant_id)
            .filter(model.id == resource_id)
            .first()
        )
        if row is None:
            return None
        return ResourceOwnership(owner_id=row.member_id, tenant_id=row.tenant_id)
