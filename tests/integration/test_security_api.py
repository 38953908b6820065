"""Integration tests for the security administration endpoints."""

from datetime import datetime, timedelta

import pytest

from sinoman.core.security import create_access_token
from sinoman.db.models import AuditLog
from tests.factories import create_audit_log, create_member, create_security_alert, create_tenant

LOGS_URL = "/api/admin/security/logs"


def auth(member) -> dict:
    return {"Authorization": f"Bearer {create_access_token(member.id)}"}


@pytest.fixture
def tenant(db_session):
    return create_tenant(db_session, name="Koperasi Sinoman Sleman")


@pytest.fixture
def other_tenant(db_session):
    return create_tenant(db_session, name="Koperasi Sinoman Bantul")


@pytest.fixture
def admin(db_session, tenant):
    return create_member(db_session, tenant=tenant, role="admin")


@pytest.fixture
def super_admin(db_session, tenant):
    return create_member(db_session, tenant=tenant, role="super_admin")


class TestAuditLogList:

    def test_scoped_to_callers_tenant(self, client, db_session, admin, tenant, other_tenant):
        create_audit_log(db_session, action="financial_deposit", tenant_id=tenant.id)
        create_audit_log(db_session, action="financial_withdrawal", tenant_id=other_tenant.id)

        response = client.get(LOGS_URL, headers=auth(admin))

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert [item["action"] for item in body["items"]] == ["financial_deposit"]

    def test_super_admin_sees_all_tenants(self, client, db_session, super_admin, tenant, other_tenant):
        create_audit_log(db_session, tenant_id=tenant.id)
        create_audit_log(db_session, tenant_id=other_tenant.id)

        body = client.get(LOGS_URL, headers=auth(super_admin)).json()

        assert body["total"] == 2

    def test_filters_and_pagination(self, client, db_session, admin, tenant):
        for _ in range(3):
            create_audit_log(db_session, action="auth_login", success=False, tenant_id=tenant.id)
        create_audit_log(db_session, action="auth_login", success=True, tenant_id=tenant.id)

        body = client.get(
            LOGS_URL,
            params={"action": "auth_login", "success": "false", "per_page": 2, "page": 2},
            headers=auth(admin),
        ).json()

        assert body["total"] == 3
        assert body["page"] == 2
        assert len(body["items"]) == 1

    def test_metadata_in_response(self, client, db_session, admin, tenant):
        create_audit_log(db_session, tenant_id=tenant.id, metadata={"amount": 25000})

        item = client.get(LOGS_URL, headers=auth(admin)).json()["items"][0]

        assert item["metadata"] == {"amount": 25000}

    def test_reading_logs_is_audited(self, client, db_session, admin):
        client.get(LOGS_URL, headers=auth(admin))

        row = db_session.query(AuditLog).filter_by(action="data_read", resource="audit_logs").one()
        assert row.user_id == admin.id

    def test_requires_permission(self, client, db_session, tenant):
        pengurus = create_member(db_session, tenant=tenant, role="pengurus")

        response = client.get(LOGS_URL, headers=auth(pengurus))

        assert response.status_code == 403
        assert response.json()["required_permission"] == "admin:view_audit_logs"

    def test_requires_authentication(self, client):
        assert client.get(LOGS_URL).status_code == 401


class TestAlertsAndSummary:

    def test_alerts(self, client, db_session, admin, tenant, other_tenant):
        create_security_alert(db_session, tenant_id=tenant.id, description="Mass export")
        create_security_alert(db_session, tenant_id=other_tenant.id)

        body = client.get("/api/admin/security/alerts", headers=auth(admin)).json()

        assert body["total"] == 1
        assert body["items"][0]["description"] == "Mass export"
        assert body["items"][0]["webhook_attempted"] is False

    def test_summary(self, client, db_session, admin, tenant):
        create_audit_log(db_session, action="auth_login", success=False, user_id="m-1", tenant_id=tenant.id)
        create_audit_log(db_session, action="auth_login", success=True, user_id="m-2", tenant_id=tenant.id)
        create_audit_log(db_session, action="security_event_suspicious_activity", tenant_id=tenant.id)
        create_audit_log(db_session, action="admin_suspend_member", user_id="m-2", tenant_id=tenant.id)
        create_audit_log(
            db_session, action="auth_login", success=False, tenant_id=tenant.id,
            created_at=datetime.utcnow() - timedelta(days=2),
        )
        create_security_alert(db_session, tenant_id=tenant.id)

        response = client.get("/api/admin/security/summary", headers=auth(admin))

        assert response.status_code == 200
        summary = response.json()
        assert summary["total_audit_logs"] == 4
        assert summary["auth_failures"] == 1
        assert summary["rate_limit_violations"] == 1
        assert summary["admin_actions"] == 1
        assert summary["security_alerts"] == 1
        assert summary["suspicious_activities"] == 1
        assert summary["active_users"] == 2


class TestCleanup:

    def test_requires_super_admin(self, client, admin):
        response = client.post("/api/admin/security/cleanup", headers=auth(admin))

        assert response.status_code == 403
        assert response.json()["required_permission"] == "super_admin:security_management"

    def test_cleanup(self, client, db_session, super_admin):
        create_audit_log(db_session, action="old", created_at=datetime.utcnow() - timedelta(days=100))

        response = client.post("/api/admin/security/cleanup", headers=auth(super_admin))

        assert response.status_code == 200
        assert response.json() == {"deleted": 1, "retention_days": 90}
        db_session.expire_all()
        assert db_session.query(AuditLog).filter_by(action="old").count() == 0
        assert db_session.query(AuditLog).filter_by(action="admin_cleanup_audit_logs").count() == 1
