"""
Tests d'integration pour l'administration
Journal d'audit (consultation, export CSV) et statistiques du rate limiter
"""
import csv
import io
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.models import AuditLog, User
from app.models.audit import ANONYMOUS_USER, AuditAction
from app.services.audit import AuditEvent, AuditService, CSV_HEADERS

pytestmark = pytest.mark.integration


@pytest.fixture
def seeded_audit(session_factory, test_user: User):
    """Quelques entrees d'audit a dates connues"""
    audit = AuditService(session_factory)
    base = datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc)
    events = [
        (ANONYMOUS_USER, AuditAction.LOGIN_FAILED, "auth"),
        (str(test_user.id), AuditAction.LOGIN_SUCCESS, "auth"),
        (str(test_user.id), AuditAction.CHANTIER_UPDATE, "chantier:12"),
    ]
    for minutes, (user_id, action, resource) in enumerate(events):
        audit.record(AuditEvent(
            user_id=user_id,
            action=action,
            resource=resource,
            ip="198.51.100.4",
            timestamp=base + timedelta(minutes=minutes),
        ))
    return base


class TestAuditAccess:

    def test_non_admin_is_denied_and_audited(self, client: TestClient, test_user: User, user_headers, db_session: Session):
        response = client.get("/api/v1/admin/audit", headers=user_headers)

        assert response.status_code == 403
        assert response.json()["error"] == "PERMISSION_DENIED"

        db_session.expire_all()
        denied = db_session.query(AuditLog).filter(AuditLog.action == "ACCESS_DENIED").one()
        assert denied.user_id == str(test_user.id)
        assert denied.resource == "system"
        assert denied.details["path"] == "/api/v1/admin/audit"

    def test_anonymous_is_unauthorized(self, client: TestClient):
        assert client.get("/api/v1/admin/audit").status_code == 401


class TestAuditQuery:

    def test_list_newest_first(self, client: TestClient, admin_headers, seeded_audit):
        response = client.get("/api/v1/admin/audit", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert [log["action"] for log in data["logs"]] == [
            "CHANTIER_UPDATE", "LOGIN_SUCCESS", "LOGIN_FAILED",
        ]
        assert data["stats"] == {
            "total": 3,
            "currentPage": 1,
            "totalPages": 1,
            "hasNextPage": False,
            "hasPrevPage": False,
        }

    def test_filters(self, client: TestClient, admin_headers, seeded_audit, test_user: User):
        response = client.get(
            "/api/v1/admin/audit",
            headers=admin_headers,
            params={"userId": str(test_user.id), "resource": "chantier"},
        )

        logs = response.json()["logs"]
        assert [log["resource"] for log in logs] == ["chantier:12"]

    def test_action_filter(self, client: TestClient, admin_headers, seeded_audit):
        response = client.get(
            "/api/v1/admin/audit",
            headers=admin_headers,
            params={"action": "LOGIN_FAILED"},
        )

        assert response.json()["total"] == 1

    def test_pagination(self, client: TestClient, admin_headers, seeded_audit):
        response = client.get(
            "/api/v1/admin/audit",
            headers=admin_headers,
            params={"limit": 2, "offset": 2},
        )

        data = response.json()
        assert len(data["logs"]) == 1
        assert data["stats"]["currentPage"] == 2
        assert data["stats"]["hasPrevPage"] is True
        assert data["stats"]["hasNextPage"] is False

    def test_future_start_date_returns_empty(self, client: TestClient, admin_headers, seeded_audit):
        future = (datetime.now(timezone.utc) + timedelta(days=30)).isoformat()

        response = client.get(
            "/api/v1/admin/audit",
            headers=admin_headers,
            params={"startDate": future},
        )

        assert response.status_code == 200
        assert response.json()["logs"] == []
        assert response.json()["total"] == 0

    @pytest.mark.parametrize("params", [
        {"action": "HACK"},
        {"limit": 0},
        {"limit": 5000},
        {"offset": -1},
        {"startDate": "pas-une-date"},
        {"startDate": "2026-02-01T00:00:00Z", "endDate": "2026-01-01T00:00:00Z"},
    ])
    def test_invalid_parameters(self, client: TestClient, admin_headers, params):
        response = client.get("/api/v1/admin/audit", headers=admin_headers, params=params)

        assert response.status_code == 400


class TestAuditExport:

    def test_csv_export(self, client: TestClient, admin_headers, seeded_audit, test_user: User, db_session: Session):
        response = client.post("/api/v1/admin/audit", headers=admin_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment; filename=\"audit-logs-" in response.headers["content-disposition"]

        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows[0] == CSV_HEADERS
        assert len(rows) == 4
        assert rows[1][2] == test_user.email
        assert rows[3][1:4] == ["N/A", "N/A", "N/A"]

        db_session.expire_all()
        export = db_session.query(AuditLog).filter(AuditLog.action == "DATA_EXPORT").one()
        assert export.details["export"] == "audit_logs"

    def test_export_with_filters(self, client: TestClient, admin_headers, seeded_audit):
        response = client.post(
            "/api/v1/admin/audit",
            headers=admin_headers,
            json={"action": "LOGIN_SUCCESS"},
        )

        rows = list(csv.reader(io.StringIO(response.text)))
        assert len(rows) == 2
        assert rows[1][4] == "LOGIN_SUCCESS"


class TestRateLimitStats:

    def test_stats(self, client: TestClient, admin_headers, test_user: User):
        client.post("/api/v1/auth/login", json={"email": test_user.email, "password": "Mauvais#Passe99"})

        response = client.get("/api/v1/admin/rate-limit/stats", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["backend"] == "memory"
        assert data["keysByType"]["AUTH"] == 1

    def test_stats_require_admin(self, client: TestClient, user_headers):
        assert client.get("/api/v1/admin/rate-limit/stats", headers=user_headers).status_code == 403
