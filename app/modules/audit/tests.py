"""
Tests para el rastro de auditoría
"""

from decimal import Decimal
from uuid import UUID

from app.modules.audit.models import AuditAction, AuditLog
from app.modules.audit.service import AuditService


class TestAuditLog:

    def test_session_lifecycle_is_audited(self, client, employee_headers, manager_headers, open_session):
        session_id = open_session["id"]
        client.post(
            f"/api/v1/pos-sessions/{session_id}/cash-movement",
            json={"type": "cash_in", "amount": "20.00"},
            headers=employee_headers
        )
        client.post(
            f"/api/v1/pos-sessions/{session_id}/close",
            json={"closing_amount": "520.00"},
            headers=employee_headers
        )

        response = client.get(
            "/api/v1/audit-logs/",
            params={"entity_type": "pos_session", "entity_id": session_id},
            headers=manager_headers
        )

        assert response.status_code == 200
        actions = {log["action"] for log in response.json()["audit_logs"]}
        assert actions == {AuditAction.OPEN, AuditAction.CASH_MOVEMENT, AuditAction.CLOSE}

    def test_audit_logs_forbidden_for_employee(self, client, employee_headers):
        response = client.get("/api/v1/audit-logs/", headers=employee_headers)

        assert response.status_code == 403

    def test_audit_logs_scoped_by_tenant(self, client, outsider_headers, open_session):
        response = client.get("/api/v1/audit-logs/", headers=outsider_headers)

        assert response.json()["total"] == 0

    def test_record_swallows_errors(self, db_session, company, monkeypatch):
        """Un error al escribir la auditoría se registra y se ignora"""
        def broken_commit():
            raise RuntimeError("disk full")

        monkeypatch.setattr(db_session, "commit", broken_commit)

        result = AuditService(db_session).record(
            tenant_id=company.id,
            user_id=None,
            action=AuditAction.UPDATE,
            entity_type="cash_register",
            entity_id=UUID(int=1)
        )

        assert result is None
        monkeypatch.undo()
        assert db_session.query(AuditLog).count() == 0

    def test_amounts_stored_as_exact_strings(self, client, manager_headers, open_session):
        """Los montos quedan en la auditoría como texto, sin pasar por float"""
        response = client.get(
            "/api/v1/audit-logs/",
            params={"entity_type": "pos_session", "entity_id": open_session["id"]},
            headers=manager_headers
        )

        entry = response.json()["audit_logs"][0]
        assert entry["action"] == AuditAction.OPEN
        assert entry["new_values"]["opening_amount"] == "500.00"

    def test_record_keeps_decimal_precision(self, db_session, company):
        entry = AuditService(db_session).record(
            tenant_id=company.id,
            user_id=None,
            action=AuditAction.CLOSE,
            entity_type="pos_session",
            entity_id=UUID(int=2),
            new_values={"expected_amount": Decimal("1234567890123.45"), "difference": Decimal("-0.10")}
        )

        assert entry.new_values == {"expected_amount": "1234567890123.45", "difference": "-0.10"}
