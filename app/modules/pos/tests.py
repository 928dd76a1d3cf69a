"""
Tests para el módulo POS

Cubren:
- Apertura de turnos y la regla de un turno abierto por caja
- Movimientos de efectivo y cálculo del efectivo esperado
- Cierre con arqueo (diferencia = contado - esperado)
- Reportes X/Z
- Permisos por rol y aislamiento por tenant
- Gestión de cajas registradoras

Todos los montos se comparan como Decimal.
"""

import pytest
from decimal import Decimal
from uuid import UUID, uuid4
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query

from app.common.exceptions import ValidationError, ConflictError, InvalidStateError, NotFoundError
from app.modules.audit.models import AuditAction, AuditLog
from app.modules.pos.models import (
    CashRegister, CashRegisterStatus, POSSession, POSSessionStatus, CashMovement
)
from app.modules.pos.schemas import OpenSessionRequest, CloseSessionRequest, CashMovementCreate, CashRegisterUpdate
from app.modules.pos.services import POSSessionService, CashRegisterService


def _movement(client, headers, session_id, type_, amount):
    return client.post(
        f"/api/v1/pos-sessions/{session_id}/cash-movement",
        json={"type": type_, "amount": amount},
        headers=headers
    )


@pytest.fixture
def session_with_movements(client, employee_headers, open_session):
    """Turno con base 500, ingreso 200 y retiro 50"""
    session_id = open_session["id"]
    assert _movement(client, employee_headers, session_id, "cash_in", "200.00").status_code == 201
    assert _movement(client, employee_headers, session_id, "cash_out", "50.00").status_code == 201
    return open_session


# ===== TESTS DE APERTURA =====

class TestOpenSession:
    """Tests de apertura de turnos"""

    def test_open_session_success(self, client, employee_headers, cash_register, employee_user):
        """Abrir turno con 1000.00 sobre una caja libre"""
        response = client.post(
            "/api/v1/pos-sessions/open",
            json={"cash_register_id": str(cash_register.id), "opening_amount": "1000.00"},
            headers=employee_headers
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "open"
        assert Decimal(data["opening_amount"]) == Decimal("1000.00")
        assert data["user_id"] == str(employee_user.id)
        assert data["closing_amount"] is None
        assert data["cash_register"]["code"] == "CAJA-01"
        assert Decimal(data["summary"]["expected_cash"]) == Decimal("1000.00")

    def test_second_open_on_same_register_conflicts(self, client, manager_headers, open_session, cash_register):
        """Un segundo turno sobre la misma caja responde 409"""
        response = client.post(
            "/api/v1/pos-sessions/open",
            json={"cash_register_id": str(cash_register.id), "opening_amount": "100.00"},
            headers=manager_headers
        )

        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"

        # El primer turno no se ve afectado
        first = client.get(f"/api/v1/pos-sessions/{open_session['id']}", headers=manager_headers)
        assert first.json()["status"] == "open"
        assert Decimal(first.json()["opening_amount"]) == Decimal("500.00")

    def test_open_on_suspended_register(self, client, employee_headers, db_session, cash_register):
        cash_register.status = CashRegisterStatus.SUSPENDED
        db_session.commit()

        response = client.post(
            "/api/v1/pos-sessions/open",
            json={"cash_register_id": str(cash_register.id), "opening_amount": "0"},
            headers=employee_headers
        )

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_STATE"

    def test_open_on_unknown_register(self, client, employee_headers):
        response = client.post(
            "/api/v1/pos-sessions/open",
            json={"cash_register_id": str(uuid4()), "opening_amount": "10.00"},
            headers=employee_headers
        )

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_open_on_register_of_other_tenant(self, client, outsider_headers, cash_register):
        """La caja de otra empresa no existe para el usuario"""
        response = client.post(
            "/api/v1/pos-sessions/open",
            json={"cash_register_id": str(cash_register.id), "opening_amount": "10.00"},
            headers=outsider_headers
        )

        assert response.status_code == 404

    def test_negative_opening_amount_rejected_by_api(self, client, employee_headers, cash_register, db_session):
        response = client.post(
            "/api/v1/pos-sessions/open",
            json={"cash_register_id": str(cash_register.id), "opening_amount": "-1.00"},
            headers=employee_headers
        )

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["field"] == "opening_amount"
        assert db_session.query(POSSession).count() == 0

    def test_negative_opening_amount_rejected_by_service(self, db_session, employee_auth, cash_register):
        """El servicio valida aunque el schema no lo haya hecho"""
        request = OpenSessionRequest.model_construct(
            cash_register_id=cash_register.id,
            opening_amount=Decimal("-5.00"),
            notes=None
        )

        with pytest.raises(ValidationError) as exc_info:
            POSSessionService(db_session).open_session(request, employee_auth)

        assert exc_info.value.field == "opening_amount"
        assert db_session.query(POSSession).count() == 0

    def test_service_open_twice_raises_conflict(self, db_session, employee_auth, admin_auth, cash_register):
        service = POSSessionService(db_session)
        service.open_session(
            OpenSessionRequest(cash_register_id=cash_register.id, opening_amount=Decimal("10")),
            employee_auth
        )

        with pytest.raises(ConflictError):
            service.open_session(
                OpenSessionRequest(cash_register_id=cash_register.id, opening_amount=Decimal("20")),
                admin_auth
            )

        open_count = db_session.query(POSSession).filter(
            POSSession.status == POSSessionStatus.OPEN
        ).count()
        assert open_count == 1

    def test_partial_unique_index_rejects_second_open_row(self, db_session, company, employee_user, cash_register):
        """El índice parcial impide dos filas OPEN para la misma caja"""
        for _ in range(2):
            db_session.add(POSSession(
                tenant_id=company.id,
                cash_register_id=cash_register.id,
                user_id=employee_user.id,
                status=POSSessionStatus.OPEN,
                opening_amount=Decimal("0.00")
            ))

        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_concurrent_open_integrity_error_becomes_conflict(self, db_session, employee_auth,
                                                              cash_register, monkeypatch):
        """Otra apertura gana entre la verificación y el INSERT"""
        real_flush = db_session.flush

        def flush_after_concurrent_open(objects=None):
            if any(isinstance(obj, POSSession) for obj in db_session.new):
                raise IntegrityError(
                    "INSERT INTO pos_sessions", {}, Exception("uq_pos_session_open_per_register")
                )
            return real_flush(objects)

        monkeypatch.setattr(db_session, "flush", flush_after_concurrent_open)

        with pytest.raises(ConflictError):
            POSSessionService(db_session).open_session(
                OpenSessionRequest(cash_register_id=cash_register.id, opening_amount=Decimal("10")),
                employee_auth
            )

        monkeypatch.undo()
        assert db_session.query(POSSession).count() == 0
        assert db_session.query(AuditLog).filter(AuditLog.action == AuditAction.OPEN).count() == 0

    def test_closed_sessions_do_not_block_new_open(self, client, employee_headers, open_session, cash_register):
        client.post(
            f"/api/v1/pos-sessions/{open_session['id']}/close",
            json={"closing_amount": "500.00"},
            headers=employee_headers
        )

        response = client.post(
            "/api/v1/pos-sessions/open",
            json={"cash_register_id": str(cash_register.id), "opening_amount": "300.00"},
            headers=employee_headers
        )

        assert response.status_code == 201
        assert response.json()["id"] != open_session["id"]

    def test_open_requires_authentication(self, client, cash_register):
        response = client.post(
            "/api/v1/pos-sessions/open",
            json={"cash_register_id": str(cash_register.id), "opening_amount": "10.00"}
        )

        assert response.status_code in (401, 403)

    def test_audit_failure_does_not_abort_open(self, client, employee_headers, cash_register, monkeypatch):
        """Si falla la auditoría, el turno igual queda abierto"""
        def broken_audit_log(**kwargs):
            raise RuntimeError("audit store unavailable")

        monkeypatch.setattr("app.modules.audit.service.AuditLog", broken_audit_log)

        response = client.post(
            "/api/v1/pos-sessions/open",
            json={"cash_register_id": str(cash_register.id), "opening_amount": "75.00"},
            headers=employee_headers
        )

        assert response.status_code == 201
        assert response.json()["status"] == "open"


# ===== TESTS DE MOVIMIENTOS =====

class TestCashMovements:
    """Tests de ingresos y retiros de efectivo"""

    def test_expected_cash_after_movements(self, client, employee_headers, session_with_movements):
        """500 + 200 - 50 = 650"""
        response = client.get(
            f"/api/v1/pos-sessions/{session_with_movements['id']}",
            headers=employee_headers
        )

        summary = response.json()["summary"]
        assert Decimal(summary["expected_cash"]) == Decimal("650.00")
        assert Decimal(summary["total_cash_in"]) == Decimal("200.00")
        assert Decimal(summary["total_cash_out"]) == Decimal("50.00")
        assert summary["movement_count"] == 2

    def test_movements_listed_in_order(self, client, employee_headers, session_with_movements):
        response = client.get(
            f"/api/v1/pos-sessions/{session_with_movements['id']}/movements",
            headers=employee_headers
        )

        data = response.json()
        assert data["total"] == 2
        assert [m["type"] for m in data["movements"]] == ["cash_in", "cash_out"]

    def test_zero_amount_rejected(self, client, employee_headers, open_session):
        response = _movement(client, employee_headers, open_session["id"], "cash_in", "0")

        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_negative_amount_rejected_by_service(self, db_session, employee_auth, open_session):
        data = CashMovementCreate.model_construct(
            type="cash_out", amount=Decimal("-10.00"), reference=None, notes=None
        )

        with pytest.raises(ValidationError):
            POSSessionService(db_session).register_cash_movement(UUID(open_session["id"]), data, employee_auth)

        assert db_session.query(CashMovement).count() == 0

    def test_movement_on_closed_session(self, client, employee_headers, open_session):
        client.post(
            f"/api/v1/pos-sessions/{open_session['id']}/close",
            json={"closing_amount": "500.00"},
            headers=employee_headers
        )

        response = _movement(client, employee_headers, open_session["id"], "cash_in", "10.00")

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_STATE"

    def test_movement_by_other_employee_forbidden(self, client, other_employee_headers, open_session):
        response = _movement(client, other_employee_headers, open_session["id"], "cash_in", "10.00")

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    def test_movement_by_manager_allowed(self, client, manager_headers, open_session):
        response = _movement(client, manager_headers, open_session["id"], "cash_out", "20.00")

        assert response.status_code == 201
        assert Decimal(response.json()["amount"]) == Decimal("20.00")

    def test_movement_on_unknown_session(self, client, employee_headers):
        response = _movement(client, employee_headers, uuid4(), "cash_in", "10.00")

        assert response.status_code == 404


# ===== TESTS DE CIERRE =====

class TestCloseSession:
    """Tests de cierre con arqueo"""

    def test_close_with_shortfall(self, client, employee_headers, session_with_movements, employee_user):
        """Esperado 650, contado 640: diferencia -10"""
        response = client.post(
            f"/api/v1/pos-sessions/{session_with_movements['id']}/close",
            json={"closing_amount": "640.00", "notes": "Faltan 10 en monedas"},
            headers=employee_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "closed"
        assert Decimal(data["closing_amount"]) == Decimal("640.00")
        assert Decimal(data["expected_amount"]) == Decimal("650.00")
        assert Decimal(data["difference"]) == Decimal("-10.00")
        assert data["closed_by"] == str(employee_user.id)
        assert data["closed_at"] is not None
        assert "Faltan 10 en monedas" in data["notes"]

    def test_close_exact_amount(self, client, employee_headers, open_session):
        response = client.post(
            f"/api/v1/pos-sessions/{open_session['id']}/close",
            json={"closing_amount": "500.00"},
            headers=employee_headers
        )

        assert Decimal(response.json()["difference"]) == Decimal("0.00")

    def test_close_twice(self, client, employee_headers, open_session):
        url = f"/api/v1/pos-sessions/{open_session['id']}/close"
        assert client.post(url, json={"closing_amount": "500.00"}, headers=employee_headers).status_code == 200

        response = client.post(url, json={"closing_amount": "480.00"}, headers=employee_headers)

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_STATE"

    def test_close_by_other_employee_forbidden(self, client, other_employee_headers, open_session, manager_headers):
        response = client.post(
            f"/api/v1/pos-sessions/{open_session['id']}/close",
            json={"closing_amount": "500.00"},
            headers=other_employee_headers
        )

        assert response.status_code == 403
        session = client.get(f"/api/v1/pos-sessions/{open_session['id']}", headers=manager_headers)
        assert session.json()["status"] == "open"

    def test_close_by_manager(self, client, manager_headers, manager_user, open_session):
        response = client.post(
            f"/api/v1/pos-sessions/{open_session['id']}/close",
            json={"closing_amount": "510.00"},
            headers=manager_headers
        )

        assert response.status_code == 200
        assert response.json()["closed_by"] == str(manager_user.id)
        assert Decimal(response.json()["difference"]) == Decimal("10.00")

    def test_negative_closing_amount(self, client, employee_headers, open_session):
        response = client.post(
            f"/api/v1/pos-sessions/{open_session['id']}/close",
            json={"closing_amount": "-1"},
            headers=employee_headers
        )

        assert response.status_code == 422
        current = client.get("/api/v1/pos-sessions/current", headers=employee_headers)
        assert current.json()["status"] == "open"

    def test_negative_closing_amount_rejected_by_service(self, db_session, employee_auth, open_session):
        data = CloseSessionRequest.model_construct(closing_amount=Decimal("-0.01"), notes=None)

        with pytest.raises(ValidationError):
            POSSessionService(db_session).close_session(UUID(open_session["id"]), data, employee_auth)

        session = db_session.get(POSSession, UUID(open_session["id"]))
        assert session.status == POSSessionStatus.OPEN

    def test_concurrent_close_loses_conditional_update(self, db_session, employee_auth, open_session, monkeypatch):
        """Otro cierre confirma mientras se calcula el arqueo: el UPDATE no afecta filas"""
        service = POSSessionService(db_session)

        def close_elsewhere(session):
            db_session.execute(
                update(POSSession)
                .where(POSSession.id == session.id)
                .values(status=POSSessionStatus.CLOSED)
            )
            return Decimal("500.00")

        monkeypatch.setattr(service.reports, "calculate_expected_cash", close_elsewhere)

        with pytest.raises(InvalidStateError):
            service.close_session(
                UUID(open_session["id"]), CloseSessionRequest(closing_amount=Decimal("500.00")), employee_auth
            )

        db_session.expire_all()
        session = db_session.get(POSSession, UUID(open_session["id"]))
        assert session.closing_amount is None
        assert session.closed_by is None
        assert db_session.query(AuditLog).filter(AuditLog.action == AuditAction.CLOSE).count() == 0

    def test_service_close_unknown_session(self, db_session, employee_auth):
        with pytest.raises(NotFoundError):
            POSSessionService(db_session).close_session(
                uuid4(), CloseSessionRequest(closing_amount=Decimal("1")), employee_auth
            )


# ===== TESTS DE REPORTES =====

class TestReports:
    """Tests de reportes X y Z"""

    def test_x_report_on_open_session(self, client, employee_headers, session_with_movements):
        response = client.get(
            f"/api/v1/pos-sessions/{session_with_movements['id']}/x-report",
            headers=employee_headers
        )

        assert response.status_code == 200
        report = response.json()
        assert report["type"] == "X"
        assert Decimal(report["opening_amount"]) == Decimal("500.00")
        assert Decimal(report["expected_cash_amount"]) == Decimal("650.00")
        assert Decimal(report["total_cash_sales"]) == Decimal("0")
        assert report["transaction_count"] == 0
        assert report["sales_by_method"] == []
        assert report["declared_cash_amount"] is None
        assert report["difference"] is None
        assert report["session"]["cash_register_code"] == "CAJA-01"
        assert report["session"]["user_name"] == "Carla Prueba"

    def test_x_report_is_idempotent(self, client, employee_headers, session_with_movements):
        url = f"/api/v1/pos-sessions/{session_with_movements['id']}/x-report"

        first = client.get(url, headers=employee_headers).json()
        second = client.get(url, headers=employee_headers).json()

        first.pop("generated_at")
        second.pop("generated_at")
        assert first == second

    def test_z_report_on_open_session(self, client, manager_headers, open_session):
        response = client.get(
            f"/api/v1/pos-sessions/{open_session['id']}/z-report",
            headers=manager_headers
        )

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_STATE"

    def test_z_report_after_close(self, client, employee_headers, manager_headers, session_with_movements):
        session_id = session_with_movements["id"]
        client.post(
            f"/api/v1/pos-sessions/{session_id}/close",
            json={"closing_amount": "640.00"},
            headers=employee_headers
        )

        response = client.get(f"/api/v1/pos-sessions/{session_id}/z-report", headers=manager_headers)

        assert response.status_code == 200
        report = response.json()
        assert report["type"] == "Z"
        assert Decimal(report["expected_cash_amount"]) == Decimal("650.00")
        assert Decimal(report["declared_cash_amount"]) == Decimal("640.00")
        assert Decimal(report["difference"]) == Decimal("-10.00")
        assert report["session"]["closed_at"] is not None

    def test_z_report_requires_supervisor(self, client, employee_headers, open_session):
        response = client.get(
            f"/api/v1/pos-sessions/{open_session['id']}/z-report",
            headers=employee_headers
        )

        assert response.status_code == 403

    def test_service_z_report_on_open_session(self, db_session, company, open_session):
        with pytest.raises(InvalidStateError):
            POSSessionService(db_session).get_z_report(UUID(open_session["id"]), company.id)


# ===== TESTS DE CONSULTAS =====

class TestSessionQueries:
    """Tests de turno actual, listado y aislamiento por tenant"""

    def test_current_session(self, client, employee_headers, open_session):
        response = client.get("/api/v1/pos-sessions/current", headers=employee_headers)

        assert response.status_code == 200
        assert response.json()["id"] == open_session["id"]

    def test_current_session_none(self, client, employee_headers):
        response = client.get("/api/v1/pos-sessions/current", headers=employee_headers)

        assert response.status_code == 200
        assert response.json() is None

    def test_current_session_is_per_user(self, client, other_employee_headers, open_session):
        response = client.get("/api/v1/pos-sessions/current", headers=other_employee_headers)

        assert response.json() is None

    def test_list_sessions_as_manager(self, client, manager_headers, session_with_movements):
        response = client.get("/api/v1/pos-sessions/", headers=manager_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert Decimal(data["sessions"][0]["summary"]["expected_cash"]) == Decimal("650.00")

    def test_list_sessions_filter_by_status(self, client, manager_headers, open_session):
        response = client.get("/api/v1/pos-sessions/", params={"status": "closed"}, headers=manager_headers)

        assert response.json()["total"] == 0

    def test_list_sessions_forbidden_for_employee(self, client, employee_headers, open_session):
        response = client.get("/api/v1/pos-sessions/", headers=employee_headers)

        assert response.status_code == 403

    def test_session_of_other_tenant_not_found(self, client, outsider_headers, open_session):
        response = client.get(f"/api/v1/pos-sessions/{open_session['id']}", headers=outsider_headers)

        assert response.status_code == 404
        assert response.json()["path"] == f"/api/v1/pos-sessions/{open_session['id']}"


# ===== TESTS DE CAJAS REGISTRADORAS =====

class TestCashRegisters:
    """Tests de gestión de cajas"""

    def test_create_register_generates_code(self, client, admin_headers, warehouse):
        response = client.post(
            "/api/v1/cash-registers/",
            json={"warehouse_id": str(warehouse.id), "name": "Caja Express"},
            headers=admin_headers
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "open"
        assert data["code"].startswith("CAJAEX-")
        assert data["warehouse_name"] == "Bodega Principal"

    def test_create_register_normalizes_code(self, client, admin_headers, warehouse):
        response = client.post(
            "/api/v1/cash-registers/",
            json={"warehouse_id": str(warehouse.id), "name": "Caja 2", "code": " caja 02 "},
            headers=admin_headers
        )

        assert response.json()["code"] == "CAJA02"

    def test_create_register_duplicate_code(self, client, admin_headers, warehouse, cash_register):
        response = client.post(
            "/api/v1/cash-registers/",
            json={"warehouse_id": str(warehouse.id), "name": "Otra", "code": "CAJA-01"},
            headers=admin_headers
        )

        assert response.status_code == 409

    def test_create_register_unknown_warehouse(self, client, admin_headers):
        response = client.post(
            "/api/v1/cash-registers/",
            json={"warehouse_id": str(uuid4()), "name": "Caja"},
            headers=admin_headers
        )

        assert response.status_code == 404

    def test_create_register_forbidden_for_employee(self, client, employee_headers, warehouse):
        response = client.post(
            "/api/v1/cash-registers/",
            json={"warehouse_id": str(warehouse.id), "name": "Caja"},
            headers=employee_headers
        )

        assert response.status_code == 403

    def test_list_registers_shows_active_session(self, client, employee_headers, open_session, cash_register):
        response = client.get("/api/v1/cash-registers/", headers=employee_headers)

        data = response.json()
        assert data["total"] == 1
        assert data["cash_registers"][0]["active_session_id"] == open_session["id"]
        assert data["cash_registers"][0]["active_session_user"]["first_name"] == "Carla"

    def test_status_change_refused_with_open_session(self, client, admin_headers, open_session, cash_register):
        response = client.patch(
            f"/api/v1/cash-registers/{cash_register.id}",
            json={"status": "suspended"},
            headers=admin_headers
        )

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_STATE"

    def test_suspend_register_without_session(self, client, admin_headers, cash_register, db_session):
        response = client.patch(
            f"/api/v1/cash-registers/{cash_register.id}",
            json={"status": "suspended", "name": "Caja 1 (mantenimiento)"},
            headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["status"] == "suspended"
        db_session.expire_all()
        register = db_session.get(CashRegister, cash_register.id)
        assert register.status == CashRegisterStatus.SUSPENDED
        assert register.name == "Caja 1 (mantenimiento)"

    def test_rename_allowed_with_open_session(self, client, admin_headers, open_session, cash_register):
        response = client.patch(
            f"/api/v1/cash-registers/{cash_register.id}",
            json={"name": "Caja Principal"},
            headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Caja Principal"

    def test_description_can_be_cleared(self, client, admin_headers, cash_register):
        url = f"/api/v1/cash-registers/{cash_register.id}"
        client.patch(url, json={"description": "Junto a la entrada"}, headers=admin_headers)

        response = client.patch(url, json={"description": None}, headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["description"] is None
        assert response.json()["name"] == "Caja 1"

    def test_null_name_is_ignored(self, client, admin_headers, cash_register):
        response = client.patch(
            f"/api/v1/cash-registers/{cash_register.id}",
            json={"name": None, "code": None},
            headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Caja 1"
        assert response.json()["code"] == "CAJA-01"

    def test_update_locks_register_row(self, db_session, admin_auth, cash_register, monkeypatch):
        """La edición toma el mismo bloqueo FOR UPDATE que la apertura de turno"""
        locked = []
        original = Query.with_for_update

        def recording_with_for_update(query, *args, **kwargs):
            locked.append(query.column_descriptions[0]["entity"])
            return original(query, *args, **kwargs)

        monkeypatch.setattr(Query, "with_for_update", recording_with_for_update)

        CashRegisterService(db_session).update_cash_register(
            cash_register.id, CashRegisterUpdate(status=CashRegisterStatus.SUSPENDED), admin_auth
        )

        assert CashRegister in locked
