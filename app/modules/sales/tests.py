"""
Tests para ventas POS

- Registro de ventas con pagos mixtos contra el turno abierto
- Validación de pagos vs. total
- Rechazo de ventas sin turno o con turno cerrado
- Impacto de los pagos en efectivo en el arqueo y reportes
- Anulación de ventas
"""

import pytest
from decimal import Decimal

from app.modules.pos.models import CashRegister, CashRegisterStatus


def _sale(total, payments, subtotal=None):
    return {
        "subtotal": subtotal or total,
        "tax": "0",
        "discount": "0",
        "total": total,
        "payments": payments
    }


@pytest.fixture
def cash_sale():
    return _sale("100.00", [{"method": "cash", "amount": "100.00"}])


@pytest.fixture
def mixed_sale():
    return _sale("250.00", [
        {"method": "cash", "amount": "50.00"},
        {"method": "credit_card", "amount": "150.00", "reference": "VOUCHER-123"},
        {"method": "nequi", "amount": "50.00"}
    ])


class TestCreateSale:
    """Tests de registro de ventas"""

    def test_create_cash_sale(self, client, employee_headers, open_session, cash_sale):
        response = client.post("/api/v1/pos-sales", json=cash_sale, headers=employee_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["sale_number"] == "POS-000001"
        assert data["session_id"] == open_session["id"]
        assert Decimal(data["total"]) == Decimal("100.00")
        assert len(data["payments"]) == 1

    def test_sale_numbers_are_sequential(self, client, employee_headers, open_session, cash_sale):
        client.post("/api/v1/pos-sales", json=cash_sale, headers=employee_headers)
        response = client.post("/api/v1/pos-sales", json=cash_sale, headers=employee_headers)

        assert response.json()["sale_number"] == "POS-000002"

    def test_payments_must_match_total(self, client, employee_headers, open_session):
        sale = _sale("100.00", [{"method": "cash", "amount": "90.00"}])

        response = client.post("/api/v1/pos-sales", json=sale, headers=employee_headers)

        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert response.json()["field"] == "payments"

    def test_payments_within_tolerance(self, client, employee_headers, open_session):
        sale = _sale("100.00", [
            {"method": "cash", "amount": "33.33"},
            {"method": "debit_card", "amount": "66.66"}
        ])

        response = client.post("/api/v1/pos-sales", json=sale, headers=employee_headers)

        assert response.status_code == 201

    def test_total_must_match_breakdown(self, client, employee_headers, open_session):
        sale = {
            "subtotal": "100.00", "tax": "19.00", "discount": "0",
            "total": "100.00", "payments": [{"method": "cash", "amount": "100.00"}]
        }

        response = client.post("/api/v1/pos-sales", json=sale, headers=employee_headers)

        assert response.status_code == 422

    def test_sale_without_open_session(self, client, employee_headers, cash_register, cash_sale):
        response = client.post("/api/v1/pos-sales", json=cash_sale, headers=employee_headers)

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_STATE"

    def test_sale_after_close_rejected(self, client, employee_headers, open_session, cash_sale):
        client.post(
            f"/api/v1/pos-sessions/{open_session['id']}/close",
            json={"closing_amount": "500.00"},
            headers=employee_headers
        )

        response = client.post("/api/v1/pos-sales", json=cash_sale, headers=employee_headers)

        assert response.status_code == 400


class TestSalesInCashReconciliation:
    """Las ventas en efectivo alimentan el efectivo esperado"""

    def test_cash_sales_count_in_expected_cash(self, client, employee_headers, open_session, cash_sale, mixed_sale):
        client.post("/api/v1/pos-sales", json=cash_sale, headers=employee_headers)
        client.post("/api/v1/pos-sales", json=mixed_sale, headers=employee_headers)

        response = client.post(
            f"/api/v1/pos-sessions/{open_session['id']}/close",
            json={"closing_amount": "650.00"},
            headers=employee_headers
        )

        data = response.json()
        # 500 base + 100 + 50 en efectivo
        assert Decimal(data["expected_amount"]) == Decimal("650.00")
        assert Decimal(data["difference"]) == Decimal("0.00")

    def test_x_report_breaks_down_methods(self, client, employee_headers, open_session, cash_sale, mixed_sale):
        client.post("/api/v1/pos-sales", json=cash_sale, headers=employee_headers)
        client.post("/api/v1/pos-sales", json=mixed_sale, headers=employee_headers)

        report = client.get(
            f"/api/v1/pos-sessions/{open_session['id']}/x-report",
            headers=employee_headers
        ).json()

        assert report["transaction_count"] == 2
        assert Decimal(report["total_cash_sales"]) == Decimal("150.00")
        assert Decimal(report["total_card_sales"]) == Decimal("150.00")
        assert Decimal(report["total_other_sales"]) == Decimal("50.00")
        assert Decimal(report["total_sales_amount"]) == Decimal("350.00")
        methods = {entry["method"]: entry for entry in report["sales_by_method"]}
        assert set(methods) == {"cash", "credit_card", "nequi"}
        assert methods["cash"]["count"] == 2

    def test_list_session_sales(self, client, employee_headers, open_session, cash_sale, mixed_sale):
        client.post("/api/v1/pos-sales", json=cash_sale, headers=employee_headers)
        client.post("/api/v1/pos-sales", json=mixed_sale, headers=employee_headers)

        response = client.get(f"/api/v1/pos-sessions/{open_session['id']}/sales", headers=employee_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert {s["sale_number"] for s in data["sales"]} == {"POS-000001", "POS-000002"}


@pytest.fixture
def second_register(db_session, company, warehouse):
    register = CashRegister(
        tenant_id=company.id,
        warehouse_id=warehouse.id,
        name="Caja 2",
        code="CAJA-02",
        status=CashRegisterStatus.OPEN
    )
    db_session.add(register)
    db_session.commit()
    return register


class TestSaleWithSeveralOpenSessions:
    """Un cajero con turnos abiertos en dos cajas"""

    def test_sale_goes_to_current_session(self, client, employee_headers, open_session, second_register, cash_sale):
        opened = client.post(
            "/api/v1/pos-sessions/open",
            json={"cash_register_id": str(second_register.id), "opening_amount": "100.00"},
            headers=employee_headers
        )
        assert opened.status_code == 201

        current = client.get("/api/v1/pos-sessions/current", headers=employee_headers).json()
        sale = client.post("/api/v1/pos-sales", json=cash_sale, headers=employee_headers).json()

        assert current["id"] == opened.json()["id"]
        assert sale["session_id"] == current["id"]
        assert sale["session_id"] != open_session["id"]


class TestVoidSale:
    """Anulación de ventas y su efecto en arqueo y reportes"""

    def _void(self, client, sale_id, headers, reason="Cliente devolvió el producto"):
        return client.post(f"/api/v1/pos-sales/{sale_id}/void", json={"reason": reason}, headers=headers)

    def test_void_sale(self, client, employee_headers, open_session, cash_sale):
        sale = client.post("/api/v1/pos-sales", json=cash_sale, headers=employee_headers).json()

        response = self._void(client, sale["id"], employee_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "voided"
        assert data["void_reason"] == "Cliente devolvió el producto"
        assert data["voided_at"] is not None

    def test_voided_sale_not_counted(self, client, employee_headers, open_session, cash_sale, mixed_sale):
        sale = client.post("/api/v1/pos-sales", json=cash_sale, headers=employee_headers).json()
        client.post("/api/v1/pos-sales", json=mixed_sale, headers=employee_headers)
        self._void(client, sale["id"], employee_headers)

        report = client.get(
            f"/api/v1/pos-sessions/{open_session['id']}/x-report",
            headers=employee_headers
        ).json()
        assert report["transaction_count"] == 1
        assert Decimal(report["total_cash_sales"]) == Decimal("50.00")
        assert Decimal(report["total_sales_amount"]) == Decimal("250.00")

        closed = client.post(
            f"/api/v1/pos-sessions/{open_session['id']}/close",
            json={"closing_amount": "550.00"},
            headers=employee_headers
        ).json()
        # 500 base + 50 en efectivo de la venta mixta
        assert Decimal(closed["expected_amount"]) == Decimal("550.00")
        assert Decimal(closed["difference"]) == Decimal("0.00")

    def test_void_twice_rejected(self, client, employee_headers, open_session, cash_sale):
        sale = client.post("/api/v1/pos-sales", json=cash_sale, headers=employee_headers).json()
        self._void(client, sale["id"], employee_headers)

        response = self._void(client, sale["id"], employee_headers)

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_STATE"

    def test_void_requires_reason(self, client, employee_headers, open_session, cash_sale):
        sale = client.post("/api/v1/pos-sales", json=cash_sale, headers=employee_headers).json()

        response = self._void(client, sale["id"], employee_headers, reason="   ")

        assert response.status_code == 422

    def test_other_employee_cannot_void(self, client, employee_headers, other_employee_headers,
                                        open_session, cash_sale):
        sale = client.post("/api/v1/pos-sales", json=cash_sale, headers=employee_headers).json()

        response = self._void(client, sale["id"], other_employee_headers)

        assert response.status_code == 403

    def test_void_after_close_requires_supervisor(self, client, employee_headers, manager_headers,
                                                  open_session, cash_sale):
        sale = client.post("/api/v1/pos-sales", json=cash_sale, headers=employee_headers).json()
        client.post(
            f"/api/v1/pos-sessions/{open_session['id']}/close",
            json={"closing_amount": "600.00"},
            headers=employee_headers
        )

        assert self._void(client, sale["id"], employee_headers).status_code == 403
        assert self._void(client, sale["id"], manager_headers).status_code == 200

    def test_void_unknown_sale(self, client, employee_headers, open_session):
        response = self._void(client, "00000000-0000-0000-0000-000000000001", employee_headers)

        assert response.status_code == 404

    def test_void_scoped_by_tenant(self, client, employee_headers, outsider_headers, open_session, cash_sale):
        sale = client.post("/api/v1/pos-sales", json=cash_sale, headers=employee_headers).json()

        response = self._void(client, sale["id"], outsider_headers)

        assert response.status_code == 404
