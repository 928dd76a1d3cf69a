"""
Tests para bodegas
"""

from uuid import uuid4


class TestWarehouses:
    """CRUD básico y aislamiento por tenant"""

    def test_create_warehouse(self, client, admin_headers):
        response = client.post(
            "/api/v1/warehouses/",
            json={"name": "Bodega Norte", "code": "bod norte", "address": "Calle 100 # 15-20"},
            headers=admin_headers
        )

        assert response.status_code == 201
        data = response.json()
        assert data["code"] == "BODNORTE"
        assert data["is_active"] is True

    def test_create_duplicate_code(self, client, admin_headers, warehouse):
        response = client.post(
            "/api/v1/warehouses/",
            json={"name": "Otra Bodega", "code": "BOD-01"},
            headers=admin_headers
        )

        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"

    def test_create_forbidden_for_employee(self, client, employee_headers):
        response = client.post(
            "/api/v1/warehouses/",
            json={"name": "Bodega Sur", "code": "SUR"},
            headers=employee_headers
        )

        assert response.status_code == 403

    def test_list_warehouses(self, client, employee_headers, warehouse):
        response = client.get("/api/v1/warehouses/", headers=employee_headers)

        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_get_warehouse_of_other_tenant(self, client, outsider_headers, warehouse):
        response = client.get(f"/api/v1/warehouses/{warehouse.id}", headers=outsider_headers)

        assert response.status_code == 404

    def test_get_unknown_warehouse(self, client, employee_headers):
        response = client.get(f"/api/v1/warehouses/{uuid4()}", headers=employee_headers)

        assert response.status_code == 404
