"""
Fixtures compartidas de tests

La base de datos es SQLite en memoria (una única conexión compartida) y se
recrea en cada test. Los usuarios se autentican con tokens de contexto
reales, firmados con la configuración de la app.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.database.database import Base, engine, SessionLocal
from app.modules.auth.models import User, UserCompany, UserRole
from app.modules.auth.schemas import AuthContext
from app.modules.auth.utils import create_context_token
from app.modules.company.models import Company
from app.modules.pos.models import CashRegister, CashRegisterStatus
from app.modules.warehouses.models import Warehouse


@pytest.fixture(autouse=True)
def _database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


# ===== TENANTS Y USUARIOS =====

@pytest.fixture
def company(db_session):
    company = Company(name="Tienda Central S.A.S.", nit="900123456-1")
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture
def other_company(db_session):
    company = Company(name="Otra Tienda S.A.S.", nit="800987654-2")
    db_session.add(company)
    db_session.commit()
    return company


def _make_user(db_session, company, email, first_name, role):
    user = User(email=email, first_name=first_name, last_name="Prueba")
    db_session.add(user)
    db_session.flush()
    db_session.add(UserCompany(user_id=user.id, company_id=company.id, role=role))
    db_session.commit()
    return user


@pytest.fixture
def admin_user(db_session, company):
    return _make_user(db_session, company, "admin@tienda.com", "Ana", UserRole.ADMIN)


@pytest.fixture
def manager_user(db_session, company):
    return _make_user(db_session, company, "manager@tienda.com", "Mario", UserRole.MANAGER)


@pytest.fixture
def employee_user(db_session, company):
    return _make_user(db_session, company, "cajero@tienda.com", "Carla", UserRole.EMPLOYEE)


@pytest.fixture
def other_employee(db_session, company):
    return _make_user(db_session, company, "cajero2@tienda.com", "Pedro", UserRole.EMPLOYEE)


@pytest.fixture
def outsider_user(db_session, other_company):
    return _make_user(db_session, other_company, "admin@otra.com", "Olga", UserRole.ADMIN)


def make_headers(user, company):
    token = create_context_token(user.id, company.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin_user, company):
    return make_headers(admin_user, company)


@pytest.fixture
def manager_headers(manager_user, company):
    return make_headers(manager_user, company)


@pytest.fixture
def employee_headers(employee_user, company):
    return make_headers(employee_user, company)


@pytest.fixture
def other_employee_headers(other_employee, company):
    return make_headers(other_employee, company)


@pytest.fixture
def outsider_headers(outsider_user, other_company):
    return make_headers(outsider_user, other_company)


@pytest.fixture
def employee_auth(employee_user, company):
    return AuthContext(user_id=employee_user.id, tenant_id=company.id, user_role=UserRole.EMPLOYEE)


@pytest.fixture
def admin_auth(admin_user, company):
    return AuthContext(user_id=admin_user.id, tenant_id=company.id, user_role=UserRole.ADMIN)


# ===== BODEGAS Y CAJAS =====

@pytest.fixture
def warehouse(db_session, company):
    warehouse = Warehouse(tenant_id=company.id, name="Bodega Principal", code="BOD-01")
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture
def cash_register(db_session, company, warehouse):
    register = CashRegister(
        tenant_id=company.id,
        warehouse_id=warehouse.id,
        name="Caja 1",
        code="CAJA-01",
        status=CashRegisterStatus.OPEN
    )
    db_session.add(register)
    db_session.commit()
    return register


@pytest.fixture
def open_session(client, employee_headers, cash_register):
    """Turno abierto por el cajero con base de 500.00"""
    response = client.post(
        "/api/v1/pos-sessions/open",
        json={"cash_register_id": str(cash_register.id), "opening_amount": "500.00"},
        headers=employee_headers
    )
    assert response.status_code == 201
    return response.json()
