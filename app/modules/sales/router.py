from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from uuid import UUID

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.sales.schemas import SaleCreate, SaleOut, SaleList, SaleVoidRequest
from app.modules.sales.service import SaleService

sales_router = APIRouter(tags=["POS Sales"])


@sales_router.post("/pos-sales", response_model=SaleOut, status_code=status.HTTP_201_CREATED)
def create_sale(
    sale_data: SaleCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """
    Registrar venta POS en el turno abierto del usuario.

    - **payments**: Uno o más pagos; deben sumar el total (tolerancia 0.01)

    Responde 400 si el usuario no tiene turno abierto.
    """
    return SaleService(db).create_sale(sale_data, auth_context)


@sales_router.get("/pos-sessions/{session_id}/sales", response_model=SaleList)
def get_session_sales(
    session_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Ventas registradas en un turno."""
    return SaleService(db).list_session_sales(session_id, auth_context.tenant_id)


@sales_router.post("/pos-sales/{sale_id}/void", response_model=SaleOut)
def void_sale(
    sale_id: UUID,
    void_data: SaleVoidRequest,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """
    Anular una venta POS.

    - Turno abierto: el cajero del turno o un supervisor
    - Turno cerrado: solo admin/manager

    La venta deja de contar en el efectivo esperado y en los reportes X/Z.
    """
    return SaleService(db).void_sale(sale_id, void_data, auth_context)
