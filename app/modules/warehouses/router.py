from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from uuid import UUID

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.warehouses import service
from app.modules.warehouses.schemas import WarehouseCreate, WarehouseOut, WarehouseList

warehouses_router = APIRouter(prefix="/warehouses", tags=["Warehouses"])

@warehouses_router.post("/", response_model=WarehouseOut, status_code=status.HTTP_201_CREATED)
def create_warehouse(
    data: WarehouseCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_supervisor())
):
    """
    Crear nueva bodega.

    Solo usuarios con rol admin o manager pueden crear bodegas.
    """
    return service.create_warehouse(data, db, auth_context.tenant_id)

@warehouses_router.get("/", response_model=WarehouseList)
def get_all_warehouses(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Listar bodegas de la empresa."""
    return service.get_all_warehouses(db, auth_context.tenant_id, limit, offset)

@warehouses_router.get("/{warehouse_id}", response_model=WarehouseOut)
def get_warehouse_by_id(
    warehouse_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Obtener bodega por ID."""
    return service.get_warehouse_by_id(warehouse_id, db, auth_context.tenant_id)
