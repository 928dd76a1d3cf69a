from sqlalchemy.orm import Session
from uuid import UUID
import logging

from app.common.exceptions import ConflictError, NotFoundError
from app.modules.warehouses.models import Warehouse
from app.modules.warehouses.schemas import WarehouseCreate

logger = logging.getLogger(__name__)


def create_warehouse(data: WarehouseCreate, db: Session, tenant_id: UUID) -> Warehouse:
    existing = db.query(Warehouse).filter(
        Warehouse.tenant_id == tenant_id,
        (Warehouse.name == data.name) | (Warehouse.code == data.code)
    ).first()
    if existing:
        raise ConflictError(
            f"Ya existe una bodega con el nombre '{data.name}' o el código '{data.code}' en esta empresa"
        )

    warehouse = Warehouse(**data.model_dump(), tenant_id=tenant_id)
    db.add(warehouse)
    db.commit()
    db.refresh(warehouse)

    logger.info(f"Warehouse created: {warehouse.name} ({warehouse.id})")
    return warehouse


def get_all_warehouses(db: Session, tenant_id: UUID, limit: int = 100, offset: int = 0):
    query = db.query(Warehouse).filter(Warehouse.tenant_id == tenant_id)
    total = query.count()
    warehouses = query.order_by(Warehouse.name).offset(offset).limit(limit).all()
    return {"warehouses": warehouses, "total": total, "limit": limit, "offset": offset}


def get_warehouse_by_id(warehouse_id: UUID, db: Session, tenant_id: UUID) -> Warehouse:
    warehouse = db.query(Warehouse).filter(
        Warehouse.id == warehouse_id,
        Warehouse.tenant_id == tenant_id
    ).first()

    if not warehouse:
        raise NotFoundError(f"Bodega con ID {warehouse_id} no encontrada")
    return warehouse
