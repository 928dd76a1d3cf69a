from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.audit.schemas import AuditLogList
from app.modules.audit.service import AuditService

audit_router = APIRouter(prefix="/audit-logs", tags=["Audit"])


@audit_router.get("/", response_model=AuditLogList)
def get_audit_logs(
    entity_type: Optional[str] = Query(None, description="Filtrar por tipo de entidad"),
    entity_id: Optional[UUID] = Query(None, description="Filtrar por entidad"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    auth_context: AuthContext = Depends(AuthDependencies.require_supervisor()),
    db: Session = Depends(get_db)
):
    """
    Consultar el rastro de auditoría de la empresa.

    Solo admin/manager.
    """
    return AuditService(db).get_logs(
        tenant_id=auth_context.tenant_id,
        entity_type=entity_type,
        entity_id=entity_id,
        limit=limit,
        offset=offset
    )
