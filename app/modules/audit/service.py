"""
Servicio de auditoría

La escritura de auditoría es best-effort: se ejecuta después del commit de
la operación principal y cualquier falla se registra en el log y se ignora.
"""

from fastapi.encoders import jsonable_encoder
from sqlalchemy import desc
from sqlalchemy.orm import Session
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID
import logging

from app.modules.audit.models import AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """Servicio para registrar y consultar la auditoría"""

    def __init__(self, db: Session):
        self.db = db

    def record(self, tenant_id: UUID, user_id: Optional[UUID], action: str,
               entity_type: str, entity_id: UUID,
               new_values: Optional[Dict[str, Any]] = None) -> Optional[AuditLog]:
        """Registrar una entrada de auditoría sin propagar errores"""
        try:
            entry = AuditLog(
                tenant_id=tenant_id,
                user_id=user_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                new_values=jsonable_encoder(new_values, custom_encoder={Decimal: str}) if new_values else None
            )
            self.db.add(entry)
            self.db.commit()
            return entry
        except Exception:
            self.db.rollback()
            logger.exception(f"Audit log write failed: {action} {entity_type} {entity_id}")
            return None

    def get_logs(self, tenant_id: UUID, entity_type: Optional[str] = None,
                 entity_id: Optional[UUID] = None, limit: int = 100,
                 offset: int = 0) -> Dict[str, Any]:
        """Listar auditoría del tenant, más recientes primero"""
        query = self.db.query(AuditLog).filter(AuditLog.tenant_id == tenant_id)

        if entity_type:
            query = query.filter(AuditLog.entity_type == entity_type)
        if entity_id:
            query = query.filter(AuditLog.entity_id == entity_id)

        total = query.count()
        logs = query.order_by(desc(AuditLog.created_at)).offset(offset).limit(limit).all()

        return {"audit_logs": logs, "total": total, "limit": limit, "offset": offset}
