from app.database.database import Base
from sqlalchemy import Column, String, JSON, Uuid
from uuid import uuid4
from app.common.mixins import TenantMixin, CreatedAtMixin


class AuditAction:
    """Acciones auditadas"""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    OPEN = "OPEN"
    CLOSE = "CLOSE"
    CASH_MOVEMENT = "CASH_MOVEMENT"
    SALE = "SALE"
    VOID = "VOID"


class AuditLog(Base, TenantMixin, CreatedAtMixin):
    """Rastro de auditoría de transiciones de estado. Solo inserción."""
    __tablename__ = "audit_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    action = Column(String(30), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False, index=True)
    entity_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    new_values = Column(JSON, nullable=True)
