from app.database.database import Base
from sqlalchemy import Column, String, Boolean, UniqueConstraint, Uuid
from uuid import uuid4
from sqlalchemy.orm import relationship
from app.common.mixins import TenantMixin, TimestampMixin

class Warehouse(Base, TenantMixin, TimestampMixin):
    """Bodega / sede. Cada caja registradora pertenece a una bodega."""
    __tablename__ = "warehouses"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False)
    code = Column(String(20), nullable=False)
    address = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    cash_registers = relationship("CashRegister", back_populates="warehouse")

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_warehouse_tenant_name"),
        UniqueConstraint("tenant_id", "code", name="uq_warehouse_tenant_code"),
    )
