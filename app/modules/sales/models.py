"""
Modelos de ventas POS

Las ventas se registran contra el turno abierto del cajero. El módulo POS
solo las lee para los reportes X/Z y el cálculo de efectivo esperado.
"""

from app.database.database import Base
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Numeric, Enum, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
from app.common.mixins import TenantMixin, CreatedAtMixin
import enum


class PaymentMethod(str, enum.Enum):
    """Medios de pago aceptados en POS"""
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BANK_TRANSFER = "bank_transfer"
    PSE = "pse"
    NEQUI = "nequi"
    DAVIPLATA = "daviplata"
    OTHER = "other"


CARD_METHODS = (PaymentMethod.CREDIT_CARD, PaymentMethod.DEBIT_CARD)


class SaleStatus(str, enum.Enum):
    """Estado de la venta. Una venta anulada no cuenta en arqueo ni reportes."""
    COMPLETED = "completed"
    VOIDED = "voided"


class POSSale(Base, TenantMixin, CreatedAtMixin):
    """Venta POS asociada a un turno de caja"""
    __tablename__ = "pos_sales"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    session_id = Column(Uuid(as_uuid=True), ForeignKey("pos_sessions.id"), nullable=False, index=True)
    sale_number = Column(String(30), nullable=False)
    subtotal = Column(Numeric(15, 2), nullable=False)
    tax = Column(Numeric(15, 2), nullable=False, default=0)
    discount = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False)
    status = Column(Enum(SaleStatus, name="pos_sale_status"), nullable=False, default=SaleStatus.COMPLETED, index=True)
    created_by = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)

    # Anulación
    voided_at = Column(DateTime(timezone=True), nullable=True)
    voided_by = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True)
    void_reason = Column(Text, nullable=True)

    # Relationships
    session = relationship("POSSession")
    payments = relationship("SalePayment", back_populates="sale", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("tenant_id", "sale_number", name="uq_pos_sale_tenant_number"),
    )


class SalePayment(Base, CreatedAtMixin):
    """Pago (parcial o total) de una venta POS"""
    __tablename__ = "sale_payments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    sale_id = Column(Uuid(as_uuid=True), ForeignKey("pos_sales.id"), nullable=False, index=True)
    method = Column(Enum(PaymentMethod, name="payment_method"), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    reference = Column(String(100), nullable=True)

    sale = relationship("POSSale", back_populates="payments")
