"""
Modelos SQLAlchemy para el módulo POS (Point of Sale)

Este módulo maneja el ciclo de vida de caja del punto de venta:
- CashRegister: Cajas registradoras físicas/lógicas asociadas a una bodega
- POSSession: Turno de un cajero sobre una caja (apertura → cierre con arqueo)
- CashMovement: Ingresos/retiros manuales de efectivo durante el turno

Los totales del turno (efectivo esperado, ventas por medio de pago) NO se
guardan como contadores: se recalculan a partir de movimientos y ventas.

Arquitectura multi-tenant: Todas las tablas incluyen tenant_id
"""

from app.database.database import Base
from sqlalchemy import Column, String, DateTime, ForeignKey, Numeric, Enum, Text, UniqueConstraint, Index, Uuid, text
from sqlalchemy.orm import relationship
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin, CreatedAtMixin, utcnow
import enum


# ===== ENUMS =====

class CashRegisterStatus(str, enum.Enum):
    """Estados de caja registradora"""
    OPEN = "open"             # Habilitada para abrir turnos
    CLOSED = "closed"         # Fuera de servicio
    SUSPENDED = "suspended"   # Suspendida temporalmente


class POSSessionStatus(str, enum.Enum):
    """Estados de un turno de caja. CLOSED es terminal."""
    OPEN = "open"
    CLOSED = "closed"


class CashMovementType(str, enum.Enum):
    """Tipos de movimiento manual de caja"""
    CASH_IN = "cash_in"     # Ingreso de efectivo
    CASH_OUT = "cash_out"   # Retiro de efectivo


# ===== MODELOS =====

class CashRegister(Base, TenantMixin, TimestampMixin):
    """
    Cajas registradoras del punto de venta

    Nunca se eliminan: los turnos históricos las referencian.
    """
    __tablename__ = "cash_registers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    warehouse_id = Column(Uuid(as_uuid=True), ForeignKey("warehouses.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    code = Column(String(20), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(
        Enum(CashRegisterStatus, name="cash_register_status"),
        nullable=False,
        default=CashRegisterStatus.OPEN,
        index=True
    )

    # Relationships
    warehouse = relationship("Warehouse", back_populates="cash_registers")
    sessions = relationship("POSSession", back_populates="cash_register", order_by="POSSession.opened_at.desc()")

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_cash_register_tenant_code"),
    )


class POSSession(Base, TenantMixin, TimestampMixin):
    """
    Turno de caja (sesión POS)

    Se crea en estado OPEN y pasa una única vez a CLOSED con el monto
    contado, el esperado y la diferencia. A lo sumo un turno OPEN por caja,
    garantizado por el índice único parcial.
    """
    __tablename__ = "pos_sessions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    cash_register_id = Column(Uuid(as_uuid=True), ForeignKey("cash_registers.id"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(
        Enum(POSSessionStatus, name="pos_session_status"),
        nullable=False,
        default=POSSessionStatus.OPEN,
        index=True
    )

    # Montos
    opening_amount = Column(Numeric(15, 2), nullable=False)
    closing_amount = Column(Numeric(15, 2), nullable=True)   # Solo se llena al cerrar
    expected_amount = Column(Numeric(15, 2), nullable=True)  # Efectivo esperado al cierre
    difference = Column(Numeric(15, 2), nullable=True)       # closing - expected (negativo = faltante)

    # Control de apertura/cierre
    opened_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    closed_by = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True)
    notes = Column(Text, nullable=True)

    # Relationships
    cash_register = relationship("CashRegister", back_populates="sessions")
    user = relationship("User", foreign_keys=[user_id])
    closed_by_user = relationship("User", foreign_keys=[closed_by])
    movements = relationship("CashMovement", back_populates="session", order_by="CashMovement.created_at")

    __table_args__ = (
        Index(
            "uq_pos_session_open_per_register",
            "cash_register_id",
            unique=True,
            postgresql_where=text("status = 'OPEN'"),
            sqlite_where=text("status = 'OPEN'"),
        ),
        Index("ix_pos_sessions_tenant_opened_at", "tenant_id", "opened_at"),
    )

    @property
    def is_open(self) -> bool:
        return self.status == POSSessionStatus.OPEN


class CashMovement(Base, TenantMixin, CreatedAtMixin):
    """
    Movimientos manuales de efectivo de un turno

    Append-only: nunca se actualizan ni se eliminan. El monto es siempre
    positivo; el signo lo da el tipo.
    """
    __tablename__ = "cash_movements"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    session_id = Column(Uuid(as_uuid=True), ForeignKey("pos_sessions.id"), nullable=False, index=True)
    type = Column(Enum(CashMovementType, name="cash_movement_type"), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    reference = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)

    # Relationships
    session = relationship("POSSession", back_populates="movements")
    created_by_user = relationship("User")
