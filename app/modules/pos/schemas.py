"""
Esquemas Pydantic para el módulo POS (Point of Sale)

Define la validación de datos de entrada y salida para:
- CashRegister: Cajas registradoras asociadas a una bodega
- POSSession: Apertura y cierre de turnos con arqueo
- CashMovement: Ingresos/retiros manuales de efectivo
- XZReport: Reportes X (parcial) y Z (cierre)

Los montos se manejan siempre como Decimal.
"""

from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from enum import Enum

from app.common.validators import normalize_code
from app.modules.auth.schemas import UserSummary
from app.modules.pos.models import CashRegisterStatus, POSSessionStatus, CashMovementType


# ===== ENUMS =====

class ReportType(str, Enum):
    X = "X"
    Z = "Z"


# ===== CASH REGISTER SCHEMAS =====

class CashRegisterCreate(BaseModel):
    """Schema para crear una caja registradora"""
    warehouse_id: UUID = Field(..., description="Bodega a la que pertenece la caja")
    name: str = Field(..., min_length=1, max_length=100, description="Nombre de la caja")
    code: Optional[str] = Field(None, max_length=20, description="Código único; se genera si se omite")
    description: Optional[str] = Field(None, max_length=500)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        cleaned = v.strip()
        if not cleaned:
            raise ValueError('El nombre no puede estar vacío')
        return cleaned

    @field_validator('code')
    @classmethod
    def validate_code(cls, v: Optional[str]) -> Optional[str]:
        return normalize_code(v)


class CashRegisterUpdate(BaseModel):
    """Schema para actualizar una caja. Todos los campos son opcionales."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    code: Optional[str] = Field(None, max_length=20)
    description: Optional[str] = Field(None, max_length=500)
    status: Optional[CashRegisterStatus] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        cleaned = v.strip()
        if not cleaned:
            raise ValueError('El nombre no puede estar vacío')
        return cleaned

    @field_validator('code')
    @classmethod
    def validate_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        cleaned = normalize_code(v)
        if not cleaned:
            raise ValueError('El código no puede estar vacío')
        return cleaned


class CashRegisterOut(BaseModel):
    id: UUID
    tenant_id: UUID
    warehouse_id: UUID
    name: str
    code: str
    description: Optional[str] = None
    status: CashRegisterStatus
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CashRegisterDetail(CashRegisterOut):
    """Caja con la bodega y el turno abierto (si existe)"""
    warehouse_name: Optional[str] = None
    active_session_id: Optional[UUID] = None
    active_session_user: Optional[UserSummary] = None


class CashRegisterList(BaseModel):
    cash_registers: List[CashRegisterDetail]
    total: int
    limit: int
    offset: int


class CashRegisterRef(BaseModel):
    id: UUID
    name: str
    code: str

    model_config = {"from_attributes": True}


# ===== POS SESSION SCHEMAS =====

class OpenSessionRequest(BaseModel):
    """Schema para abrir un turno de caja"""
    cash_register_id: UUID = Field(..., description="Caja sobre la que se abre el turno")
    opening_amount: Decimal = Field(..., ge=0, decimal_places=2, description="Base de efectivo inicial")
    notes: Optional[str] = Field(None, max_length=500)


class CloseSessionRequest(BaseModel):
    """Schema para cerrar un turno con el efectivo contado (arqueo)"""
    closing_amount: Decimal = Field(..., ge=0, decimal_places=2, description="Efectivo contado al cierre")
    notes: Optional[str] = Field(None, max_length=500)


class SessionSummary(BaseModel):
    """Totales calculados del turno"""
    total_sales: Decimal = Field(description="Total vendido en el turno")
    total_cash_sales: Decimal = Field(description="Pagos en efectivo")
    total_cash_in: Decimal
    total_cash_out: Decimal
    expected_cash: Decimal = Field(description="Efectivo que debería haber en caja")
    transaction_count: int
    movement_count: int


class POSSessionOut(BaseModel):
    id: UUID
    tenant_id: UUID
    cash_register_id: UUID
    user_id: UUID
    status: POSSessionStatus
    opening_amount: Decimal
    closing_amount: Optional[Decimal] = None
    expected_amount: Optional[Decimal] = None
    difference: Optional[Decimal] = None
    opened_at: datetime
    closed_at: Optional[datetime] = None
    closed_by: Optional[UUID] = None
    notes: Optional[str] = None

    model_config = {"from_attributes": True}


class POSSessionDetail(POSSessionOut):
    """Turno con caja, cajero y resumen calculado"""
    cash_register: Optional[CashRegisterRef] = None
    user: Optional[UserSummary] = None
    summary: Optional[SessionSummary] = None


class POSSessionList(BaseModel):
    sessions: List[POSSessionDetail]
    total: int
    limit: int
    offset: int


# ===== CASH MOVEMENT SCHEMAS =====

class CashMovementCreate(BaseModel):
    """Schema para registrar un ingreso o retiro de efectivo"""
    type: CashMovementType = Field(..., description="cash_in o cash_out")
    amount: Decimal = Field(..., gt=0, decimal_places=2, description="Monto siempre positivo")
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=500)


class CashMovementOut(BaseModel):
    id: UUID
    session_id: UUID
    type: CashMovementType
    amount: Decimal
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_by: UUID
    created_at: datetime

    model_config = {"from_attributes": True}


class CashMovementList(BaseModel):
    movements: List[CashMovementOut]
    total: int


# ===== REPORT SCHEMAS =====

class ReportSessionInfo(BaseModel):
    id: UUID
    cash_register_name: str
    cash_register_code: str
    user_name: str
    opened_at: datetime
    closed_at: Optional[datetime] = None


class SalesByMethodOut(BaseModel):
    method: str
    count: int
    total: Decimal


class XZReport(BaseModel):
    """
    Reporte X (lectura parcial, sin efectos) o Z (cierre definitivo).
    difference solo viene en el reporte Z.
    """
    type: ReportType
    session: ReportSessionInfo
    opening_amount: Decimal
    total_cash_sales: Decimal
    total_card_sales: Decimal
    total_other_sales: Decimal
    total_sales_amount: Decimal
    total_cash_in: Decimal
    total_cash_out: Decimal
    expected_cash_amount: Decimal
    declared_cash_amount: Optional[Decimal] = None
    difference: Optional[Decimal] = None
    transaction_count: int
    sales_by_method: List[SalesByMethodOut]
    generated_at: datetime
