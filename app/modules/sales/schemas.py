from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
from datetime import datetime

from app.modules.sales.models import PaymentMethod, SaleStatus


class SalePaymentCreate(BaseModel):
    method: PaymentMethod = Field(..., description="Medio de pago")
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    reference: Optional[str] = Field(None, max_length=100, description="Voucher, número de transferencia, etc.")


class SaleCreate(BaseModel):
    """
    Venta POS. El total debe ser subtotal + impuestos - descuento y los
    pagos deben sumar el total.
    """
    subtotal: Decimal = Field(..., ge=0, decimal_places=2)
    tax: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    discount: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    total: Decimal = Field(..., ge=0, decimal_places=2)
    payments: List[SalePaymentCreate] = Field(..., min_length=1)

    @model_validator(mode='after')
    def validate_total(self):
        if abs(self.subtotal + self.tax - self.discount - self.total) > Decimal("0.01"):
            raise ValueError('El total no coincide con subtotal + impuestos - descuento')
        return self


class SaleVoidRequest(BaseModel):
    """Anulación de una venta; el motivo queda en la venta y en la auditoría"""
    reason: str = Field(..., min_length=1, max_length=500)

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, v: str) -> str:
        cleaned = v.strip()
        if not cleaned:
            raise ValueError('El motivo de anulación no puede estar vacío')
        return cleaned


class SalePaymentOut(BaseModel):
    id: UUID
    method: PaymentMethod
    amount: Decimal
    reference: Optional[str] = None

    model_config = {"from_attributes": True}


class SaleOut(BaseModel):
    id: UUID
    session_id: UUID
    sale_number: str
    subtotal: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal
    status: SaleStatus
    created_by: UUID
    created_at: datetime
    voided_at: Optional[datetime] = None
    voided_by: Optional[UUID] = None
    void_reason: Optional[str] = None
    payments: List[SalePaymentOut]

    model_config = {"from_attributes": True}


class SaleList(BaseModel):
    sales: List[SaleOut]
    total: int
