from pydantic import BaseModel, Field, field_validator
from typing import Optional
from uuid import UUID
from datetime import datetime
from app.common.validators import normalize_code

class WarehouseCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Nombre de la bodega")
    code: str = Field(..., min_length=1, max_length=20, description="Código único dentro de la empresa")
    address: Optional[str] = Field(None, max_length=255, description="Dirección")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        cleaned = v.strip()
        if not cleaned:
            raise ValueError('El nombre no puede estar vacío')
        return cleaned

    @field_validator('code')
    @classmethod
    def validate_code(cls, v: str) -> str:
        cleaned = normalize_code(v)
        if not cleaned:
            raise ValueError('El código no puede estar vacío')
        return cleaned

class WarehouseOut(BaseModel):
    id: UUID = Field(..., description="Unique identifier of the warehouse")
    name: str
    code: str
    address: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

class WarehouseList(BaseModel):
    warehouses: list[WarehouseOut] = Field(..., description="List of warehouses")
    total: int = Field(..., description="Total number of warehouses")
    limit: int
    offset: int
