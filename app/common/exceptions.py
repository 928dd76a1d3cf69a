"""
Excepciones de dominio tipadas.

Cada error lleva un ``code`` estable (legible por máquina) además del
mensaje, y hereda de ``HTTPException`` para que FastAPI lo traduzca al
status correcto sin lógica extra en los routers:

    StockFlowError (base)
    +-- ValidationError     VALIDATION_ERROR  422
    +-- NotFoundError       NOT_FOUND         404
    +-- ConflictError       CONFLICT          409
    +-- InvalidStateError   INVALID_STATE     400
    +-- ForbiddenError      FORBIDDEN         403

El handler registrado en ``app.main`` renderiza todas con la forma
``{"detail", "code", "path"}``.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class StockFlowError(HTTPException):
    """Base de los errores de negocio."""

    code: str = "INTERNAL_ERROR"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(status_code=self.status_code, detail=detail)
        self.extra = extra or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"detail": self.detail, "code": self.code}
        body.update(self.extra)
        return body


class ValidationError(StockFlowError):
    """Entrada mal formada o fuera de rango (ej: monto negativo)."""

    code = "VALIDATION_ERROR"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, detail: str, field: Optional[str] = None):
        super().__init__(detail, extra={"field": field} if field else None)
        self.field = field


class NotFoundError(StockFlowError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(StockFlowError):
    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT


class InvalidStateError(StockFlowError):
    """Operación no permitida para el estado actual de la entidad."""

    code = "INVALID_STATE"
    status_code = status.HTTP_400_BAD_REQUEST


class ForbiddenError(StockFlowError):
    code = "FORBIDDEN"
    status_code = status.HTTP_403_FORBIDDEN
