"""
Módulo POS (Point of Sale) - StockFlow

Este módulo maneja el ciclo de vida de caja del punto de venta:

ENTIDADES PRINCIPALES:
- CashRegister: Cajas registradoras asociadas a una bodega
- POSSession: Turnos de caja (apertura → cierre con arqueo)
- CashMovement: Ingresos y retiros manuales de efectivo

FUNCIONALIDADES:
- Apertura de turno con base inicial
- Registro de movimientos de efectivo
- Cierre con arqueo: efectivo esperado vs. contado
- Reportes X (parciales) y Z (de cierre)

REGLAS DE NEGOCIO:
- A lo sumo un turno abierto por caja
- Un turno cerrado no se reabre ni recibe movimientos o ventas
- Los totales se recalculan, nunca se guardan como contadores

SEGURIDAD:
- admin/manager: Todas las operaciones, listados y reporte Z
- employee: Opera sus propios turnos
"""

from .models import (
    CashRegister, POSSession, CashMovement,
    CashRegisterStatus, POSSessionStatus, CashMovementType
)

from .services import CashRegisterService, POSSessionService
from .reports import POSReportsService

from .routers import cash_registers_router, pos_sessions_router

__all__ = [
    # Models
    "CashRegister", "POSSession", "CashMovement",
    "CashRegisterStatus", "POSSessionStatus", "CashMovementType",

    # Services
    "CashRegisterService", "POSSessionService", "POSReportsService",

    # Routers
    "cash_registers_router", "pos_sessions_router"
]
