"""
Routers FastAPI para el módulo POS (Point of Sale)

Define los endpoints REST para:
- CashRegisters: Alta, edición y consulta de cajas
- POSSessions: Apertura/cierre de turnos, movimientos de caja y reportes X/Z

Todos los endpoints implementan:
- Validación de permisos por rol
- Filtros multi-tenant automáticos (tenant del token)
- Paginación en los listados
"""

from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from datetime import datetime

from app.core.config import settings
from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.pos.models import CashRegisterStatus, POSSessionStatus
from app.modules.pos.services import CashRegisterService, POSSessionService
from app.modules.pos.schemas import (
    CashRegisterCreate, CashRegisterUpdate, CashRegisterDetail, CashRegisterList,
    OpenSessionRequest, CloseSessionRequest, POSSessionDetail, POSSessionList,
    CashMovementCreate, CashMovementOut, CashMovementList, XZReport
)


# ===== CASH REGISTERS ROUTER =====

cash_registers_router = APIRouter(prefix="/cash-registers", tags=["POS"])


@cash_registers_router.post("/", response_model=CashRegisterDetail, status_code=status.HTTP_201_CREATED)
def create_cash_register(
    register_data: CashRegisterCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_supervisor())
):
    """
    Crear una caja registradora en una bodega.

    - **warehouse_id**: Bodega de la empresa
    - **name**: Nombre visible de la caja
    - **code**: Código único en la empresa (se genera a partir del nombre si se omite)

    La caja se crea habilitada (status=open). Solo admin/manager.
    """
    service = CashRegisterService(db)
    return service.create_cash_register(register_data, auth_context)


@cash_registers_router.get("/", response_model=CashRegisterList)
def list_cash_registers(
    warehouse_id: Optional[UUID] = Query(None, description="Filtrar por bodega"),
    register_status: Optional[CashRegisterStatus] = Query(None, alias="status", description="Filtrar por estado"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Listar cajas registradoras con su turno abierto, si lo tienen."""
    service = CashRegisterService(db)
    return service.list_cash_registers(
        tenant_id=auth_context.tenant_id,
        warehouse_id=warehouse_id,
        status=register_status,
        limit=limit,
        offset=offset
    )


@cash_registers_router.get("/{register_id}", response_model=CashRegisterDetail)
def get_cash_register(
    register_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Obtener detalle de una caja registradora."""
    service = CashRegisterService(db)
    return service.get_cash_register(register_id, auth_context.tenant_id)


@cash_registers_router.patch("/{register_id}", response_model=CashRegisterDetail)
def update_cash_register(
    register_id: UUID,
    register_data: CashRegisterUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_supervisor())
):
    """
    Actualizar una caja registradora.

    El estado no se puede cambiar mientras la caja tenga un turno abierto.
    Las cajas no se eliminan: para sacarlas de servicio use status=closed
    o status=suspended.
    """
    service = CashRegisterService(db)
    return service.update_cash_register(register_id, register_data, auth_context)


# ===== POS SESSIONS ROUTER =====

pos_sessions_router = APIRouter(prefix="/pos-sessions", tags=["POS"])


@pos_sessions_router.post("/open", response_model=POSSessionDetail, status_code=status.HTTP_201_CREATED)
def open_session(
    session_data: OpenSessionRequest,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """
    Abrir turno de caja.

    - **cash_register_id**: Caja habilitada sin turno abierto
    - **opening_amount**: Base de efectivo inicial (>= 0)

    Responde 409 si la caja ya tiene un turno abierto.
    """
    service = POSSessionService(db)
    return service.open_session(session_data, auth_context)


@pos_sessions_router.get("/current", response_model=Optional[POSSessionDetail])
def get_current_session(
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Turno abierto del usuario autenticado, o null si no tiene."""
    service = POSSessionService(db)
    return service.get_current_session(auth_context)


@pos_sessions_router.get("/", response_model=POSSessionList)
def list_sessions(
    cash_register_id: Optional[UUID] = Query(None, description="Filtrar por caja"),
    session_status: Optional[POSSessionStatus] = Query(None, alias="status", description="Filtrar por estado"),
    user_id: Optional[UUID] = Query(None, description="Filtrar por cajero"),
    date_from: Optional[datetime] = Query(None, description="Apertura desde"),
    date_to: Optional[datetime] = Query(None, description="Apertura hasta"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_supervisor())
):
    """
    Listar turnos de la empresa con su resumen.

    Solo admin/manager.
    """
    service = POSSessionService(db)
    return service.list_sessions(
        tenant_id=auth_context.tenant_id,
        cash_register_id=cash_register_id,
        status=session_status,
        user_id=user_id,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset
    )


@pos_sessions_router.get("/{session_id}", response_model=POSSessionDetail)
def get_session(
    session_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Obtener detalle de un turno con su resumen calculado."""
    service = POSSessionService(db)
    return service.get_session_detail(session_id, auth_context.tenant_id)


@pos_sessions_router.post("/{session_id}/close", response_model=POSSessionDetail)
def close_session(
    session_id: UUID,
    close_data: CloseSessionRequest,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """
    Cerrar turno con arqueo.

    - **closing_amount**: Efectivo contado físicamente

    Calcula el efectivo esperado y la diferencia (contado - esperado).
    Solo el cajero del turno o un admin/manager pueden cerrarlo.
    """
    service = POSSessionService(db)
    return service.close_session(session_id, close_data, auth_context)


@pos_sessions_router.post("/{session_id}/cash-movement", response_model=CashMovementOut,
                          status_code=status.HTTP_201_CREATED)
def register_cash_movement(
    session_id: UUID,
    movement_data: CashMovementCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """
    Registrar ingreso (cash_in) o retiro (cash_out) de efectivo.

    El turno debe estar abierto.
    """
    service = POSSessionService(db)
    return service.register_cash_movement(session_id, movement_data, auth_context)


@pos_sessions_router.get("/{session_id}/movements", response_model=CashMovementList)
def get_session_movements(
    session_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Movimientos de caja del turno en orden cronológico."""
    service = POSSessionService(db)
    return service.get_movements(session_id, auth_context.tenant_id)


@pos_sessions_router.get("/{session_id}/x-report", response_model=XZReport)
def get_x_report(
    session_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Reporte X: lectura parcial del turno. No modifica nada."""
    service = POSSessionService(db)
    return service.get_x_report(session_id, auth_context.tenant_id)


@pos_sessions_router.get("/{session_id}/z-report", response_model=XZReport)
def get_z_report(
    session_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_supervisor())
):
    """
    Reporte Z: reporte definitivo de un turno cerrado.

    Incluye el efectivo declarado y la diferencia del arqueo. Solo admin/manager.
    """
    service = POSSessionService(db)
    return service.get_z_report(session_id, auth_context.tenant_id)
