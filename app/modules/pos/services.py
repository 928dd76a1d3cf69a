"""
Servicios de negocio para el módulo POS (Point of Sale)

Implementa la lógica de negocio para:
- CashRegisterService: Alta, edición y consulta de cajas registradoras
- POSSessionService: Apertura/cierre de turnos, arqueo y movimientos de caja

Integración con otros módulos:
- Warehouses: Cada caja pertenece a una bodega del tenant
- Sales: Los pagos en efectivo alimentan el efectivo esperado
- Audit: Cada transición de estado deja rastro (best-effort)
- Auth: Validación de permisos y contexto de usuario
"""

from fastapi import HTTPException
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import update, desc
from decimal import Decimal
from typing import List, Optional, Dict, Any
from uuid import UUID, uuid4
from datetime import datetime
import logging

from app.core.config import settings
from app.common.exceptions import (
    StockFlowError, NotFoundError, ConflictError, InvalidStateError
)
from app.common.mixins import utcnow
from app.common.validators import require_non_negative, require_positive, code_from_name
from app.modules.auth.schemas import AuthContext, UserSummary
from app.modules.audit.models import AuditAction
from app.modules.audit.service import AuditService
from app.modules.pos.models import (
    CashRegister, POSSession, CashMovement,
    CashRegisterStatus, POSSessionStatus
)
from app.modules.pos.permissions import ensure_can_operate_session
from app.modules.pos.reports import POSReportsService
from app.modules.pos.schemas import (
    CashRegisterCreate, CashRegisterUpdate, CashRegisterDetail,
    OpenSessionRequest, CloseSessionRequest, CashMovementCreate,
    POSSessionDetail, XZReport
)
from app.modules.warehouses.models import Warehouse

logger = logging.getLogger(__name__)

# Columnas NOT NULL de la caja: un null explícito en la edición se ignora
REQUIRED_REGISTER_FIELDS = ("name", "code", "status")


class CashRegisterService:
    """Servicio para gestión de cajas registradoras"""

    def __init__(self, db: Session):
        self.db = db

    def _get_register(self, register_id: UUID, tenant_id: UUID, lock: bool = False) -> CashRegister:
        query = self.db.query(CashRegister).filter(
            CashRegister.id == register_id,
            CashRegister.tenant_id == tenant_id
        )
        if lock:
            query = query.with_for_update()
        register = query.first()

        if not register:
            raise NotFoundError(f"Caja registradora con ID {register_id} no encontrada")
        return register

    def _open_sessions_by_register(self, register_ids: List[UUID]) -> Dict[UUID, POSSession]:
        if not register_ids:
            return {}
        sessions = self.db.query(POSSession).filter(
            POSSession.cash_register_id.in_(register_ids),
            POSSession.status == POSSessionStatus.OPEN
        ).all()
        return {s.cash_register_id: s for s in sessions}

    def _code_taken(self, tenant_id: UUID, code: str, exclude_id: Optional[UUID] = None) -> bool:
        query = self.db.query(CashRegister.id).filter(
            CashRegister.tenant_id == tenant_id,
            CashRegister.code == code
        )
        if exclude_id:
            query = query.filter(CashRegister.id != exclude_id)
        return query.first() is not None

    def _to_detail(self, register: CashRegister, active_session: Optional[POSSession]) -> CashRegisterDetail:
        detail = CashRegisterDetail.model_validate(register)
        detail.warehouse_name = register.warehouse.name if register.warehouse else None
        if active_session:
            detail.active_session_id = active_session.id
            detail.active_session_user = UserSummary.model_validate(active_session.user)
        return detail

    def create_cash_register(self, data: CashRegisterCreate, auth: AuthContext) -> CashRegisterDetail:
        """Crear caja registradora en una bodega del tenant"""
        try:
            warehouse = self.db.query(Warehouse).filter(
                Warehouse.id == data.warehouse_id,
                Warehouse.tenant_id == auth.tenant_id
            ).first()

            if not warehouse:
                raise NotFoundError(f"Bodega con ID {data.warehouse_id} no encontrada")

            code = data.code or code_from_name(
                data.name,
                fallback=settings.CASH_REGISTER_CODE_FALLBACK,
                suffix=uuid4().hex[:4].upper()
            )

            if self._code_taken(auth.tenant_id, code):
                raise ConflictError(f"Ya existe una caja con el código '{code}' en esta empresa")

            register = CashRegister(
                tenant_id=auth.tenant_id,
                warehouse_id=warehouse.id,
                name=data.name,
                code=code,
                description=data.description,
                status=CashRegisterStatus.OPEN
            )

            self.db.add(register)
            self.db.commit()
            self.db.refresh(register)

        except HTTPException:
            self.db.rollback()
            raise
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Error de integridad al crear la caja")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating cash register: {e}")
            raise StockFlowError("Error interno al crear la caja") from e

        logger.info(f"Cash register created: {register.code} ({register.id}) tenant={auth.tenant_id}")
        AuditService(self.db).record(
            tenant_id=auth.tenant_id,
            user_id=auth.user_id,
            action=AuditAction.CREATE,
            entity_type="cash_register",
            entity_id=register.id,
            new_values={"name": register.name, "code": register.code, "warehouse_id": register.warehouse_id}
        )
        return self._to_detail(register, None)

    def update_cash_register(self, register_id: UUID, data: CashRegisterUpdate,
                             auth: AuthContext) -> CashRegisterDetail:
        """
        Actualizar nombre, código, descripción o estado de una caja.

        El estado no puede cambiar mientras la caja tenga un turno abierto.
        """
        changes = data.model_dump(exclude_unset=True)
        try:
            # Mismo bloqueo que la apertura: el chequeo de turno abierto y el
            # cambio de estado no se intercalan con un open_session
            register = self._get_register(register_id, auth.tenant_id, lock=True)
            open_session = self._open_sessions_by_register([register.id]).get(register.id)

            new_status = changes.get("status")
            if new_status is not None and new_status != register.status and open_session:
                raise InvalidStateError(
                    "No se puede cambiar el estado de una caja con un turno abierto"
                )

            new_code = changes.get("code")
            if new_code and new_code != register.code and self._code_taken(auth.tenant_id, new_code, register.id):
                raise ConflictError(f"Ya existe una caja con el código '{new_code}' en esta empresa")

            for field, value in changes.items():
                if value is None and field in REQUIRED_REGISTER_FIELDS:
                    continue
                setattr(register, field, value)

            self.db.commit()
            self.db.refresh(register)

        except HTTPException:
            self.db.rollback()
            raise
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Error de integridad al actualizar la caja")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error updating cash register {register_id}: {e}")
            raise StockFlowError("Error interno al actualizar la caja") from e

        logger.info(f"Cash register updated: {register.id} fields={sorted(changes)}")
        AuditService(self.db).record(
            tenant_id=auth.tenant_id,
            user_id=auth.user_id,
            action=AuditAction.UPDATE,
            entity_type="cash_register",
            entity_id=register.id,
            new_values=changes
        )
        return self._to_detail(register, open_session)

    def get_cash_register(self, register_id: UUID, tenant_id: UUID) -> CashRegisterDetail:
        register = self._get_register(register_id, tenant_id)
        open_session = self._open_sessions_by_register([register.id]).get(register.id)
        return self._to_detail(register, open_session)

    def list_cash_registers(self, tenant_id: UUID, warehouse_id: Optional[UUID] = None,
                            status: Optional[CashRegisterStatus] = None,
                            limit: int = 100, offset: int = 0) -> Dict[str, Any]:
        """Listar cajas del tenant con su turno abierto, si lo tienen"""
        query = self.db.query(CashRegister).filter(CashRegister.tenant_id == tenant_id)

        if warehouse_id:
            query = query.filter(CashRegister.warehouse_id == warehouse_id)
        if status:
            query = query.filter(CashRegister.status == status)

        total = query.count()
        registers = query.order_by(CashRegister.name).offset(offset).limit(limit).all()
        open_sessions = self._open_sessions_by_register([r.id for r in registers])

        return {
            "cash_registers": [self._to_detail(r, open_sessions.get(r.id)) for r in registers],
            "total": total,
            "limit": limit,
            "offset": offset
        }


class POSSessionService:
    """Servicio para turnos de caja: apertura, movimientos y cierre con arqueo"""

    def __init__(self, db: Session):
        self.db = db
        self.reports = POSReportsService(db)

    def _session_query(self, tenant_id: UUID):
        return self.db.query(POSSession).filter(POSSession.tenant_id == tenant_id)

    def get_session(self, session_id: UUID, tenant_id: UUID) -> POSSession:
        session = self._session_query(tenant_id).filter(POSSession.id == session_id).first()
        if not session:
            raise NotFoundError(f"Turno con ID {session_id} no encontrado")
        return session

    def to_detail(self, session: POSSession, summary=None) -> POSSessionDetail:
        detail = POSSessionDetail.model_validate(session)
        detail.summary = summary if summary is not None else self.reports.build_summary(session)
        return detail

    def get_session_detail(self, session_id: UUID, tenant_id: UUID) -> POSSessionDetail:
        return self.to_detail(self.get_session(session_id, tenant_id))

    def _audit(self, auth: AuthContext, action: str, session_id: UUID, values: Dict[str, Any]) -> None:
        AuditService(self.db).record(
            tenant_id=auth.tenant_id,
            user_id=auth.user_id,
            action=action,
            entity_type="pos_session",
            entity_id=session_id,
            new_values=values
        )

    # ===== APERTURA =====

    def open_session(self, data: OpenSessionRequest, auth: AuthContext) -> POSSessionDetail:
        """
        Abrir un turno sobre una caja.

        La fila de la caja se bloquea (FOR UPDATE) durante la verificación y
        el índice único parcial sobre turnos OPEN cubre cualquier carrera
        restante: un IntegrityError se traduce a conflicto.
        """
        opening_amount = require_non_negative(data.opening_amount, "opening_amount")

        try:
            register = self.db.query(CashRegister).filter(
                CashRegister.id == data.cash_register_id,
                CashRegister.tenant_id == auth.tenant_id
            ).with_for_update().first()

            if not register:
                raise NotFoundError(f"Caja registradora con ID {data.cash_register_id} no encontrada")

            if register.status != CashRegisterStatus.OPEN:
                raise InvalidStateError(
                    f"La caja '{register.code}' no está habilitada (estado: {register.status.value})"
                )

            existing = self.db.query(POSSession.id).filter(
                POSSession.cash_register_id == register.id,
                POSSession.status == POSSessionStatus.OPEN
            ).first()

            if existing:
                raise ConflictError(f"La caja '{register.code}' ya tiene un turno abierto")

            session = POSSession(
                tenant_id=auth.tenant_id,
                cash_register_id=register.id,
                user_id=auth.user_id,
                status=POSSessionStatus.OPEN,
                opening_amount=opening_amount,
                opened_at=utcnow(),
                notes=data.notes
            )

            self.db.add(session)
            self.db.flush()
            self.db.commit()
            self.db.refresh(session)

        except HTTPException:
            self.db.rollback()
            raise
        except IntegrityError:
            self.db.rollback()
            logger.warning(f"Concurrent open rejected for register {data.cash_register_id}")
            raise ConflictError("La caja ya tiene un turno abierto")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error opening session on register {data.cash_register_id}: {e}")
            raise StockFlowError("Error interno al abrir el turno") from e

        logger.info(
            f"POS session opened: {session.id} register={session.cash_register_id} "
            f"user={auth.user_id} opening={opening_amount}"
        )
        self._audit(auth, AuditAction.OPEN, session.id, {
            "cash_register_id": session.cash_register_id,
            "opening_amount": opening_amount,
            "status": POSSessionStatus.OPEN.value
        })
        return self.to_detail(session)

    # ===== MOVIMIENTOS =====

    def register_cash_movement(self, session_id: UUID, data: CashMovementCreate,
                               auth: AuthContext) -> CashMovement:
        """Registrar ingreso o retiro de efectivo en un turno abierto"""
        amount = require_positive(data.amount, "amount")

        try:
            # FOR SHARE: bloquea el cierre concurrente sin serializar movimientos
            session = self._session_query(auth.tenant_id).filter(
                POSSession.id == session_id
            ).with_for_update(read=True).first()

            if not session:
                raise NotFoundError(f"Turno con ID {session_id} no encontrado")

            if not session.is_open:
                raise InvalidStateError("Solo se pueden registrar movimientos en turnos abiertos")

            ensure_can_operate_session(session, auth, "registrar movimientos")

            movement = CashMovement(
                tenant_id=auth.tenant_id,
                session_id=session.id,
                type=data.type,
                amount=amount,
                reference=data.reference,
                notes=data.notes,
                created_by=auth.user_id
            )

            self.db.add(movement)
            self.db.commit()
            self.db.refresh(movement)

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error registering cash movement on session {session_id}: {e}")
            raise StockFlowError("Error interno al registrar el movimiento") from e

        logger.info(f"Cash movement {movement.type.value} {amount} on session {session_id}")
        self._audit(auth, AuditAction.CASH_MOVEMENT, session_id, {
            "movement_id": movement.id,
            "type": movement.type.value,
            "amount": amount
        })
        return movement

    def get_movements(self, session_id: UUID, tenant_id: UUID) -> Dict[str, Any]:
        session = self.get_session(session_id, tenant_id)
        movements = self.db.query(CashMovement).filter(
            CashMovement.session_id == session.id
        ).order_by(CashMovement.created_at).all()
        return {"movements": movements, "total": len(movements)}

    # ===== CIERRE =====

    def close_session(self, session_id: UUID, data: CloseSessionRequest,
                      auth: AuthContext) -> POSSessionDetail:
        """
        Cerrar turno con arqueo.

        expected = apertura + ventas en efectivo + ingresos - retiros
        difference = contado - expected (negativo = faltante)

        El cambio de estado es un UPDATE condicional sobre status = OPEN;
        si no afecta filas, otro cierre ganó la carrera.
        """
        closing_amount = require_non_negative(data.closing_amount, "closing_amount")

        try:
            session = self._session_query(auth.tenant_id).filter(
                POSSession.id == session_id
            ).with_for_update().first()

            if not session:
                raise NotFoundError(f"Turno con ID {session_id} no encontrado")

            if not session.is_open:
                raise InvalidStateError("El turno ya está cerrado")

            ensure_can_operate_session(session, auth, "cerrar el turno")

            expected_amount = self.reports.calculate_expected_cash(session)
            difference = closing_amount - expected_amount

            notes = session.notes
            if data.notes:
                notes = f"{notes}\n{data.notes}" if notes else data.notes

            result = self.db.execute(
                update(POSSession)
                .where(
                    POSSession.id == session.id,
                    POSSession.tenant_id == auth.tenant_id,
                    POSSession.status == POSSessionStatus.OPEN
                )
                .values(
                    status=POSSessionStatus.CLOSED,
                    closing_amount=closing_amount,
                    expected_amount=expected_amount,
                    difference=difference,
                    closed_by=auth.user_id,
                    closed_at=utcnow(),
                    notes=notes,
                    updated_at=utcnow()
                )
            )

            if result.rowcount != 1:
                raise InvalidStateError("El turno ya está cerrado")

            self.db.commit()
            self.db.refresh(session)

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error closing session {session_id}: {e}")
            raise StockFlowError("Error interno al cerrar el turno") from e

        logger.info(
            f"POS session closed: {session.id} expected={expected_amount} "
            f"counted={closing_amount} difference={difference}"
        )
        if difference != Decimal("0.00"):
            logger.warning(f"Cash difference on session {session.id}: {difference}")

        self._audit(auth, AuditAction.CLOSE, session.id, {
            "status": POSSessionStatus.CLOSED.value,
            "closing_amount": closing_amount,
            "expected_amount": expected_amount,
            "difference": difference
        })
        return self.to_detail(session)

    # ===== CONSULTAS =====

    def find_open_session_for_user(self, auth: AuthContext, lock_shared: bool = False) -> Optional[POSSession]:
        """
        Turno abierto más reciente del usuario.

        Un usuario puede tener turnos abiertos en varias cajas; el turno
        "actual" y el que recibe las ventas es siempre el último abierto.
        """
        query = self._session_query(auth.tenant_id).filter(
            POSSession.user_id == auth.user_id,
            POSSession.status == POSSessionStatus.OPEN
        ).order_by(desc(POSSession.opened_at), desc(POSSession.id))

        if lock_shared:
            query = query.with_for_update(read=True)
        return query.first()

    def get_current_session(self, auth: AuthContext) -> Optional[POSSessionDetail]:
        """Turno abierto del usuario en el tenant, o None"""
        session = self.find_open_session_for_user(auth)

        if not session:
            return None
        return self.to_detail(session)

    def list_sessions(self, tenant_id: UUID, cash_register_id: Optional[UUID] = None,
                      status: Optional[POSSessionStatus] = None, user_id: Optional[UUID] = None,
                      date_from: Optional[datetime] = None, date_to: Optional[datetime] = None,
                      limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        """Listar turnos con filtros; los resúmenes se calculan en lote"""
        query = self._session_query(tenant_id)

        if cash_register_id:
            query = query.filter(POSSession.cash_register_id == cash_register_id)
        if status:
            query = query.filter(POSSession.status == status)
        if user_id:
            query = query.filter(POSSession.user_id == user_id)
        if date_from:
            query = query.filter(POSSession.opened_at >= date_from)
        if date_to:
            query = query.filter(POSSession.opened_at <= date_to)

        total = query.count()
        sessions = query.order_by(desc(POSSession.opened_at)).offset(offset).limit(limit).all()
        summaries = self.reports.build_summaries(sessions)

        return {
            "sessions": [self.to_detail(s, summaries[s.id]) for s in sessions],
            "total": total,
            "limit": limit,
            "offset": offset
        }

    # ===== REPORTES =====

    def get_x_report(self, session_id: UUID, tenant_id: UUID) -> XZReport:
        return self.reports.generate_x_report(self.get_session(session_id, tenant_id))

    def get_z_report(self, session_id: UUID, tenant_id: UUID) -> XZReport:
        return self.reports.generate_z_report(self.get_session(session_id, tenant_id))
