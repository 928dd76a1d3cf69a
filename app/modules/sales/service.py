"""
Servicio de ventas POS

Una venta se registra siempre contra el turno abierto del cajero. El turno
se bloquea en modo compartido y se vuelve a verificar que siga abierto:
un cierre concurrente espera a que termine la venta, y una venta posterior
al cierre se rechaza.

Anular una venta no la borra: queda en estado VOIDED y deja de contar en el
efectivo esperado y en los reportes del turno.
"""

from fastapi import HTTPException
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import desc
from decimal import Decimal
from typing import Dict, Any
from uuid import UUID
import logging

from app.core.config import settings
from app.common.exceptions import (
    StockFlowError, ConflictError, InvalidStateError, ValidationError, NotFoundError, ForbiddenError
)
from app.common.mixins import utcnow
from app.common.validators import to_money
from app.modules.auth.schemas import AuthContext
from app.modules.audit.models import AuditAction
from app.modules.audit.service import AuditService
from app.modules.pos.models import POSSession, POSSessionStatus
from app.modules.pos.permissions import ensure_can_operate_session
from app.modules.pos.services import POSSessionService
from app.modules.sales.models import POSSale, SalePayment, SaleStatus
from app.modules.sales.schemas import SaleCreate, SaleVoidRequest

logger = logging.getLogger(__name__)

PAYMENT_TOLERANCE = Decimal("0.01")


class SaleService:
    """Servicio para registrar y consultar ventas POS"""

    def __init__(self, db: Session):
        self.db = db

    def _next_sale_number(self, tenant_id: UUID) -> str:
        count = self.db.query(POSSale).filter(POSSale.tenant_id == tenant_id).count()
        return f"{settings.SALE_NUMBER_PREFIX}-{count + 1:06d}"

    def create_sale(self, data: SaleCreate, auth: AuthContext) -> POSSale:
        """Registrar una venta con sus pagos en el turno abierto del usuario"""
        total = to_money(data.total)
        paid = sum((to_money(p.amount) for p in data.payments), Decimal("0.00"))
        if abs(paid - total) > PAYMENT_TOLERANCE:
            raise ValidationError(
                f"Los pagos ({paid}) no coinciden con el total de la venta ({total})",
                field="payments"
            )

        try:
            session = POSSessionService(self.db).find_open_session_for_user(auth, lock_shared=True)

            if not session:
                raise InvalidStateError("No tienes un turno de caja abierto")

            # Re-lectura bajo el bloqueo: el turno pudo cerrarse entre tanto
            self.db.refresh(session)
            if session.status != POSSessionStatus.OPEN:
                raise InvalidStateError("El turno de caja fue cerrado")

            sale = POSSale(
                tenant_id=auth.tenant_id,
                session_id=session.id,
                sale_number=self._next_sale_number(auth.tenant_id),
                subtotal=to_money(data.subtotal),
                tax=to_money(data.tax),
                discount=to_money(data.discount),
                total=total,
                created_by=auth.user_id
            )
            for payment in data.payments:
                sale.payments.append(SalePayment(
                    method=payment.method,
                    amount=to_money(payment.amount),
                    reference=payment.reference
                ))

            self.db.add(sale)
            self.db.commit()
            self.db.refresh(sale)

        except HTTPException:
            self.db.rollback()
            raise
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Número de venta duplicado, intente nuevamente")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating POS sale: {e}")
            raise StockFlowError("Error interno al registrar la venta") from e

        logger.info(f"POS sale {sale.sale_number} total={total} session={sale.session_id}")
        AuditService(self.db).record(
            tenant_id=auth.tenant_id,
            user_id=auth.user_id,
            action=AuditAction.SALE,
            entity_type="pos_sale",
            entity_id=sale.id,
            new_values={"sale_number": sale.sale_number, "total": total, "session_id": sale.session_id}
        )
        return sale

    def void_sale(self, sale_id: UUID, data: SaleVoidRequest, auth: AuthContext) -> POSSale:
        """
        Anular una venta.

        En un turno abierto la anula el cajero del turno o un supervisor; en
        un turno cerrado solo un supervisor.
        """
        try:
            sale = self.db.query(POSSale).filter(
                POSSale.id == sale_id,
                POSSale.tenant_id == auth.tenant_id
            ).with_for_update().first()

            if not sale:
                raise NotFoundError(f"Venta con ID {sale_id} no encontrada")

            if sale.status == SaleStatus.VOIDED:
                raise InvalidStateError("La venta ya fue anulada")

            # FOR SHARE: un cierre concurrente espera a que termine la anulación
            session = self.db.query(POSSession).filter(
                POSSession.id == sale.session_id
            ).with_for_update(read=True).populate_existing().one()

            if session.status != POSSessionStatus.OPEN and not auth.is_supervisor:
                raise ForbiddenError("Solo un supervisor puede anular ventas de un turno cerrado")

            ensure_can_operate_session(session, auth, "anular ventas")

            sale.status = SaleStatus.VOIDED
            sale.voided_at = utcnow()
            sale.voided_by = auth.user_id
            sale.void_reason = data.reason

            self.db.commit()
            self.db.refresh(sale)

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error voiding POS sale {sale_id}: {e}")
            raise StockFlowError("Error interno al anular la venta") from e

        logger.info(f"POS sale {sale.sale_number} voided by {auth.user_id} session={sale.session_id}")
        AuditService(self.db).record(
            tenant_id=auth.tenant_id,
            user_id=auth.user_id,
            action=AuditAction.VOID,
            entity_type="pos_sale",
            entity_id=sale.id,
            new_values={"status": SaleStatus.VOIDED.value, "total": sale.total, "reason": data.reason}
        )
        return sale

    def list_session_sales(self, session_id: UUID, tenant_id: UUID) -> Dict[str, Any]:
        """Ventas de un turno, más recientes primero"""
        session = POSSessionService(self.db).get_session(session_id, tenant_id)
        sales = self.db.query(POSSale).filter(
            POSSale.session_id == session.id,
            POSSale.tenant_id == tenant_id
        ).order_by(desc(POSSale.created_at)).all()
        return {"sales": sales, "total": len(sales)}
