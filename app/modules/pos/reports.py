"""
Reportes de turno para el módulo POS

- Resumen del turno (efectivo esperado, ventas, movimientos)
- Reporte X: lectura parcial, sin efectos, se puede generar N veces
- Reporte Z: reporte definitivo de un turno ya cerrado

Todo se recalcula a partir de ventas y movimientos; no hay contadores
almacenados. Las consultas de resumen soportan lotes de turnos para que el
listado no haga una consulta por fila.
"""

from sqlalchemy.orm import Session
from sqlalchemy import func
from decimal import Decimal
from typing import Dict, List, Any, Iterable
from uuid import UUID
from datetime import datetime, timezone
from collections import defaultdict
import logging

from app.common.exceptions import InvalidStateError
from app.common.validators import to_money
from app.modules.pos.models import POSSession, POSSessionStatus, CashMovement, CashMovementType
from app.modules.pos.schemas import (
    SessionSummary, XZReport, ReportSessionInfo, SalesByMethodOut, ReportType
)
from app.modules.sales.models import POSSale, SalePayment, SaleStatus, PaymentMethod, CARD_METHODS

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class _SessionTotals:
    """Acumulado de ventas y movimientos de un turno"""

    def __init__(self):
        self.payments_by_method: Dict[PaymentMethod, Dict[str, Any]] = {}
        self.sales_total = ZERO
        self.sales_count = 0
        self.cash_in = ZERO
        self.cash_out = ZERO
        self.movement_count = 0

    @property
    def cash_sales(self) -> Decimal:
        entry = self.payments_by_method.get(PaymentMethod.CASH)
        return entry["total"] if entry else ZERO

    @property
    def card_sales(self) -> Decimal:
        return sum(
            (self.payments_by_method[m]["total"] for m in CARD_METHODS if m in self.payments_by_method),
            ZERO
        )

    @property
    def other_sales(self) -> Decimal:
        return sum(
            (entry["total"] for method, entry in self.payments_by_method.items()
             if method != PaymentMethod.CASH and method not in CARD_METHODS),
            ZERO
        )


class POSReportsService:
    """Servicio de resúmenes y reportes X/Z de turnos"""

    def __init__(self, db: Session):
        self.db = db

    # ===== AGREGACIONES =====

    def _collect_totals(self, session_ids: Iterable[UUID]) -> Dict[UUID, _SessionTotals]:
        """Tres consultas agregadas para cualquier cantidad de turnos; las ventas anuladas no cuentan"""
        session_ids = list(session_ids)
        totals: Dict[UUID, _SessionTotals] = defaultdict(_SessionTotals)
        if not session_ids:
            return totals

        payment_rows = self.db.query(
            POSSale.session_id,
            SalePayment.method,
            func.count(SalePayment.id).label("count"),
            func.coalesce(func.sum(SalePayment.amount), 0).label("total")
        ).join(
            SalePayment, SalePayment.sale_id == POSSale.id
        ).filter(
            POSSale.session_id.in_(session_ids),
            POSSale.status == SaleStatus.COMPLETED
        ).group_by(POSSale.session_id, SalePayment.method).all()

        for row in payment_rows:
            totals[row.session_id].payments_by_method[row.method] = {
                "count": row.count,
                "total": to_money(row.total),
            }

        sale_rows = self.db.query(
            POSSale.session_id,
            func.count(POSSale.id).label("count"),
            func.coalesce(func.sum(POSSale.total), 0).label("total")
        ).filter(
            POSSale.session_id.in_(session_ids),
            POSSale.status == SaleStatus.COMPLETED
        ).group_by(POSSale.session_id).all()

        for row in sale_rows:
            totals[row.session_id].sales_count = row.count
            totals[row.session_id].sales_total = to_money(row.total)

        movement_rows = self.db.query(
            CashMovement.session_id,
            CashMovement.type,
            func.count(CashMovement.id).label("count"),
            func.coalesce(func.sum(CashMovement.amount), 0).label("total")
        ).filter(
            CashMovement.session_id.in_(session_ids)
        ).group_by(CashMovement.session_id, CashMovement.type).all()

        for row in movement_rows:
            entry = totals[row.session_id]
            entry.movement_count += row.count
            if row.type == CashMovementType.CASH_IN:
                entry.cash_in = to_money(row.total)
            else:
                entry.cash_out = to_money(row.total)

        return totals

    @staticmethod
    def _expected_cash(session: POSSession, totals: _SessionTotals) -> Decimal:
        return to_money(
            to_money(session.opening_amount) + totals.cash_sales + totals.cash_in - totals.cash_out
        )

    def calculate_expected_cash(self, session: POSSession) -> Decimal:
        """
        Efectivo esperado en caja:
        apertura + pagos en efectivo + ingresos - retiros
        """
        totals = self._collect_totals([session.id])[session.id]
        return self._expected_cash(session, totals)

    @classmethod
    def _to_summary(cls, session: POSSession, totals: _SessionTotals) -> SessionSummary:
        return SessionSummary(
            total_sales=totals.sales_total,
            total_cash_sales=totals.cash_sales,
            total_cash_in=totals.cash_in,
            total_cash_out=totals.cash_out,
            expected_cash=cls._expected_cash(session, totals),
            transaction_count=totals.sales_count,
            movement_count=totals.movement_count
        )

    def build_summary(self, session: POSSession) -> SessionSummary:
        totals = self._collect_totals([session.id])[session.id]
        return self._to_summary(session, totals)

    def build_summaries(self, sessions: List[POSSession]) -> Dict[UUID, SessionSummary]:
        """Resúmenes de varios turnos en lote"""
        totals = self._collect_totals(s.id for s in sessions)
        return {s.id: self._to_summary(s, totals[s.id]) for s in sessions}

    # ===== REPORTES X / Z =====

    def _build_report(self, session: POSSession, report_type: ReportType) -> XZReport:
        totals = self._collect_totals([session.id])[session.id]

        sales_by_method = [
            SalesByMethodOut(method=method.value, count=entry["count"], total=entry["total"])
            for method, entry in sorted(totals.payments_by_method.items(), key=lambda item: item[0].value)
            if entry["count"] > 0
        ]

        register = session.cash_register
        report = XZReport(
            type=report_type,
            session=ReportSessionInfo(
                id=session.id,
                cash_register_name=register.name,
                cash_register_code=register.code,
                user_name=session.user.full_name if session.user else "",
                opened_at=session.opened_at,
                closed_at=session.closed_at
            ),
            opening_amount=to_money(session.opening_amount),
            total_cash_sales=totals.cash_sales,
            total_card_sales=totals.card_sales,
            total_other_sales=totals.other_sales,
            total_sales_amount=totals.sales_total,
            total_cash_in=totals.cash_in,
            total_cash_out=totals.cash_out,
            expected_cash_amount=self._expected_cash(session, totals),
            transaction_count=totals.sales_count,
            sales_by_method=sales_by_method,
            generated_at=datetime.now(timezone.utc)
        )

        if report_type == ReportType.Z:
            report.declared_cash_amount = to_money(session.closing_amount)
            report.difference = to_money(session.difference)

        return report

    def generate_x_report(self, session: POSSession) -> XZReport:
        """Reporte X: lectura del turno en curso (o cerrado). Sin efectos."""
        logger.info(f"X report generated for session {session.id}")
        return self._build_report(session, ReportType.X)

    def generate_z_report(self, session: POSSession) -> XZReport:
        """Reporte Z: solo para turnos cerrados"""
        if session.status != POSSessionStatus.CLOSED:
            raise InvalidStateError("El reporte Z solo se puede generar para turnos cerrados")

        logger.info(f"Z report generated for session {session.id}")
        return self._build_report(session, ReportType.Z)
