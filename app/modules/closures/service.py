"""
Z-REPORT: Cierre de turno con consolidación maestra

Implementa el "Arqueo Ciego": el cajero ingresa el efectivo real ANTES de
que el sistema muestre el monto teórico. El servicio recibe el conteo como
dato opaco y nunca expone el efectivo teórico antes de recibirlo.

Estados de una sesión: OPEN → CLOSED → CONSOLIDATED. La selección de
sesiones elegibles, la creación del DailyBalance y el vínculo de cada
sesión, merma y mantención ocurren en una sola transacción; si algo falla
no queda nada consolidado a medias y el cierre se reintenta completo.
"""

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload
from decimal import Decimal
from datetime import datetime
from typing import Iterable, List, Optional
from uuid import UUID
import logging

from app.core.config import settings
from app.common.dates import as_utc, start_of_business_day, utc_now
from app.common.exceptions import ConcurrentClosureError
from app.common.money import money_sum, to_decimal
from app.database.database import acquire_tenant_lock, set_statement_timeout
from app.modules.audit.schemas import AuditSeverity
from app.modules.audit.service import AuditLogger
from app.modules.closures.models import DailyBalance
from app.modules.closures.schemas import (
    CashReconciliation, ClosureSummary, ClosureTotals, DailyBalanceList, DailyBalanceOut,
    PendingClosureSummary, ShiftClosureRequest, ShiftClosureResult
)
from app.modules.closures.seal import (
    generate_integrity_seal, save_integrity_seal, seal_fields_from_balance, verify_integrity_seal
)
from app.modules.inventory.models import MovementType, StockMovement
from app.modules.sessions.models import MaintenanceLog, OrderItem, PaymentStatus, UsageLog

logger = logging.getLogger(__name__)

LOCK_NAMESPACE = "shift_closure"

CASH_METHODS = {"CASH"}
CARD_METHODS = {"CARD", "TRANSFER"}


# ===== CÁLCULOS PUROS =====

def payment_bucket(method: Optional[str]) -> str:
    """Normaliza el método de pago a cash / card / credit"""
    normalized = (method or "").strip().upper()
    if normalized in CASH_METHODS:
        return "cash"
    if normalized in CARD_METHODS:
        return "card"
    return "credit"


def accumulate_sessions(sessions: Iterable[UsageLog]) -> ClosureTotals:
    """Revenue streams, costo de ventas y desglose por método de pago"""
    totals = ClosureTotals()

    for log in sessions:
        totals.session_count += 1
        totals.time_revenue += to_decimal(log.amount_charged)

        for item in log.items:
            totals.product_revenue += to_decimal(item.total_price)
            cost_price = to_decimal(item.product.cost_price if item.product else None)
            totals.total_cost += cost_price * item.quantity

        for payment in log.payment_records:
            if payment.status != PaymentStatus.COMPLETED:
                continue
            bucket = payment_bucket(payment.method)
            amount = to_decimal(payment.amount)
            if bucket == "cash":
                totals.cash_revenue += amount
            elif bucket == "card":
                totals.card_revenue += amount
            else:
                totals.credit_revenue += amount

    return totals


def compute_waste_cost(movements: Iterable[StockMovement]) -> Decimal:
    return money_sum(
        abs(m.quantity) * to_decimal(m.product.cost_price if m.product else None)
        for m in movements
    )


def reconcile_cash(declared, theoretical, tolerance=None) -> CashReconciliation:
    """
    Arqueo ciego. La alerta se dispara solo si |diferencia| > tolerancia;
    exactamente en la tolerancia no hay alerta.
    """
    declared = to_decimal(declared)
    theoretical = to_decimal(theoretical)
    tolerance = to_decimal(tolerance if tolerance is not None else settings.CASH_ALERT_TOLERANCE)
    difference = declared - theoretical

    return CashReconciliation(
        theoretical=theoretical,
        declared=declared,
        difference=difference,
        tolerance=tolerance,
        has_alert=abs(difference) > tolerance
    )


# ===== SERVICIO =====

class ShiftClosureService:
    """Servicio para el cierre de turno (Z-Report)"""

    def __init__(
        self,
        db: Session,
        audit: AuditLogger,
        cash_tolerance: Optional[Decimal] = None,
        statement_timeout_ms: Optional[int] = None
    ):
        self.db = db
        self.audit = audit
        self.cash_tolerance = to_decimal(
            cash_tolerance if cash_tolerance is not None else settings.CASH_ALERT_TOLERANCE
        )
        self.statement_timeout_ms = (
            statement_timeout_ms if statement_timeout_ms is not None
            else settings.CLOSURE_STATEMENT_TIMEOUT_MS
        )

    def close_shift(
        self,
        tenant_id: UUID,
        request: ShiftClosureRequest,
        now: Optional[datetime] = None
    ) -> ShiftClosureResult:
        """Consolidar todas las sesiones cerradas pendientes en un DailyBalance inmutable"""
        now = as_utc(now) or utc_now()

        try:
            set_statement_timeout(self.db, self.statement_timeout_ms)
            acquire_tenant_lock(self.db, LOCK_NAMESPACE, tenant_id)

            # 1. Sesiones cerradas pendientes de consolidar
            sessions = self._select_eligible_sessions(tenant_id)
            if not sessions:
                self.db.rollback()
                return ShiftClosureResult(
                    success=True,
                    consolidated=False,
                    message="No hay sesiones cerradas pendientes de consolidar."
                )

            # 2. Revenue streams y métodos de pago
            totals = accumulate_sessions(sessions)
            total_revenue = totals.total_revenue

            # 3-4. Mermas y mantención aún no consolidadas, registradas antes del cierre
            period_floor = self._period_floor(tenant_id, now)
            waste = self._select_waste(tenant_id, period_floor, now)
            maintenance = self._select_maintenance(tenant_id, period_floor, now)
            waste_cost = compute_waste_cost(waste)
            maintenance_cost = money_sum(to_decimal(m.cost) for m in maintenance)

            # 5. Utilidad neta
            net_profit = total_revenue - totals.total_cost - waste_cost - maintenance_cost

            # 6. Arqueo ciego
            reconciliation = reconcile_cash(request.cash_in_hand, totals.cash_revenue, self.cash_tolerance)

            # 7. Registro inmutable
            balance = DailyBalance(
                tenant_id=tenant_id,
                date=now,
                closed_by=request.closed_by,
                notes=request.notes,
                status="CLOSED",
                total_revenue=total_revenue,
                time_revenue=totals.time_revenue,
                product_revenue=totals.product_revenue,
                membership_revenue=Decimal("0"),
                rental_revenue=Decimal("0"),
                cash_revenue=totals.cash_revenue,
                card_revenue=totals.card_revenue,
                credit_revenue=totals.credit_revenue,
                total_cost=totals.total_cost,
                waste_cost=waste_cost,
                maintenance_cost=maintenance_cost,
                net_profit=net_profit,
                cash_in_hand=reconciliation.declared,
                cash_difference=reconciliation.difference,
                has_cash_alert=reconciliation.has_alert
            )
            self.db.add(balance)
            self.db.flush()

            # 8. Vincular sesiones, mermas y mantenciones al balance
            self._claim_sessions(tenant_id, balance.id, [log.id for log in sessions])
            self._claim_costs(tenant_id, balance.id, waste, maintenance)

            # 9. Bandera roja
            if reconciliation.has_alert:
                self._log_cash_alert(tenant_id, balance.id, reconciliation, request.closed_by)

            seal = generate_integrity_seal(seal_fields_from_balance(balance))
            save_integrity_seal(self.audit, tenant_id, balance.id, seal)

            self.db.commit()

        except ConcurrentClosureError as e:
            self.db.rollback()
            logger.warning(f"Shift closure aborted for tenant {tenant_id}: {e}")
            return ShiftClosureResult(
                success=False,
                error="Otro cierre consolidó sesiones de este turno. Reintente el cierre completo."
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error in close_shift for tenant {tenant_id}: {str(e)}")
            return ShiftClosureResult(success=False, error="Error al procesar el cierre Z")

        logger.info(
            f"Shift closed for tenant {tenant_id}: balance={balance.id} "
            f"sessions={totals.session_count} alert={reconciliation.has_alert}"
        )

        return ShiftClosureResult(
            success=True,
            consolidated=True,
            balance_id=balance.id,
            has_cash_alert=reconciliation.has_alert,
            cash_difference=reconciliation.difference,
            summary=ClosureSummary(
                total_revenue=total_revenue,
                net_profit=net_profit,
                session_count=totals.session_count
            ),
            seal=seal
        )

    # ===== LECTURAS =====

    def get_pending_summary(self, tenant_id: UUID) -> PendingClosureSummary:
        """Cantidad de sesiones por consolidar, sin montos (compatible con arqueo ciego)"""
        pending = self.db.query(func.count(UsageLog.id)).filter(
            UsageLog.tenant_id == tenant_id,
            UsageLog.ended_at.isnot(None),
            UsageLog.daily_balance_id.is_(None)
        ).scalar()
        open_sessions = self.db.query(func.count(UsageLog.id)).filter(
            UsageLog.tenant_id == tenant_id,
            UsageLog.ended_at.is_(None)
        ).scalar()

        return PendingClosureSummary(
            tenant_id=tenant_id,
            pending_sessions=pending or 0,
            open_sessions=open_sessions or 0
        )

    def list_closures(self, tenant_id: UUID, limit: int = 30) -> DailyBalanceList:
        """Historial de balances con cantidad de sesiones"""
        counts = dict(
            self.db.query(UsageLog.daily_balance_id, func.count(UsageLog.id))
            .filter(UsageLog.tenant_id == tenant_id, UsageLog.daily_balance_id.isnot(None))
            .group_by(UsageLog.daily_balance_id)
            .all()
        )
        query = self.db.query(DailyBalance).filter(DailyBalance.tenant_id == tenant_id)
        total = query.count()
        balances = query.order_by(DailyBalance.date.desc()).limit(limit).all()

        items = []
        for balance in balances:
            out = DailyBalanceOut.model_validate(balance)
            out.session_count = counts.get(balance.id, 0)
            items.append(out)

        return DailyBalanceList(balances=items, total=total)

    def get_closure_detail(self, tenant_id: UUID, closure_id: UUID) -> Optional[DailyBalance]:
        """Detalle completo de un balance histórico con sus sesiones"""
        return self.db.query(DailyBalance).options(
            selectinload(DailyBalance.usage_logs).selectinload(UsageLog.items).selectinload(OrderItem.product),
            selectinload(DailyBalance.usage_logs).selectinload(UsageLog.payment_records)
        ).filter(
            DailyBalance.id == closure_id,
            DailyBalance.tenant_id == tenant_id
        ).first()

    def verify_closure_seal(self, tenant_id: UUID, closure_id: UUID, expected_hash: str) -> bool:
        balance = self.get_closure_detail(tenant_id, closure_id)
        if not balance:
            return False
        return verify_integrity_seal(seal_fields_from_balance(balance), expected_hash)

    # ===== HELPERS =====

    def _select_eligible_sessions(self, tenant_id: UUID) -> List[UsageLog]:
        return self.db.query(UsageLog).options(
            selectinload(UsageLog.items).selectinload(OrderItem.product),
            selectinload(UsageLog.payment_records)
        ).filter(
            UsageLog.tenant_id == tenant_id,
            UsageLog.ended_at.isnot(None),
            UsageLog.daily_balance_id.is_(None)
        ).with_for_update(of=UsageLog).all()

    def _claim_sessions(self, tenant_id: UUID, balance_id: UUID, session_ids: List[UUID]) -> None:
        """Vincula las sesiones solo si siguen libres; si otra transacción ganó alguna, aborta."""
        self._claim_rows(UsageLog, tenant_id, balance_id, session_ids)

    def _claim_costs(
        self,
        tenant_id: UUID,
        balance_id: UUID,
        movements: List[StockMovement],
        maintenance: List[MaintenanceLog]
    ) -> None:
        """Mermas y mantenciones quedan descontadas en este cierre y no vuelven a contarse"""
        self._claim_rows(StockMovement, tenant_id, balance_id, [m.id for m in movements])
        self._claim_rows(MaintenanceLog, tenant_id, balance_id, [m.id for m in maintenance])

    def _claim_rows(self, model, tenant_id: UUID, balance_id: UUID, ids: List[UUID]) -> None:
        if not ids:
            return
        result = self.db.execute(
            update(model)
            .where(
                model.tenant_id == tenant_id,
                model.id.in_(ids),
                model.daily_balance_id.is_(None)
            )
            .values(daily_balance_id=balance_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(ids):
            raise ConcurrentClosureError(
                f"Se esperaban {len(ids)} registros libres en {model.__tablename__}, "
                f"se vincularon {result.rowcount}"
            )

    def _period_floor(self, tenant_id: UUID, now: datetime) -> Optional[datetime]:
        """
        Límite inferior de costos del periodo.

        El primer cierre del tenant parte al inicio del día hábil. Desde el
        segundo en adelante no hay límite: entra todo costo aún no consolidado,
        sin comparar el reloj de la base con la fecha del cierre anterior.
        """
        has_previous = self.db.query(DailyBalance.id).filter(
            DailyBalance.tenant_id == tenant_id
        ).first()
        if has_previous:
            return None
        return start_of_business_day(now)

    def _select_waste(self, tenant_id: UUID, since: Optional[datetime], until: datetime) -> List[StockMovement]:
        query = self.db.query(StockMovement).options(
            selectinload(StockMovement.product)
        ).filter(
            StockMovement.tenant_id == tenant_id,
            StockMovement.type == MovementType.MERMA,
            StockMovement.daily_balance_id.is_(None),
            StockMovement.created_at < until
        )
        if since is not None:
            query = query.filter(StockMovement.created_at >= since)
        return query.with_for_update(of=StockMovement).all()

    def _select_maintenance(self, tenant_id: UUID, since: Optional[datetime], until: datetime) -> List[MaintenanceLog]:
        query = self.db.query(MaintenanceLog).filter(
            MaintenanceLog.tenant_id == tenant_id,
            MaintenanceLog.daily_balance_id.is_(None),
            MaintenanceLog.created_at < until
        )
        if since is not None:
            query = query.filter(MaintenanceLog.created_at >= since)
        return query.with_for_update().all()

    def _log_cash_alert(self, tenant_id, balance_id, reconciliation: CashReconciliation, closed_by: str) -> None:
        direction = "Sobran" if reconciliation.difference > 0 else "Faltan"
        self.audit.log(
            type="Z_REPORT_CASH_DISCREPANCY",
            severity=AuditSeverity.WARN,
            message=(
                f"Descuadre de Caja Z-Report: {direction} {abs(reconciliation.difference)} unidades. "
                f"Teórico: {reconciliation.theoretical} | Declarado: {reconciliation.declared}"
            ),
            details={
                "balanceId": str(balance_id),
                "theoretical": reconciliation.theoretical,
                "declared": reconciliation.declared,
                "difference": reconciliation.difference,
                "closedBy": closed_by
            },
            tenant_id=tenant_id
        )
