"""
Servicios de mesas: ciclo de vida de la sesión y confirmación de pagos

Flujo típico:
1. start_session: la mesa pasa a OCCUPIED
2. add_item: consumo de barra durante la sesión
3. end_session: se calcula el cobro y la mesa queda en PAYMENT_PENDING
4. confirm_payment: PaymentRecord COMPLETED, sesión PAID y mesa libre
"""

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4
import logging

from app.common.dates import as_utc, utc_now
from app.common.exceptions import (
    InvalidSessionStateError, MemberNotFoundError, SessionNotFoundError, TableNotFoundError
)
from app.common.money import to_decimal
from app.database.database import get_tenant_query
from app.modules.audit.service import AuditLogger
from app.modules.inventory.models import MovementType, StockMovement
from app.modules.inventory.service import InventoryService
from app.modules.members.models import Member
from app.modules.pricing.service import PricingService
from app.modules.sessions.models import (
    OrderItem, PaymentRecord, PaymentStatus, SessionPaymentStatus, Table, TableStatus, UsageLog
)
from app.modules.sessions.schemas import PaymentConfirmation, SessionCloseResult

logger = logging.getLogger(__name__)

STARTABLE_STATUSES = (TableStatus.AVAILABLE, TableStatus.PAYMENT_PENDING)


def elapsed_minutes(started_at: datetime, ended_at: datetime) -> int:
    """Minutos completos transcurridos, nunca negativos"""
    seconds = (as_utc(ended_at) - as_utc(started_at)).total_seconds()
    return max(0, int(seconds // 60))


def _release_table(table: Optional[Table], usage_log: UsageLog) -> None:
    if table and table.current_session_id == usage_log.id:
        table.status = TableStatus.AVAILABLE
        table.current_session_id = None
        table.last_session_start = None


class TableSessionService:
    def __init__(self, db: Session, audit: AuditLogger):
        self.db = db
        self.audit = audit
        self.pricing = PricingService(db, audit)
        self.inventory = InventoryService(db)

    def get_table(self, tenant_id: UUID, table_id: UUID) -> Table:
        table = get_tenant_query(self.db, Table, tenant_id).filter(Table.id == table_id).first()
        if not table:
            raise TableNotFoundError(f"Mesa {table_id} no encontrada")
        return table

    def get_session(self, tenant_id: UUID, session_id: UUID) -> UsageLog:
        usage_log = self.db.query(UsageLog).options(
            selectinload(UsageLog.items),
            selectinload(UsageLog.member)
        ).filter(
            UsageLog.id == session_id,
            UsageLog.tenant_id == tenant_id
        ).first()
        if not usage_log:
            raise SessionNotFoundError(f"Sesión {session_id} no encontrada")
        return usage_log

    def _get_member(self, tenant_id: UUID, member_id: UUID) -> Member:
        member = get_tenant_query(self.db, Member, tenant_id).filter(Member.id == member_id).first()
        if not member:
            raise MemberNotFoundError(f"Socio {member_id} no encontrado")
        return member

    def start_session(
        self,
        tenant_id: UUID,
        table_id: UUID,
        member_id: Optional[UUID] = None,
        started_at: Optional[datetime] = None
    ) -> UsageLog:
        """Abrir una sesión de juego en una mesa disponible"""
        table = self.get_table(tenant_id, table_id)
        if table.status not in STARTABLE_STATUSES:
            raise InvalidSessionStateError(f"La mesa {table.number} no está disponible ({table.status.value})")

        if member_id:
            self._get_member(tenant_id, member_id)

        started_at = as_utc(started_at) or utc_now()
        usage_log = UsageLog(
            tenant_id=tenant_id,
            table_id=table.id,
            member_id=member_id,
            started_at=started_at,
            payment_status=SessionPaymentStatus.PENDING
        )
        self.db.add(usage_log)
        self.db.flush()

        table.status = TableStatus.OCCUPIED
        table.current_session_id = usage_log.id
        table.last_session_start = started_at

        self.db.commit()
        self.db.refresh(usage_log)

        logger.info(f"Session started: table={table.number}, session_id={usage_log.id}")
        return usage_log

    def add_item(
        self,
        tenant_id: UUID,
        session_id: UUID,
        product_id: UUID,
        quantity: int
    ) -> OrderItem:
        """Agregar consumo de barra a una sesión abierta"""
        if quantity <= 0:
            raise ValueError("La cantidad debe ser mayor a cero")

        usage_log = self.get_session(tenant_id, session_id)
        if usage_log.ended_at is not None:
            raise InvalidSessionStateError("No se puede agregar consumo a una sesión cerrada")

        product = self.inventory.get_product(tenant_id, product_id)
        unit_price = to_decimal(product.price)

        item = OrderItem(
            tenant_id=tenant_id,
            usage_log_id=usage_log.id,
            product_id=product.id,
            quantity=quantity,
            unit_price=unit_price,
            total_price=unit_price * quantity
        )
        usage_log.items.append(item)

        product.stock = (product.stock or 0) - quantity
        self.db.add(StockMovement(
            tenant_id=tenant_id,
            product_id=product.id,
            type=MovementType.SALE,
            quantity=-quantity,
            reason=f"Venta sesión {usage_log.id}"
        ))

        self.db.commit()
        self.db.refresh(item)
        return item

    def end_session(
        self,
        tenant_id: UUID,
        session_id: UUID,
        member_id: Optional[UUID] = None,
        ended_at: Optional[datetime] = None
    ) -> SessionCloseResult:
        """Cerrar la sesión y calcular el cobro con el motor de precios"""
        usage_log = self.get_session(tenant_id, session_id)
        if usage_log.ended_at is not None:
            raise InvalidSessionStateError("La sesión ya está cerrada")

        if member_id:
            usage_log.member = self._get_member(tenant_id, member_id)

        ended_at = as_utc(ended_at) or utc_now()
        duration = elapsed_minutes(usage_log.started_at, ended_at)

        usage_log.ended_at = ended_at
        usage_log.duration_minutes = duration

        try:
            pricing = self.pricing.price_session(usage_log)
            usage_log.amount_charged = pricing.total
            usage_log.discount_applied = pricing.discount_amount

            table = self.db.get(Table, usage_log.table_id)
            if table and table.current_session_id == usage_log.id:
                table.status = TableStatus.PAYMENT_PENDING

            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error closing session {session_id}: {str(e)}")
            raise

        logger.info(f"Session closed: session_id={session_id}, minutes={duration}, total={pricing.total}")
        return SessionCloseResult(session_id=usage_log.id, duration_minutes=duration, pricing=pricing)


class PaymentService:
    """
    Confirmación de pagos con idempotencia.

    Un mismo evento externo (webhook reenviado, doble click) trae el mismo
    idempotency_key; la segunda entrega devuelve el registro original sin
    escribir nada.
    """

    def __init__(self, db: Session):
        self.db = db

    def _find_by_key(self, tenant_id: UUID, idempotency_key: str) -> Optional[PaymentRecord]:
        return self.db.query(PaymentRecord).filter(
            PaymentRecord.tenant_id == tenant_id,
            PaymentRecord.idempotency_key == idempotency_key
        ).first()

    @staticmethod
    def _duplicate(record: PaymentRecord) -> PaymentConfirmation:
        return PaymentConfirmation(success=True, duplicate=True, payment_id=record.id, amount=record.amount)

    def confirm_payment(
        self,
        tenant_id: UUID,
        session_id: UUID,
        method: str = "CARD",
        idempotency_key: Optional[str] = None,
        provider: str = "MOCK_GATEWAY",
        transaction_id: Optional[str] = None
    ) -> PaymentConfirmation:
        if idempotency_key:
            existing = self._find_by_key(tenant_id, idempotency_key)
            if existing:
                logger.info(f"Duplicate payment delivery ignored: key={idempotency_key}")
                return self._duplicate(existing)

        usage_log = self.db.query(UsageLog).options(selectinload(UsageLog.member)).filter(
            UsageLog.id == session_id,
            UsageLog.tenant_id == tenant_id
        ).first()

        if not usage_log:
            return PaymentConfirmation(success=False, error="Sesión no encontrada")
        if usage_log.ended_at is None:
            return PaymentConfirmation(success=False, error="La sesión aún no está cerrada")
        if usage_log.payment_status == SessionPaymentStatus.PAID:
            return PaymentConfirmation(success=False, error="Ya pagado")
        # Un cierre Z ya la contó; ningún cierre posterior vería este pago
        if usage_log.daily_balance_id is not None:
            return PaymentConfirmation(success=False, error="La sesión ya fue consolidada en un cierre Z")

        amount = to_decimal(usage_log.amount_charged)

        try:
            record = PaymentRecord(
                tenant_id=tenant_id,
                usage_log_id=usage_log.id,
                amount=amount,
                method=(method or "").strip().upper() or None,
                status=PaymentStatus.COMPLETED,
                provider=provider,
                transaction_id=transaction_id or f"tx-{uuid4().hex[:12]}",
                idempotency_key=idempotency_key
            )
            self.db.add(record)

            usage_log.payment_status = SessionPaymentStatus.PAID
            _release_table(self.db.get(Table, usage_log.table_id), usage_log)

            if usage_log.member:
                usage_log.member.amount_spent = to_decimal(usage_log.member.amount_spent) + amount

            self.db.commit()

        except IntegrityError:
            # Otra entrega con la misma clave ganó la carrera
            self.db.rollback()
            existing = self._find_by_key(tenant_id, idempotency_key) if idempotency_key else None
            if existing:
                return self._duplicate(existing)
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error confirming payment for session {session_id}: {str(e)}")
            raise

        logger.info(f"Payment confirmed: session_id={session_id}, amount={amount}, method={record.method}")
        return PaymentConfirmation(success=True, payment_id=record.id, amount=amount)

