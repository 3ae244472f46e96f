"""
Tests para sesiones de mesa y confirmación de pagos
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4
from sqlalchemy.orm import Session

from app.common.exceptions import InvalidSessionStateError, SessionNotFoundError, TableNotFoundError
from app.modules.closures.schemas import ShiftClosureRequest
from app.modules.closures.service import ShiftClosureService
from app.modules.inventory.models import MovementType, Product, StockMovement
from app.modules.members.models import Member, MemberCategory
from app.modules.sessions.models import (
    PaymentRecord, PaymentStatus, SessionPaymentStatus, SessionState, Table, TableStatus
)
from app.modules.sessions.service import PaymentService, TableSessionService, elapsed_minutes


STARTED = datetime(2026, 3, 10, 21, 0, tzinfo=timezone.utc)


# ===== FIXTURES =====

@pytest.fixture
def table(db_session: Session, sample_tenant):
    table = Table(tenant_id=sample_tenant.id, number=4)
    db_session.add(table)
    db_session.commit()
    return table


@pytest.fixture
def beer(db_session: Session, sample_tenant):
    product = Product(
        tenant_id=sample_tenant.id, name="Cerveza", price=Decimal("1500"),
        cost_price=Decimal("800"), stock=10
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture
def active_socio(db_session: Session, sample_tenant):
    member = Member(
        tenant_id=sample_tenant.id, name="Ana Socia", category=MemberCategory.SOCIO,
        subscription_status="ACTIVE", discount=Decimal("20"), amount_spent=Decimal("1000")
    )
    db_session.add(member)
    db_session.commit()
    return member


@pytest.fixture
def tables(db_session: Session, audit):
    return TableSessionService(db_session, audit)


# ===== DURACIÓN =====

class TestElapsedMinutes:

    def test_whole_minutes_only(self):
        assert elapsed_minutes(STARTED, STARTED + timedelta(minutes=59, seconds=59)) == 59
        assert elapsed_minutes(STARTED, STARTED + timedelta(hours=1)) == 60

    def test_never_negative(self):
        assert elapsed_minutes(STARTED, STARTED - timedelta(minutes=5)) == 0

    def test_naive_values_are_utc(self):
        naive = STARTED.replace(tzinfo=None)
        assert elapsed_minutes(naive, STARTED + timedelta(minutes=30)) == 30


# ===== CICLO DE VIDA =====

class TestTableSessionLifecycle:

    def test_start_session_occupies_table(self, db_session: Session, tables, sample_tenant, table):
        usage_log = tables.start_session(sample_tenant.id, table.id, started_at=STARTED)

        db_session.refresh(table)
        assert table.status == TableStatus.OCCUPIED
        assert table.current_session_id == usage_log.id
        assert usage_log.state == SessionState.OPEN

    def test_cannot_start_on_occupied_table(self, tables, sample_tenant, table):
        tables.start_session(sample_tenant.id, table.id, started_at=STARTED)

        with pytest.raises(InvalidSessionStateError):
            tables.start_session(sample_tenant.id, table.id)

    def test_unknown_table(self, tables, sample_tenant):
        with pytest.raises(TableNotFoundError):
            tables.start_session(sample_tenant.id, uuid4())

    def test_add_item_updates_stock(self, db_session: Session, tables, sample_tenant, table, beer):
        usage_log = tables.start_session(sample_tenant.id, table.id, started_at=STARTED)

        item = tables.add_item(sample_tenant.id, usage_log.id, beer.id, 2)

        assert item.total_price == Decimal("3000")
        db_session.refresh(beer)
        assert beer.stock == 8
        sale = db_session.query(StockMovement).filter(StockMovement.type == MovementType.SALE).one()
        assert sale.quantity == -2

    def test_add_item_rejects_bad_quantity(self, tables, sample_tenant, table, beer):
        usage_log = tables.start_session(sample_tenant.id, table.id, started_at=STARTED)

        with pytest.raises(ValueError):
            tables.add_item(sample_tenant.id, usage_log.id, beer.id, 0)

    def test_end_session_prices_with_engine(self, db_session: Session, tables, sample_tenant, table, beer, active_socio):
        usage_log = tables.start_session(sample_tenant.id, table.id, started_at=STARTED)
        tables.add_item(sample_tenant.id, usage_log.id, beer.id, 2)

        result = tables.end_session(
            sample_tenant.id, usage_log.id, member_id=active_socio.id,
            ended_at=STARTED + timedelta(minutes=60)
        )

        assert result.duration_minutes == 60
        assert result.pricing.discount_amount == Decimal("1200")
        assert result.pricing.subtotal == Decimal("7800")
        assert result.pricing.total == Decimal("9282")

        db_session.refresh(usage_log)
        db_session.refresh(table)
        assert usage_log.amount_charged == Decimal("9282")
        assert usage_log.state == SessionState.CLOSED
        assert table.status == TableStatus.PAYMENT_PENDING

    def test_cannot_end_twice_or_add_after_close(self, tables, sample_tenant, table, beer):
        usage_log = tables.start_session(sample_tenant.id, table.id, started_at=STARTED)
        tables.end_session(sample_tenant.id, usage_log.id, ended_at=STARTED + timedelta(minutes=30))

        with pytest.raises(InvalidSessionStateError):
            tables.end_session(sample_tenant.id, usage_log.id)
        with pytest.raises(InvalidSessionStateError):
            tables.add_item(sample_tenant.id, usage_log.id, beer.id, 1)

    def test_session_of_other_tenant_is_hidden(self, tables, sample_tenant, comercial_tenant, table):
        usage_log = tables.start_session(sample_tenant.id, table.id, started_at=STARTED)

        with pytest.raises(SessionNotFoundError):
            tables.end_session(comercial_tenant.id, usage_log.id)


# ===== PAGOS =====

class TestPaymentConfirmation:

    def _closed(self, tables, tenant, table, member=None):
        usage_log = tables.start_session(tenant.id, table.id, started_at=STARTED)
        tables.end_session(
            tenant.id, usage_log.id, member_id=member.id if member else None,
            ended_at=STARTED + timedelta(minutes=60)
        )
        return usage_log

    def test_confirm_payment_frees_table(self, db_session: Session, tables, sample_tenant, table, active_socio):
        usage_log = self._closed(tables, sample_tenant, table, active_socio)

        result = PaymentService(db_session).confirm_payment(sample_tenant.id, usage_log.id, method="cash")

        assert result.success is True
        assert result.duplicate is False
        assert result.amount == Decimal("5712")

        record = db_session.get(PaymentRecord, result.payment_id)
        assert record.status == PaymentStatus.COMPLETED
        assert record.method == "CASH"

        db_session.refresh(usage_log)
        db_session.refresh(table)
        db_session.refresh(active_socio)
        assert usage_log.payment_status == SessionPaymentStatus.PAID
        assert table.status == TableStatus.AVAILABLE
        assert table.current_session_id is None
        assert active_socio.amount_spent == Decimal("6712")

    def test_same_idempotency_key_is_recorded_once(self, db_session: Session, tables, sample_tenant, table):
        usage_log = self._closed(tables, sample_tenant, table)
        payments = PaymentService(db_session)

        first = payments.confirm_payment(sample_tenant.id, usage_log.id, idempotency_key="evt_123")
        again = payments.confirm_payment(sample_tenant.id, usage_log.id, idempotency_key="evt_123")

        assert first.success is True
        assert again.duplicate is True
        assert again.payment_id == first.payment_id
        assert db_session.query(PaymentRecord).count() == 1

    def test_paid_session_is_rejected(self, db_session: Session, tables, sample_tenant, table):
        usage_log = self._closed(tables, sample_tenant, table)
        payments = PaymentService(db_session)
        payments.confirm_payment(sample_tenant.id, usage_log.id)

        result = payments.confirm_payment(sample_tenant.id, usage_log.id)

        assert result.success is False
        assert result.error == "Ya pagado"

    def test_open_session_cannot_be_paid(self, db_session: Session, tables, sample_tenant, table):
        usage_log = tables.start_session(sample_tenant.id, table.id, started_at=STARTED)

        result = PaymentService(db_session).confirm_payment(sample_tenant.id, usage_log.id)

        assert result.success is False
        assert result.error == "La sesión aún no está cerrada"

    def test_consolidated_session_cannot_be_paid(self, db_session: Session, audit, tables, sample_tenant, table):
        """Test un pago tardío no entra a un cierre Z ya sellado ni queda fuera de todos"""
        usage_log = self._closed(tables, sample_tenant, table)
        closures = ShiftClosureService(db_session, audit)
        closures.close_shift(
            sample_tenant.id,
            ShiftClosureRequest(cash_in_hand=Decimal("0"), closed_by="admin@club.cl"),
            now=STARTED + timedelta(hours=2)
        )

        result = PaymentService(db_session).confirm_payment(sample_tenant.id, usage_log.id, method="CASH")

        assert result.success is False
        assert result.error == "La sesión ya fue consolidada en un cierre Z"
        assert db_session.query(PaymentRecord).count() == 0
        db_session.refresh(usage_log)
        assert usage_log.payment_status != SessionPaymentStatus.PAID
