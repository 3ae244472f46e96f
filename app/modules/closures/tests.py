"""
Tests para el cierre de turno (Z-Report)

Cubre:
- Arqueo ciego y límite exacto de la tolerancia
- Consolidación: totales, mermas, mantención y utilidad neta
- Cada sesión se consolida una sola vez
- Rollback completo ante fallas y conflictos de concurrencia
- Inmutabilidad del DailyBalance y sello de integridad
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.common.exceptions import ImmutableRecordError
from app.modules.audit.schemas import AuditSeverity
from app.modules.audit.models import SystemLog
from app.modules.closures.models import DailyBalance
from app.modules.closures.schemas import PendingClosureSummary, ShiftClosureRequest
from app.modules.closures.seal import (
    SealFields, compute_seal_hash, generate_integrity_seal, verify_integrity_seal
)
from app.modules.closures.service import ShiftClosureService, payment_bucket, reconcile_cash
from app.modules.inventory.models import MovementType, Product, StockMovement
from app.modules.inventory.service import InventoryService
from app.modules.sessions.models import (
    MaintenanceLog, OrderItem, PaymentRecord, PaymentStatus, Table, UsageLog
)


NOW = datetime(2026, 3, 10, 23, 0, tzinfo=timezone.utc)


# ===== FIXTURES =====

@pytest.fixture
def table(db_session: Session, sample_tenant):
    table = Table(tenant_id=sample_tenant.id, number=1)
    db_session.add(table)
    db_session.commit()
    return table


@pytest.fixture
def beer(db_session: Session, sample_tenant):
    product = Product(
        tenant_id=sample_tenant.id, name="Cerveza", price=Decimal("1500"),
        cost_price=Decimal("800"), stock=100
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture
def service(db_session: Session, audit):
    return ShiftClosureService(db_session, audit, cash_tolerance=Decimal("500"))


def make_session(db: Session, tenant_id, table, amount, payments=(), items=(), ended=True):
    usage_log = UsageLog(
        tenant_id=tenant_id,
        table_id=table.id,
        started_at=NOW - timedelta(hours=2),
        ended_at=NOW - timedelta(hours=1) if ended else None,
        duration_minutes=60 if ended else None,
        amount_charged=Decimal(amount),
    )
    db.add(usage_log)
    db.flush()

    for product, quantity in items:
        db.add(OrderItem(
            tenant_id=tenant_id, usage_log_id=usage_log.id, product_id=product.id,
            quantity=quantity, unit_price=product.price, total_price=product.price * quantity
        ))
    for method, paid, status in payments:
        db.add(PaymentRecord(
            tenant_id=tenant_id, usage_log_id=usage_log.id, amount=Decimal(paid),
            method=method, status=status
        ))
    db.commit()
    return usage_log


def closure_request(cash):
    return ShiftClosureRequest(cash_in_hand=Decimal(cash), closed_by="admin@club.cl")


# ===== ARQUEO CIEGO =====

class TestCashReconciliation:

    def test_exactly_at_tolerance_does_not_alert(self):
        """Test faltan exactamente 500: sin alerta"""
        result = reconcile_cash(Decimal("49500"), Decimal("50000"), Decimal("500"))

        assert result.difference == Decimal("-500")
        assert result.has_alert is False

    def test_beyond_tolerance_alerts(self):
        assert reconcile_cash(Decimal("49499"), Decimal("50000"), Decimal("500")).has_alert is True
        assert reconcile_cash(Decimal("50501"), Decimal("50000"), Decimal("500")).has_alert is True

    @pytest.mark.parametrize("method,bucket", [
        ("CASH", "cash"), ("cash", "cash"), ("Card", "card"), ("TRANSFER", "card"),
        ("CREDIT", "credit"), ("MERCADOPAGO", "credit"), (None, "credit"),
    ])
    def test_payment_method_buckets(self, method, bucket):
        assert payment_bucket(method) == bucket

    def test_pending_summary_has_no_money(self):
        """Test lo que se muestra antes del arqueo no revela el efectivo teórico"""
        assert set(PendingClosureSummary.model_fields) == {"tenant_id", "pending_sessions", "open_sessions"}


# ===== CONSOLIDACIÓN =====

class TestShiftClosure:

    def test_nothing_to_close(self, service, sample_tenant):
        result = service.close_shift(sample_tenant.id, closure_request(0), now=NOW)

        assert result.success is True
        assert result.consolidated is False
        assert result.message == "No hay sesiones cerradas pendientes de consolidar."

    def test_full_closure_totals(self, db_session: Session, service, sample_tenant, table, beer, memory_audit_sink):
        tenant_id = sample_tenant.id
        first = make_session(
            db_session, tenant_id, table, "5712",
            payments=[("CASH", "5712", PaymentStatus.COMPLETED)],
            items=[(beer, 2)],
        )
        second = make_session(
            db_session, tenant_id, table, "7140",
            payments=[("CARD", "7140", PaymentStatus.COMPLETED), ("CASH", "1000", PaymentStatus.FAILED)],
        )
        open_session = make_session(db_session, tenant_id, table, "0", ended=False)

        db_session.add_all([
            StockMovement(
                tenant_id=tenant_id, product_id=beer.id, type=MovementType.MERMA,
                quantity=-3, created_at=NOW - timedelta(hours=1)
            ),
            StockMovement(
                tenant_id=tenant_id, product_id=beer.id, type=MovementType.MERMA,
                quantity=-10, created_at=NOW - timedelta(days=1, hours=12)
            ),
            MaintenanceLog(
                tenant_id=tenant_id, table_id=table.id, cost=Decimal("1000"),
                description="Cambio de paño", created_at=NOW - timedelta(hours=2)
            ),
        ])
        db_session.commit()

        result = service.close_shift(tenant_id, closure_request("5712"), now=NOW)

        assert result.success is True
        assert result.consolidated is True
        assert result.summary.session_count == 2
        assert result.summary.total_revenue == Decimal("15852")
        assert result.summary.net_profit == Decimal("10852")
        assert result.has_cash_alert is False

        balance = db_session.get(DailyBalance, result.balance_id)
        assert balance.time_revenue == Decimal("12852")
        assert balance.product_revenue == Decimal("3000")
        assert balance.total_cost == Decimal("1600")
        assert balance.waste_cost == Decimal("2400")
        assert balance.maintenance_cost == Decimal("1000")
        assert balance.cash_revenue == Decimal("5712")
        assert balance.card_revenue == Decimal("7140")
        assert balance.credit_revenue == Decimal("0")
        assert balance.cash_difference == Decimal("0")

        for usage_log in (first, second):
            db_session.refresh(usage_log)
            assert usage_log.daily_balance_id == result.balance_id
        db_session.refresh(open_session)
        assert open_session.daily_balance_id is None

        seals = memory_audit_sink.of_type("Z_REPORT_INTEGRITY_SEAL")
        assert len(seals) == 1
        assert seals[0].details["hash"] == result.seal.hash
        assert service.verify_closure_seal(tenant_id, result.balance_id, result.seal.hash) is True

    def test_scenario_exact_tolerance(self, db_session: Session, service, sample_tenant, table, memory_audit_sink):
        make_session(
            db_session, sample_tenant.id, table, "50000",
            payments=[("CASH", "50000", PaymentStatus.COMPLETED)],
        )

        result = service.close_shift(sample_tenant.id, closure_request("49500"), now=NOW)

        assert result.cash_difference == Decimal("-500")
        assert result.has_cash_alert is False
        assert memory_audit_sink.of_type("Z_REPORT_CASH_DISCREPANCY") == []

    def test_cash_shortage_emits_warning(self, db_session: Session, service, sample_tenant, table, memory_audit_sink):
        make_session(
            db_session, sample_tenant.id, table, "50000",
            payments=[("CASH", "50000", PaymentStatus.COMPLETED)],
        )

        result = service.close_shift(sample_tenant.id, closure_request("49000"), now=NOW)

        assert result.has_cash_alert is True
        events = memory_audit_sink.of_type("Z_REPORT_CASH_DISCREPANCY")
        assert len(events) == 1
        assert events[0].severity == AuditSeverity.WARN
        assert events[0].details["difference"] == Decimal("-1000")
        assert "Faltan" in events[0].message

    def test_sessions_are_consolidated_once(self, db_session: Session, service, sample_tenant, table):
        make_session(db_session, sample_tenant.id, table, "6000")
        make_session(db_session, sample_tenant.id, table, "6000")

        first = service.close_shift(sample_tenant.id, closure_request(0), now=NOW)
        second = service.close_shift(sample_tenant.id, closure_request(0), now=NOW + timedelta(minutes=5))

        assert first.summary.session_count == 2
        assert second.success is True
        assert second.consolidated is False

        make_session(db_session, sample_tenant.id, table, "3000")
        third = service.close_shift(sample_tenant.id, closure_request(0), now=NOW + timedelta(minutes=10))

        assert third.summary.session_count == 1
        assert third.summary.total_revenue == Decimal("3000")

    def test_closure_is_scoped_to_tenant(self, db_session: Session, service, sample_tenant, comercial_tenant, table):
        other_table = Table(tenant_id=comercial_tenant.id, number=1)
        db_session.add(other_table)
        db_session.commit()
        make_session(db_session, sample_tenant.id, table, "6000")
        foreign = make_session(db_session, comercial_tenant.id, other_table, "9000")

        result = service.close_shift(sample_tenant.id, closure_request(0), now=NOW)

        assert result.summary.session_count == 1
        db_session.refresh(foreign)
        assert foreign.daily_balance_id is None

    def test_database_audit_sink_writes_inside_transaction(self, db_session: Session, db_audit, sample_tenant, table):
        make_session(
            db_session, sample_tenant.id, table, "50000",
            payments=[("CASH", "50000", PaymentStatus.COMPLETED)],
        )

        result = ShiftClosureService(db_session, db_audit).close_shift(
            sample_tenant.id, closure_request("40000"), now=NOW
        )

        types = {log.type for log in db_session.query(SystemLog).all()}
        assert result.success is True
        assert types == {"Z_REPORT_CASH_DISCREPANCY", "Z_REPORT_INTEGRITY_SEAL"}


# ===== ATOMICIDAD =====

class TestClosureAtomicity:

    def test_concurrent_claim_rolls_back_everything(self, db_session: Session, service, sample_tenant, table, monkeypatch):
        """Test otra transacción vinculó una sesión entre la selección y el vínculo"""
        sessions = [make_session(db_session, sample_tenant.id, table, "6000") for _ in range(2)]
        original_claim = ShiftClosureService._claim_sessions

        def racing_claim(self, tenant_id, balance_id, session_ids):
            self.db.execute(
                UsageLog.__table__.update()
                .where(UsageLog.__table__.c.id == sessions[0].id)
                .values(daily_balance_id=uuid4())
            )
            return original_claim(self, tenant_id, balance_id, session_ids)

        monkeypatch.setattr(ShiftClosureService, "_claim_sessions", racing_claim)

        result = service.close_shift(sample_tenant.id, closure_request(0), now=NOW)

        assert result.success is False
        assert db_session.query(DailyBalance).count() == 0
        for usage_log in sessions:
            db_session.refresh(usage_log)
            assert usage_log.daily_balance_id is None

    def test_persistence_failure_rolls_back(self, db_session: Session, service, sample_tenant, table, monkeypatch):
        usage_log = make_session(db_session, sample_tenant.id, table, "6000")

        def broken_claim(self, tenant_id, balance_id, session_ids):
            raise SQLAlchemyError("connection lost")

        monkeypatch.setattr(ShiftClosureService, "_claim_sessions", broken_claim)

        result = service.close_shift(sample_tenant.id, closure_request(0), now=NOW)

        assert result.success is False
        assert result.error == "Error al procesar el cierre Z"
        assert db_session.query(DailyBalance).count() == 0
        db_session.refresh(usage_log)
        assert usage_log.daily_balance_id is None


# ===== MERMAS Y MANTENCIÓN ENTRE CIERRES =====

class TestClosureCosts:

    def _waste(self, db: Session, tenant_id, product, quantity, created_at):
        movement = StockMovement(
            tenant_id=tenant_id, product_id=product.id, type=MovementType.MERMA,
            quantity=-quantity, created_at=created_at
        )
        db.add(movement)
        db.commit()
        return movement

    def test_cost_stamped_before_previous_closure_is_not_lost(
        self, db_session: Session, service, sample_tenant, table, beer
    ):
        """Test merma guardada después del cierre con un reloj de la base levemente atrasado"""
        make_session(db_session, sample_tenant.id, table, "6000")
        first = service.close_shift(sample_tenant.id, closure_request(0), now=NOW)

        waste = self._waste(db_session, sample_tenant.id, beer, 3, NOW - timedelta(seconds=1))
        db_session.add(MaintenanceLog(
            tenant_id=sample_tenant.id, table_id=table.id, cost=Decimal("1000"),
            description="Tiza y cepillo", created_at=NOW - timedelta(seconds=1)
        ))
        db_session.commit()

        make_session(db_session, sample_tenant.id, table, "6000")
        second = service.close_shift(sample_tenant.id, closure_request(0), now=NOW + timedelta(hours=1))

        first_balance = db_session.get(DailyBalance, first.balance_id)
        second_balance = db_session.get(DailyBalance, second.balance_id)
        assert first_balance.waste_cost == Decimal("0")
        assert second_balance.waste_cost == Decimal("2400")
        assert second_balance.maintenance_cost == Decimal("1000")
        assert second.summary.net_profit == Decimal("2600")

        db_session.refresh(waste)
        assert waste.daily_balance_id == second.balance_id

    def test_cost_after_closure_time_waits_for_next_closure(
        self, db_session: Session, service, sample_tenant, table, beer
    ):
        make_session(db_session, sample_tenant.id, table, "6000")
        self._waste(db_session, sample_tenant.id, beer, 2, NOW + timedelta(minutes=30))

        first = service.close_shift(sample_tenant.id, closure_request(0), now=NOW)
        make_session(db_session, sample_tenant.id, table, "6000")
        second = service.close_shift(sample_tenant.id, closure_request(0), now=NOW + timedelta(hours=1))
        make_session(db_session, sample_tenant.id, table, "6000")
        third = service.close_shift(sample_tenant.id, closure_request(0), now=NOW + timedelta(hours=2))

        costs = [
            db_session.get(DailyBalance, result.balance_id).waste_cost
            for result in (first, second, third)
        ]
        assert costs == [Decimal("0"), Decimal("1600"), Decimal("0")]

    def test_waste_registered_right_after_closure(self, db_session: Session, service, sample_tenant, table, beer):
        make_session(db_session, sample_tenant.id, table, "6000")
        first = service.close_shift(sample_tenant.id, closure_request(0))

        beer.cost_price = Decimal("200")
        db_session.commit()
        InventoryService(db_session).register_waste(sample_tenant.id, beer.id, 3, reason="Botellas rotas")

        make_session(db_session, sample_tenant.id, table, "6000")
        second = service.close_shift(sample_tenant.id, closure_request(0))

        total_waste = sum(
            db_session.get(DailyBalance, result.balance_id).waste_cost for result in (first, second)
        )
        assert total_waste == Decimal("600")


# ===== INMUTABILIDAD Y SELLO =====

class TestImmutabilityAndSeal:

    def _closed_balance(self, db_session, service, tenant, table):
        make_session(db_session, tenant.id, table, "5712", payments=[("CASH", "5712", PaymentStatus.COMPLETED)])
        result = service.close_shift(tenant.id, closure_request("5712"), now=NOW)
        return result, db_session.get(DailyBalance, result.balance_id)

    def test_balance_cannot_be_updated(self, db_session: Session, service, sample_tenant, table):
        _, balance = self._closed_balance(db_session, service, sample_tenant, table)

        balance.net_profit = Decimal("1")
        with pytest.raises(ImmutableRecordError):
            db_session.commit()
        db_session.rollback()

    def test_balance_cannot_be_deleted(self, db_session: Session, service, sample_tenant, table):
        _, balance = self._closed_balance(db_session, service, sample_tenant, table)

        db_session.delete(balance)
        with pytest.raises(ImmutableRecordError):
            db_session.commit()
        db_session.rollback()

    def test_tampered_row_breaks_seal(self, db_session: Session, service, sample_tenant, table):
        result, _ = self._closed_balance(db_session, service, sample_tenant, table)

        table_ = DailyBalance.__table__
        db_session.execute(
            table_.update().where(table_.c.id == result.balance_id).values(net_profit=Decimal("999999"))
        )
        db_session.commit()

        assert service.verify_closure_seal(sample_tenant.id, result.balance_id, result.seal.hash) is False

    def test_seal_is_deterministic(self):
        fields = SealFields(
            balance_id=str(uuid4()),
            total_revenue=Decimal("5712"),
            net_profit=Decimal("4000"),
            closed_by="admin@club.cl",
            cash_in_hand=Decimal("5712"),
            cash_difference=Decimal("0"),
            date=NOW,
        )
        same_amounts = fields.model_copy(update={"total_revenue": Decimal("5712.00")})

        assert compute_seal_hash(fields) == compute_seal_hash(fields)
        assert compute_seal_hash(fields) == compute_seal_hash(same_amounts)
        assert generate_integrity_seal(fields).hash == generate_integrity_seal(fields).hash
        assert generate_integrity_seal(fields).algorithm == "SHA-256"

    @pytest.mark.parametrize("field,value", [
        ("total_revenue", Decimal("5713")),
        ("net_profit", Decimal("3999")),
        ("closed_by", "otro@club.cl"),
        ("cash_in_hand", Decimal("5000")),
        ("cash_difference", Decimal("-712")),
        ("date", NOW + timedelta(seconds=1)),
    ])
    def test_any_field_change_breaks_seal(self, field, value):
        fields = SealFields(
            balance_id=str(uuid4()),
            total_revenue=Decimal("5712"),
            net_profit=Decimal("4000"),
            closed_by="admin@club.cl",
            cash_in_hand=Decimal("5712"),
            cash_difference=Decimal("0"),
            date=NOW,
        )
        seal = generate_integrity_seal(fields)

        assert verify_integrity_seal(fields, seal.hash) is True
        assert verify_integrity_seal(fields.model_copy(update={field: value}), seal.hash) is False


# ===== LECTURAS =====

class TestClosureReads:

    def test_pending_summary(self, db_session: Session, service, sample_tenant, table):
        make_session(db_session, sample_tenant.id, table, "6000")
        make_session(db_session, sample_tenant.id, table, "6000")
        make_session(db_session, sample_tenant.id, table, "0", ended=False)

        summary = service.get_pending_summary(sample_tenant.id)

        assert summary.pending_sessions == 2
        assert summary.open_sessions == 1

    def test_list_and_detail(self, db_session: Session, service, sample_tenant, table):
        make_session(db_session, sample_tenant.id, table, "6000")
        first = service.close_shift(sample_tenant.id, closure_request(0), now=NOW)
        make_session(db_session, sample_tenant.id, table, "6000")
        make_session(db_session, sample_tenant.id, table, "6000")
        second = service.close_shift(sample_tenant.id, closure_request(0), now=NOW + timedelta(hours=1))

        listing = service.list_closures(sample_tenant.id)

        assert listing.total == 2
        assert [b.id for b in listing.balances] == [second.balance_id, first.balance_id]
        assert [b.session_count for b in listing.balances] == [2, 1]

        detail = service.get_closure_detail(sample_tenant.id, second.balance_id)
        assert len(detail.usage_logs) == 2
        assert service.get_closure_detail(uuid4(), second.balance_id) is None
