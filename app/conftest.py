"""
Fixtures compartidos para los tests de cada módulo.

Base de datos SQLite en memoria (StaticPool para compartir la conexión);
las guardas exclusivas de PostgreSQL (advisory locks, statement_timeout)
no aplican aquí.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from decimal import Decimal
from typing import List
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from app.core.logging import configure_logging
from app.database.database import Base, SessionLocal, get_db
from app.modules.audit.schemas import AuditEvent
from app.modules.audit.service import AuditLogger, DatabaseAuditSink
from app.modules.tenants.models import Tenant, BusinessModel

# Registro de todas las tablas en Base.metadata
from app.modules.audit import models as audit_models  # noqa: F401
from app.modules.members import models as members_models  # noqa: F401
from app.modules.inventory import models as inventory_models  # noqa: F401
from app.modules.sessions import models as sessions_models  # noqa: F401
from app.modules.closures import models as closures_models  # noqa: F401
from app.modules.billing import models as billing_models  # noqa: F401


engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
SessionLocal.configure(bind=engine)

configure_logging()


class MemoryAuditSink:
    """Sink en memoria para inspeccionar los eventos emitidos"""

    def __init__(self):
        self.events: List[AuditEvent] = []

    def record(self, event: AuditEvent) -> None:
        self.events.append(event)

    def of_type(self, type: str) -> List[AuditEvent]:
        return [e for e in self.events if e.type == type]


# ===== FIXTURES =====

@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    db = get_db()
    session = next(db)
    try:
        yield session
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def memory_audit_sink():
    return MemoryAuditSink()


@pytest.fixture
def audit(memory_audit_sink):
    return AuditLogger(memory_audit_sink)


@pytest.fixture
def db_audit(db_session):
    """AuditLogger que escribe en system_logs dentro de la transacción del test"""
    return AuditLogger(DatabaseAuditSink(db_session))


@pytest.fixture
def sample_tenant(db_session):
    """Club de socios en Chile: CLP, IVA 19%, $6.000 la hora"""
    tenant = Tenant(
        name="Club Billar Santiago",
        slug="club-santiago",
        business_model=BusinessModel.CLUB_SOCIOS,
        base_rate=Decimal("6000"),
        tax_rate=Decimal("0.19"),
        tax_name="IVA",
        is_tax_exempt=False,
        currency_code="CLP",
        currency_symbol="$",
    )
    db_session.add(tenant)
    db_session.commit()
    db_session.refresh(tenant)
    return tenant


@pytest.fixture
def comercial_tenant(db_session):
    """Bar comercial con descuentos por tier configurados"""
    tenant = Tenant(
        name="Billar Comercial Lima",
        slug="comercial-lima",
        business_model=BusinessModel.COMERCIAL,
        base_rate=Decimal("6000"),
        tax_rate=Decimal("0.19"),
        tax_name="IVA",
        is_tax_exempt=False,
        currency_code="CLP",
        currency_symbol="$",
        tier_settings={"vipDiscount": 15, "socioDiscount": 25, "vipThreshold": 40000},
    )
    db_session.add(tenant)
    db_session.commit()
    db_session.refresh(tenant)
    return tenant
