from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from app.core.config import settings
import logging

logger = logging.getLogger(__name__)

# La URL define el driver; psycopg2 en producción
engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    echo=settings.DEBUG and settings.ENVIRONMENT != "test",
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Genera una sesión de base de datos síncrona."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_tenant_query(session, model, tenant_id):
    """Helper function to create tenant-scoped queries"""
    return session.query(model).filter(model.tenant_id == tenant_id)


def is_postgres(session: Session) -> bool:
    bind = session.get_bind()
    return bind.dialect.name == "postgresql"


def acquire_tenant_lock(session: Session, namespace: str, tenant_id) -> None:
    """
    Serializa operaciones críticas por tenant dentro de la transacción actual.

    Usa pg_advisory_xact_lock, que se libera solo al hacer commit/rollback.
    En motores sin advisory locks (SQLite en tests) no hace nada.
    """
    if not is_postgres(session):
        return
    session.execute(
        text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
        {"key": f"{namespace}:{tenant_id}"}
    )


def set_statement_timeout(session: Session, timeout_ms: int) -> None:
    """Limita la duración de cada sentencia en la transacción actual (solo PostgreSQL)."""
    if not is_postgres(session) or not timeout_ms:
        return
    # SET LOCAL no acepta parámetros enlazados
    session.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))
