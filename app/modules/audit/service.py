"""
Bitácora de auditoría (Audit/Event Log).

El core solo escribe eventos a través de un AuditSink inyectado; nunca lee de
vuelta. DatabaseAuditSink agrega la fila a la sesión del llamador sin hacer
commit, de modo que el evento queda dentro de la misma transacción que la
operación de negocio que lo originó.
"""
from sqlalchemy.orm import Session
from pydantic_core import to_jsonable_python
from typing import Any, Dict, Optional, Protocol
from uuid import UUID
import logging

from app.modules.audit.models import SystemLog
from app.modules.audit.schemas import AuditEvent, AuditSeverity, ThreatLevel

logger = logging.getLogger(__name__)


_LOG_LEVELS = {
    AuditSeverity.INFO: logging.INFO,
    AuditSeverity.WARN: logging.WARNING,
    AuditSeverity.ERROR: logging.ERROR,
    AuditSeverity.CRITICAL: logging.CRITICAL,
}


class AuditSink(Protocol):
    def record(self, event: AuditEvent) -> None:
        ...


class DatabaseAuditSink:
    """Persiste eventos en system_logs usando la sesión del llamador."""

    def __init__(self, db: Session):
        self.db = db

    def record(self, event: AuditEvent) -> None:
        self.db.add(SystemLog(
            tenant_id=event.tenant_id,
            level=event.severity.value,
            type=event.type,
            message=event.message,
            details=to_jsonable_python(event.details) or None
        ))


class AuditLogger:
    """Fachada sobre el sink: registra el evento y lo refleja en el log de la app."""

    def __init__(self, sink: AuditSink):
        self.sink = sink

    def log(
        self,
        type: str,
        severity: AuditSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        tenant_id: Optional[UUID] = None
    ) -> AuditEvent:
        event = AuditEvent(
            type=type,
            severity=severity,
            message=message,
            details=details or {},
            tenant_id=tenant_id
        )
        logger.log(_LOG_LEVELS[severity], f"[{type}] {message}")
        self.sink.record(event)
        return event

    def security_event(
        self,
        type: str,
        threat_level: ThreatLevel,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        tenant_id: Optional[UUID] = None,
        user_id: Optional[Any] = None
    ) -> AuditEvent:
        """Eventos de seguridad: siempre ERROR o superior en la bitácora."""
        severity = AuditSeverity.CRITICAL if threat_level == ThreatLevel.CRITICAL else AuditSeverity.ERROR
        payload = dict(details or {})
        payload["threatLevel"] = threat_level.value
        if user_id is not None:
            payload["userId"] = user_id
        return self.log(
            type=type,
            severity=severity,
            message=f"[SECURITY-{threat_level.value}] {type}: {message}",
            details=payload,
            tenant_id=tenant_id
        )
