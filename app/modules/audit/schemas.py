from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
from uuid import UUID
from enum import Enum


class AuditSeverity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ThreatLevel(str, Enum):
    """Nivel de amenaza de un evento de seguridad"""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AuditEvent(BaseModel):
    """Evento que se agrega a la bitácora. El core nunca lo vuelve a leer."""
    type: str = Field(..., min_length=1, max_length=60)
    severity: AuditSeverity
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    tenant_id: Optional[UUID] = None
