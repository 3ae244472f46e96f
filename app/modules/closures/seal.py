"""
Sello de integridad del cierre Z.

Hash SHA-256 sobre los campos canónicos del balance, serializados en un
orden fijo. El sello se agrega a la bitácora de auditoría (nunca como campo
del propio balance): si alguien altera la fila, el hash recalculado deja de
coincidir con el registrado.

El timestamp del sello es metadata; no forma parte del payload hasheado.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union
import hashlib
import json
import secrets

from pydantic import BaseModel

from app.common.dates import as_utc, utc_now
from app.common.money import round_2
from app.modules.audit.schemas import AuditSeverity
from app.modules.audit.service import AuditLogger


SEAL_ALGORITHM = "SHA-256"


class SealFields(BaseModel):
    """Subconjunto canónico de un DailyBalance"""
    balance_id: str
    total_revenue: Decimal
    net_profit: Decimal
    closed_by: str
    cash_in_hand: Optional[Decimal] = None
    cash_difference: Optional[Decimal] = None
    date: Union[datetime, str]


class IntegritySeal(BaseModel):
    hash: str
    timestamp: str
    algorithm: str = SEAL_ALGORITHM


def _canonical_amount(value: Optional[Decimal]) -> Optional[str]:
    # 5712 y 5712.00 deben producir el mismo hash
    if value is None:
        return None
    return str(round_2(value))


def _canonical_date(value: Union[datetime, str]) -> str:
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    return value


def canonical_payload(fields: SealFields) -> str:
    payload = {
        "id": str(fields.balance_id),
        "rev": _canonical_amount(fields.total_revenue),
        "net": _canonical_amount(fields.net_profit),
        "by": fields.closed_by,
        "cash": _canonical_amount(fields.cash_in_hand),
        "diff": _canonical_amount(fields.cash_difference),
        "ts": _canonical_date(fields.date),
    }
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def compute_seal_hash(fields: SealFields) -> str:
    return hashlib.sha256(canonical_payload(fields).encode("utf-8")).hexdigest()


def generate_integrity_seal(fields: SealFields) -> IntegritySeal:
    return IntegritySeal(
        hash=compute_seal_hash(fields),
        timestamp=utc_now().isoformat(),
        algorithm=SEAL_ALGORITHM
    )


def verify_integrity_seal(fields: SealFields, expected_hash: str) -> bool:
    """Recalcula el hash y lo compara en tiempo constante."""
    return secrets.compare_digest(compute_seal_hash(fields), expected_hash)


def seal_fields_from_balance(balance) -> SealFields:
    return SealFields(
        balance_id=str(balance.id),
        total_revenue=balance.total_revenue,
        net_profit=balance.net_profit,
        closed_by=balance.closed_by,
        cash_in_hand=balance.cash_in_hand,
        cash_difference=balance.cash_difference,
        date=balance.date
    )


def save_integrity_seal(audit: AuditLogger, tenant_id, balance_id, seal: IntegritySeal) -> None:
    """Registra el sello en la bitácora append-only"""
    audit.log(
        type="Z_REPORT_INTEGRITY_SEAL",
        severity=AuditSeverity.INFO,
        message=f"Z-Report Integrity Seal: Balance {balance_id}",
        details={
            "balanceId": str(balance_id),
            "hash": seal.hash,
            "algorithm": seal.algorithm,
            "sealedAt": seal.timestamp,
        },
        tenant_id=tenant_id
    )
