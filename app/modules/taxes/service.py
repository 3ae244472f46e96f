from sqlalchemy.orm import Session
from decimal import Decimal, ROUND_HALF_UP
from uuid import UUID
import logging

from app.common.money import to_decimal
from app.common.schemas import OperationResult
from app.modules.audit.schemas import AuditSeverity
from app.modules.audit.service import AuditLogger
from app.modules.tenants.models import Tenant
from app.modules.taxes.schemas import TaxConfig, TaxConfigUpdate

logger = logging.getLogger(__name__)


class TaxConfigService:
    """
    Configuración fiscal del tenant con auditoría.

    Reglas de negocio:
    - tax_rate debe estar entre 0.0 y 1.0
    - Si tax_rate > 1.0 o < 0 se descarta, se usa 0.0 y se registra ERROR
    - Si tax_rate == 0 y el tenant NO es exento se registra WARN
    """

    def __init__(self, db: Session, audit: AuditLogger):
        self.db = db
        self.audit = audit

    def get_tax_config(self, tenant_id: UUID) -> TaxConfig:
        """Obtener y validar la configuración de impuesto del tenant"""
        tenant = self.db.get(Tenant, tenant_id)
        if not tenant:
            return TaxConfig(rate=Decimal("0"), name="Tax", exempt=False, percentage=0)
        return self.resolve(tenant)

    def resolve(self, tenant: Tenant) -> TaxConfig:
        """Validar la configuración de un tenant ya cargado"""
        rate = to_decimal(tenant.tax_rate)
        exempt = bool(tenant.is_tax_exempt)
        name = tenant.tax_name or "IVA"

        if rate < 0 or rate > 1:
            self.audit.log(
                type="TAX_RATE_INVALID",
                severity=AuditSeverity.ERROR,
                message=f"taxRate inválido ({rate}). Debe estar entre 0.0 y 1.0. Se usará 0.",
                details={"configuredRate": rate},
                tenant_id=tenant.id
            )
            rate = Decimal("0")

        if rate == 0 and not exempt:
            self.audit.log(
                type="TAX_ZERO_NOT_EXEMPT",
                severity=AuditSeverity.WARN,
                message=(
                    "El tenant está facturando con 0% pero NO está marcado como exento. "
                    "Verifica si corresponde a Boleta Exenta o marca is_tax_exempt."
                ),
                tenant_id=tenant.id
            )

        percentage = int((rate * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return TaxConfig(rate=rate, name=name, exempt=exempt, percentage=percentage)

    def update_tax_config(self, tenant_id: UUID, data: TaxConfigUpdate) -> OperationResult:
        """Actualizar la configuración fiscal del tenant validando el rango antes de guardar"""
        if data.tax_percentage < 0 or data.tax_percentage > 100:
            return OperationResult(success=False, error="El porcentaje debe estar entre 0 y 100.")
        if not data.tax_name:
            return OperationResult(success=False, error="El nombre del impuesto es obligatorio.")

        tenant = self.db.get(Tenant, tenant_id)
        if not tenant:
            return OperationResult(success=False, error="Tenant no encontrado")

        tenant.tax_rate = (data.tax_percentage / 100).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
        tenant.tax_name = data.tax_name
        tenant.is_tax_exempt = data.is_tax_exempt

        self.audit.log(
            type="TAX_CONFIG_UPDATED",
            severity=AuditSeverity.INFO,
            message=f"Tax Config Updated: {data.tax_percentage}% {data.tax_name} (exento: {data.is_tax_exempt})",
            tenant_id=tenant_id
        )
        self.db.commit()
        logger.info(f"Tenant {tenant_id} tax config updated to {tenant.tax_rate}")

        return OperationResult(success=True)
