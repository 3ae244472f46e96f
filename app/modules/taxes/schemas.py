from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional


class TaxBreakdown(BaseModel):
    """Desglose de un monto con impuesto incluido"""
    net_amount: Decimal = Field(..., description="Neto contable (Z-Report y SII)")
    tax_amount: Decimal = Field(..., description="Impuesto a declarar")
    gross_amount: Decimal = Field(..., description="Precio al público (monto cobrado)")


class TaxIdentityCheck(BaseModel):
    valid: bool
    difference: Decimal = Decimal("0")
    reason: Optional[str] = None


class TaxConfig(BaseModel):
    """Configuración fiscal efectiva de un tenant (ya validada)"""
    rate: Decimal = Field(..., ge=0, le=1, description="Tasa 0.0 - 1.0 (ej. 0.19)")
    name: str = Field(..., description="Nombre del impuesto (IVA, IGV, etc.)")
    exempt: bool = Field(False, description="True si el tenant es exento")
    percentage: int = Field(..., ge=0, le=100, description="Porcentaje para mostrar en UI")


class TaxConfigUpdate(BaseModel):
    """Esquema para actualizar la configuración fiscal del tenant"""
    tax_percentage: Decimal = Field(..., description="Porcentaje de impuesto (0-100)")
    tax_name: str = Field(..., max_length=20, description="Nombre del impuesto")
    is_tax_exempt: bool = False

    @field_validator('tax_name')
    @classmethod
    def normalize_name(cls, v: str) -> str:
        return v.strip().upper()
