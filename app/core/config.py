from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional
from decimal import Decimal
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'billar_user'
    POSTGRES_PASSWORD: str = 'billar_pass'
    POSTGRES_DB: str = 'billar_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None  # Override completo (tests, sqlite local)

    # Pricing
    ZERO_DECIMAL_CURRENCIES: List[str] = ["CLP", "JPY", "KRW"]
    DISCOUNT_TOLERANCE: Decimal = Decimal("0.01")  # 1 centavo por redondeo
    DEFAULT_VIP_THRESHOLD: Decimal = Decimal("50000")

    # Taxes / DTE
    TAX_IDENTITY_TOLERANCE: Decimal = Decimal("0.01")
    BILLING_TIMEOUT_SECONDS: float = 10.0
    BILLING_VERIFY_BASE_URL: str = 'https://billar-saas.local/verify/dte'
    MOCK_BILLING_LATENCY_SECONDS: float = 0.0

    # Z-Report (cierre de turno)
    CASH_ALERT_TOLERANCE: Decimal = Decimal("500")
    CLOSURE_STATEMENT_TIMEOUT_MS: int = 15000
    BUSINESS_TIMEZONE: str = 'America/Santiago'

    # Members
    TIER_DOWNGRADE_EXPIRY_KEYWORDS: List[str] = ["vencimiento", "expir"]
    SUSPICIOUS_VIP_UPGRADES_PER_DAY: int = 5

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("CASH_ALERT_TOLERANCE")
    @classmethod
    def validate_cash_tolerance(cls, v):
        # Una tolerancia de 0 convierte cualquier ruido de redondeo en alerta
        if v <= 0:
            raise ValueError("CASH_ALERT_TOLERANCE debe ser mayor a cero")
        return v

    @field_validator("ZERO_DECIMAL_CURRENCIES")
    @classmethod
    def normalize_currencies(cls, v):
        return [code.strip().upper() for code in v]

settings = Settings()
