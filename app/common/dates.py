from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from app.core.config import settings


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normaliza a UTC; los valores naive (SQLite) se asumen ya en UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_business_day(now: Optional[datetime] = None, tz_name: Optional[str] = None) -> datetime:
    """Medianoche local del negocio expresada en UTC."""
    tz = ZoneInfo(tz_name or settings.BUSINESS_TIMEZONE)
    local = as_utc(now or utc_now()).astimezone(tz)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.astimezone(timezone.utc)
