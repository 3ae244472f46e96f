"""
Esquemas Pydantic para socios y cambios de categoría
"""

from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
from datetime import datetime

from app.modules.members.models import MemberCategory


class TierChangeRequest(BaseModel):
    new_category: MemberCategory
    reason: str = Field(..., min_length=1, max_length=500)
    changed_by: str = Field(..., min_length=1, max_length=100)

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        if not v.strip():
            raise ValueError("El motivo del cambio es obligatorio")
        return v.strip()


class TierChangeResult(BaseModel):
    success: bool
    error: Optional[str] = None
    tier_change_id: Optional[UUID] = None


class MemberOut(BaseModel):
    id: UUID
    name: str
    category: MemberCategory
    subscription_status: Optional[str] = None
    amount_spent: Decimal

    model_config = {"from_attributes": True}


class TierChangeOut(BaseModel):
    id: UUID
    member_id: UUID
    from_category: MemberCategory
    to_category: MemberCategory
    reason: str
    changed_by: str
    created_at: datetime

    model_config = {"from_attributes": True}


class VipCandidateList(BaseModel):
    threshold: Decimal
    candidates: List[MemberOut]


class SuspiciousActor(BaseModel):
    changed_by: str
    upgrades: int


class TierAuditResult(BaseModel):
    window_start: datetime
    suspicious: List[SuspiciousActor] = Field(default_factory=list)
