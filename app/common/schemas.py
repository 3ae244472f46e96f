"""
Common result schemas shared by services
"""
from pydantic import BaseModel
from typing import Optional


class OperationResult(BaseModel):
    """Resultado estructurado para condiciones de negocio esperadas"""
    success: bool
    error: Optional[str] = None
