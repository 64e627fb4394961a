"""
Schemas Pydantic pour le journal d'audit.

- AuditLogFilters: filtres types, valides une seule fois a la frontiere HTTP
- AuditLogResponse / AuditStats / AuditLogListResponse: lecture paginee
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator, model_validator

from app.models.audit import AuditAction
from app.schemas.base import BaseSchema


class AuditLogFilters(BaseSchema):
    """Filtres conjonctifs, tous optionnels"""
    user_id: Optional[str] = Field(None, description="ID utilisateur ou 'anonymous'")
    action: Optional[AuditAction] = Field(None, description="Action exacte")
    resource: Optional[str] = Field(None, max_length=200, description="Sous-chaine de ressource")
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("user_id", "resource")
    @classmethod
    def empty_as_none(cls, v: Optional[str]) -> Optional[str]:
        """Une chaine vide equivaut a l'absence de filtre"""
        return v or None

    @model_validator(mode="after")
    def check_date_range(self) -> "AuditLogFilters":
        """startDate doit preceder endDate"""
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("startDate doit etre anterieure a endDate")
        return self


class AuditExportRequest(AuditLogFilters):
    """Corps du POST d'export CSV (memes filtres)"""
    pass


class AuditLogResponse(BaseSchema):
    """Entree d'audit"""
    id: int
    user_id: str
    action: str
    resource: str
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: datetime
    details: Optional[Dict[str, Any]] = None


class AuditStats(BaseSchema):
    """Metadonnees de pagination"""
    total: int
    current_page: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class AuditLogListResponse(BaseSchema):
    """Response de GET /admin/audit"""
    logs: List[AuditLogResponse]
    total: int
    stats: AuditStats


class RateLimitStatsResponse(BaseSchema):
    """Etat du rate limiter (monitoring admin)"""
    backend: str
    total_keys: int
    keys_by_type: Dict[str, int]
