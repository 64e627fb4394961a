"""
Endpoints d'administration pour ChantierPro Auth.

Reserves au role ADMIN (un refus est audite ACCESS_DENIED):
- GET /admin/audit: Consultation filtree et paginee du journal
- POST /admin/audit: Export CSV du journal filtre
- GET /admin/rate-limit/stats: Etat du rate limiter
"""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query, Response

from app.core.dependencies import (
    ClientContext,
    get_audit_service,
    get_client_context,
    get_rate_limiter,
    require_admin,
)
from app.models import User
from app.models.audit import AuditAction, AuditResource
from app.schemas.audit import (
    AuditExportRequest,
    AuditLogFilters,
    AuditLogListResponse,
    AuditLogResponse,
    AuditStats,
    RateLimitStatsResponse,
)
from app.services.audit import MAX_QUERY_LIMIT, AuditEvent, AuditService
from app.services.rate_limit import RateLimiter

logger = logging.getLogger(__name__)


router = APIRouter(prefix="/admin", tags=["Admin"])


# ============================================
# Journal d'audit
# ============================================

@router.get(
    "/audit",
    response_model=AuditLogListResponse,
    summary="Consulter le journal d'audit",
    description="Filtres conjonctifs optionnels, tri par date decroissante"
)
def list_audit_logs(
    user_id: Optional[str] = Query(None, alias="userId", max_length=50),
    action: Optional[AuditAction] = Query(None),
    resource: Optional[str] = Query(None, max_length=200),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    limit: int = Query(50, ge=1, le=MAX_QUERY_LIMIT),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
    audit_service: AuditService = Depends(get_audit_service),
):
    """
    Liste paginee des entrees d'audit.

    Raises:
        400: Parametres invalides (action inconnue, startDate > endDate)
        403: Utilisateur non ADMIN
    """
    filters = AuditLogFilters(
        user_id=user_id,
        action=action,
        resource=resource,
        start_date=start_date,
        end_date=end_date,
    )
    result = audit_service.query(filters, limit=limit, offset=offset)
    page = result.page

    return AuditLogListResponse(
        logs=[AuditLogResponse.model_validate(entry) for entry in result.entries],
        total=result.total,
        stats=AuditStats(
            total=result.total,
            current_page=page.current_page,
            total_pages=page.total_pages,
            has_next_page=page.has_next,
            has_prev_page=page.has_prev,
        ),
    )


@router.post(
    "/audit",
    summary="Exporter le journal d'audit",
    description="Export CSV des entrees filtrees (memes filtres que la consultation)",
    response_class=Response,
    responses={200: {"content": {"text/csv": {}}}},
)
def export_audit_logs(
    background_tasks: BackgroundTasks,
    filters: Optional[AuditExportRequest] = Body(None),
    admin: User = Depends(require_admin),
    client: ClientContext = Depends(get_client_context),
    audit_service: AuditService = Depends(get_audit_service),
):
    """
    Export CSV en piece jointe (audit-logs-YYYY-MM-DD.csv).

    L'export lui-meme est trace (DATA_EXPORT).
    """
    filters = filters or AuditExportRequest()
    filename, content = audit_service.export_csv(filters)

    background_tasks.add_task(
        audit_service.record,
        AuditEvent(
            user_id=str(admin.id),
            action=AuditAction.DATA_EXPORT,
            resource=AuditResource.SYSTEM.value,
            ip=client.ip,
            user_agent=client.user_agent,
            details={"export": "audit_logs", "filters": filters.model_dump(mode="json", exclude_none=True)},
        ),
    )
    logger.info(f"Export audit par admin user_id={admin.id}")

    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ============================================
# Rate limiting
# ============================================

@router.get(
    "/rate-limit/stats",
    response_model=RateLimitStatsResponse,
    summary="Statistiques du rate limiter",
)
def rate_limit_stats(
    admin: User = Depends(require_admin),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Nombre de fenetres actives par classe d'operation"""
    return RateLimitStatsResponse(**limiter.get_stats())
