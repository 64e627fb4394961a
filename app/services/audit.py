"""
Service d'Audit pour ChantierPro Auth.

Ce module fournit le service du journal d'audit. Il permet de:
- Enregistrer les actions sensibles (connexion, 2FA, acces refuse, ...)
- Rechercher les entrees avec filtres et pagination
- Exporter les entrees filtrees en CSV

L'enregistrement est best-effort: un echec d'ecriture est logge en WARNING
et n'interrompt jamais l'operation auditee. Chaque ecriture utilise sa
propre session DB pour ne pas contaminer la transaction de la requete.
"""
import csv
import io
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.logging import sanitize_dict
from app.models.audit import ANONYMOUS_USER, AuditAction, AuditLog, AuditResource
from app.repositories.audit_log import AuditLogRepository
from app.repositories.base import OffsetPage, validate_pagination
from app.repositories.user import UserRepository
from app.schemas.audit import AuditLogFilters

logger = logging.getLogger(__name__)
settings = get_settings()

CSV_HEADERS = [
    "ID",
    "Utilisateur",
    "Email",
    "Rôle",
    "Action",
    "Ressource",
    "IP",
    "User Agent",
    "Timestamp",
    "Détails",
]

MISSING_VALUE = "N/A"

MAX_QUERY_LIMIT = 1000


def run_now(func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    """Execute immediatement une tache d'audit (defaut hors requete HTTP)"""
    func(*args, **kwargs)


@dataclass
class AuditEvent:
    """Evenement a enregistrer dans le journal"""
    user_id: str
    action: AuditAction
    resource: str
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    timestamp: Optional[datetime] = None


@dataclass
class AuditQueryResult:
    """Resultat d'une recherche: page d'entrees et total"""
    entries: List[AuditLog]
    total: int
    page: OffsetPage = field(repr=False)


class AuditService:
    """
    Service du journal d'audit.

    Args:
        session_factory: Fabrique de sessions SQLAlchemy (SessionLocal)
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    # =========================================================================
    # Enregistrement
    # =========================================================================

    def record(self, event: AuditEvent) -> Optional[AuditLog]:
        """
        Ajoute une entree au journal.

        Ne leve jamais d'exception: un echec est logge en WARNING.

        Args:
            event: Evenement a enregistrer

        Returns:
            L'entree creee, ou None si l'ecriture a echoue
        """
        data = {
            "user_id": event.user_id,
            "action": event.action.value,
            "resource": event.resource,
            "ip": event.ip,
            "user_agent": event.user_agent,
            "details": sanitize_dict(event.details) if event.details else None,
            "timestamp": event.timestamp,
        }

        try:
            with self.session_factory() as session:
                entry = AuditLogRepository(session).create(data)
                session.commit()
                session.refresh(entry)
                session.expunge(entry)
                return entry
        except Exception as e:
            logger.warning(
                f"Echec d'ecriture audit action={event.action.value} "
                f"user_id={event.user_id}: {e}"
            )
            return None

    def log_login_success(
        self,
        user_id: Any,
        ip: Optional[str],
        user_agent: Optional[str],
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """Connexion reussie"""
        return self.record(AuditEvent(
            user_id=str(user_id),
            action=AuditAction.LOGIN_SUCCESS,
            resource=AuditResource.AUTH.value,
            ip=ip,
            user_agent=user_agent,
            details=details,
        ))

    def log_login_failed(
        self,
        email: Optional[str],
        ip: Optional[str],
        user_agent: Optional[str],
        reason: str,
    ) -> Optional[AuditLog]:
        """
        Connexion echouee, toujours pour l'utilisateur "anonymous".

        Args:
            email: Email tente (peut etre absent)
            ip: Adresse IP
            user_agent: User-Agent
            reason: missing_credentials, user_not_found, invalid_password,
                server_error, rate_limit_exceeded, ...
        """
        return self.record(AuditEvent(
            user_id=ANONYMOUS_USER,
            action=AuditAction.LOGIN_FAILED,
            resource=AuditResource.AUTH.value,
            ip=ip,
            user_agent=user_agent,
            details={"email": email, "reason": reason},
        ))

    def log_logout(
        self,
        user_id: Any,
        ip: Optional[str],
        user_agent: Optional[str],
    ) -> Optional[AuditLog]:
        """Deconnexion"""
        return self.record(AuditEvent(
            user_id=str(user_id),
            action=AuditAction.LOGOUT,
            resource=AuditResource.AUTH.value,
            ip=ip,
            user_agent=user_agent,
        ))

    def log_access_denied(
        self,
        user_id: Any,
        resource: str,
        ip: Optional[str],
        user_agent: Optional[str],
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """Acces refuse a une ressource"""
        return self.record(AuditEvent(
            user_id=str(user_id),
            action=AuditAction.ACCESS_DENIED,
            resource=resource,
            ip=ip,
            user_agent=user_agent,
            details=details,
        ))

    def log_chantier_action(
        self,
        user_id: Any,
        action: AuditAction,
        chantier_id: Any,
        ip: Optional[str],
        user_agent: Optional[str],
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """Action sur un chantier (ressource composite chantier:<id>)"""
        return self.record(AuditEvent(
            user_id=str(user_id),
            action=action,
            resource=f"{AuditResource.CHANTIER.value}:{chantier_id}",
            ip=ip,
            user_agent=user_agent,
            details=details,
        ))

    def log_two_factor_action(
        self,
        user_id: Any,
        success: bool,
        ip: Optional[str],
        user_agent: Optional[str],
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """Verification 2FA reussie ou echouee"""
        return self.record(AuditEvent(
            user_id=str(user_id),
            action=AuditAction.TWO_FA_SUCCESS if success else AuditAction.TWO_FA_FAILED,
            resource=AuditResource.AUTH.value,
            ip=ip,
            user_agent=user_agent,
            details=details,
        ))

    # =========================================================================
    # Lecture
    # =========================================================================

    @staticmethod
    def _filter_kwargs(filters: AuditLogFilters) -> Dict[str, Any]:
        return {
            "user_id": filters.user_id,
            "action": filters.action.value if filters.action else None,
            "resource": filters.resource,
            "start_date": filters.start_date,
            "end_date": filters.end_date,
        }

    def query(
        self,
        filters: AuditLogFilters,
        limit: int = 50,
        offset: int = 0,
    ) -> AuditQueryResult:
        """
        Recherche les entrees (plus recentes d'abord).

        Args:
            filters: Filtres valides
            limit: Taille de page
            offset: Decalage

        Returns:
            AuditQueryResult avec entrees, total et metadonnees de page

        Raises:
            PaginationError: Si limit/offset hors bornes
        """
        validate_pagination(limit, offset, max_limit=MAX_QUERY_LIMIT)

        with self.session_factory() as session:
            entries, total = AuditLogRepository(session).search(
                skip=offset,
                limit=limit,
                **self._filter_kwargs(filters),
            )
            session.expunge_all()

        return AuditQueryResult(
            entries=entries,
            total=total,
            page=OffsetPage(total=total, limit=limit, offset=offset),
        )

    # =========================================================================
    # Export
    # =========================================================================

    def export_csv(
        self,
        filters: AuditLogFilters,
        now: Optional[datetime] = None,
    ) -> Tuple[str, str]:
        """
        Exporte les entrees filtrees en CSV.

        Args:
            filters: Filtres valides
            now: Date utilisee pour le nom de fichier

        Returns:
            Tuple (nom de fichier, contenu CSV)
        """
        today = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d")
        filename = f"audit-logs-{today}.csv"

        with self.session_factory() as session:
            entries, _ = AuditLogRepository(session).search(
                skip=0,
                limit=settings.AUDIT_EXPORT_LIMIT,
                **self._filter_kwargs(filters),
            )
            user_ids = {int(e.user_id) for e in entries if e.user_id.isdigit()}
            users = {
                str(user.id): user
                for user in UserRepository(session).get_many(list(user_ids))
            }

            buffer = io.StringIO()
            writer = csv.writer(buffer)
            writer.writerow(CSV_HEADERS)
            for entry in entries:
                user = users.get(entry.user_id)
                writer.writerow([
                    entry.id,
                    user.display_name if user else MISSING_VALUE,
                    user.email if user else MISSING_VALUE,
                    user.role.value if user else MISSING_VALUE,
                    entry.action,
                    entry.resource or MISSING_VALUE,
                    entry.ip or MISSING_VALUE,
                    entry.user_agent or MISSING_VALUE,
                    entry.timestamp.isoformat(),
                    json.dumps(entry.details, ensure_ascii=False) if entry.details else MISSING_VALUE,
                ])

        logger.info(f"Export audit: {len(entries)} entrees ({filename})")
        return filename, buffer.getvalue()
