"""
Repository pour le journal d'audit.

Ce module fournit l'ajout et la recherche des entrees d'audit.

Fonctionnalites principales:
- Ajout d'une entree (append-only)
- Recherche filtree (utilisateur, action, ressource, periode) triee
  de la plus recente a la plus ancienne, avec comptage total

Notes de securite:
- Aucune methode de mise a jour ou de suppression n'est exposee
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Query

from app.models.audit import AuditLog
from app.repositories.base import BaseRepository


class AuditLogRepository(BaseRepository[AuditLog]):
    """
    Repository pour les entrees d'audit.
    """

    model = AuditLog

    def create(self, data: Dict[str, Any]) -> AuditLog:
        """
        Ajoute une entree d'audit.

        Args:
            data: Dictionnaire contenant:
                - user_id: ID utilisateur ou "anonymous"
                - action: Action (AuditAction)
                - resource: Ressource visee
                - ip, user_agent: Provenance
                - details: Contexte JSON (optionnel)

        Returns:
            AuditLog: L'entree creee
        """
        mapped_data = {
            "user_id": str(data["user_id"]),
            "action": str(data["action"]),
            "resource": data["resource"],
            "ip": data.get("ip"),
            "user_agent": data.get("user_agent"),
            "details": data.get("details") or None,
        }
        if data.get("timestamp") is not None:
            mapped_data["timestamp"] = data["timestamp"]

        return super().create(mapped_data)

    def _filtered_query(
        self,
        user_id: Optional[str] = None,
        action: Optional[str] = None,
        resource: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Query:
        """Construit la requete filtree (filtres conjonctifs, tous optionnels)"""
        query = self.session.query(self.model)

        if user_id is not None:
            query = query.filter(self.model.user_id == str(user_id))

        if action is not None:
            query = query.filter(self.model.action == action)

        # Sous-chaine, insensible a la casse
        if resource:
            query = query.filter(
                func.lower(self.model.resource).contains(resource.lower(), autoescape=True)
            )

        if start_date is not None:
            query = query.filter(self.model.timestamp >= start_date)
        if end_date is not None:
            query = query.filter(self.model.timestamp <= end_date)

        return query

    def search(
        self,
        user_id: Optional[str] = None,
        action: Optional[str] = None,
        resource: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 50
    ) -> Tuple[List[AuditLog], int]:
        """
        Recherche avec filtres multiples.

        Args:
            user_id: ID de l'utilisateur (egalite)
            action: Action (egalite)
            resource: Sous-chaine de la ressource (insensible a la casse)
            start_date: Date de debut incluse
            end_date: Date de fin incluse
            skip: Offset pour pagination
            limit: Limite de resultats

        Returns:
            Tuple (entrees triees par date decroissante, total)
        """
        query = self._filtered_query(
            user_id=user_id,
            action=action,
            resource=resource,
            start_date=start_date,
            end_date=end_date,
        )

        total = query.count()
        items = (
            query
            .order_by(self.model.timestamp.desc(), self.model.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
        return items, total
