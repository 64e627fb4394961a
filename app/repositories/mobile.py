"""
Repositories pour les clients mobiles
Sessions d'appareil et abonnements Web Push (upsert + desactivation logique)
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update

from app.models import MobileSession, PushSubscription
from app.repositories.base import BaseRepository


class MobileSessionRepository(BaseRepository[MobileSession]):
    """Repository des sessions mobiles, cle (user_id, device_id)"""

    model = MobileSession

    def get_for_device(self, user_id: int, device_id: str) -> Optional[MobileSession]:
        """Recupere la session d'un appareil"""
        return (
            self.session.query(self.model)
            .filter(self.model.user_id == user_id)
            .filter(self.model.device_id == device_id)
            .first()
        )

    def upsert(
        self,
        user_id: int,
        device_id: str,
        platform: Optional[str] = None,
        app_version: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> MobileSession:
        """
        Cree ou reactive la session d'un appareil.

        Args:
            user_id: ID utilisateur
            device_id: ID de l'appareil
            platform: Plateforme
            app_version: Version de l'app
            user_agent: User-Agent

        Returns:
            La session active
        """
        now = datetime.now(timezone.utc)
        mobile_session = self.get_for_device(user_id, device_id)

        if mobile_session is None:
            return self.create({
                "user_id": user_id,
                "device_id": device_id,
                "platform": platform,
                "app_version": app_version,
                "user_agent": user_agent,
                "last_activity": now,
                "is_active": True,
            })

        mobile_session.platform = platform
        mobile_session.app_version = app_version
        mobile_session.user_agent = user_agent
        mobile_session.last_activity = now
        mobile_session.is_active = True
        self.session.flush()
        return mobile_session

    def touch(self, user_id: int, device_id: str) -> int:
        """
        Met a jour last_activity d'une session active.

        Returns:
            Nombre de lignes modifiees
        """
        result = self.session.execute(
            update(self.model)
            .where(self.model.user_id == user_id)
            .where(self.model.device_id == device_id)
            .where(self.model.is_active.is_(True))
            .values(last_activity=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def deactivate(self, user_id: int, device_id: str) -> bool:
        """Desactive la session d'un appareil (jamais supprimee)"""
        mobile_session = self.get_for_device(user_id, device_id)
        if mobile_session is None or not mobile_session.is_active:
            return False
        mobile_session.soft_delete()
        self.session.flush()
        return True


class PushSubscriptionRepository(BaseRepository[PushSubscription]):
    """Repository des abonnements push, cle (user_id, endpoint)"""

    model = PushSubscription

    def get_for_endpoint(self, user_id: int, endpoint: str) -> Optional[PushSubscription]:
        """Recupere l'abonnement d'un endpoint"""
        return (
            self.session.query(self.model)
            .filter(self.model.user_id == user_id)
            .filter(self.model.endpoint == endpoint)
            .first()
        )

    def upsert(
        self,
        user_id: int,
        endpoint: str,
        p256dh: str,
        auth: str,
        device_id: Optional[str] = None,
    ) -> PushSubscription:
        """Cree ou met a jour (et reactive) un abonnement"""
        subscription = self.get_for_endpoint(user_id, endpoint)

        if subscription is None:
            return self.create({
                "user_id": user_id,
                "endpoint": endpoint,
                "p256dh": p256dh,
                "auth": auth,
                "device_id": device_id,
                "is_active": True,
            })

        subscription.p256dh = p256dh
        subscription.auth = auth
        subscription.device_id = device_id
        subscription.restore()
        self.session.flush()
        return subscription

    def deactivate(self, user_id: int, endpoint: str) -> bool:
        """Desactive un abonnement (conserve pour l'historique)"""
        subscription = self.get_for_endpoint(user_id, endpoint)
        if subscription is None or not subscription.is_active:
            return False
        subscription.soft_delete()
        self.session.flush()
        return True
