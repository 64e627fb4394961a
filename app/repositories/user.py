"""
Repository pour les Users
Recherche par email, creation et persistance des champs de securite
(hash, secret 2FA, codes de secours)
"""
import json
import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func, update

from app.models import User, UserRole
from app.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    """Normalise un email (minuscules, sans espaces autour)"""
    return email.strip().lower()


class UserRepository(BaseRepository[User]):
    """
    Repository User.

    Les emails sont compares apres normalisation (minuscules).
    """

    model = User

    def get_by_email(self, email: str) -> Optional[User]:
        """
        Recupere un utilisateur par email.

        Args:
            email: Email de l'utilisateur (normalise avant comparaison)

        Returns:
            L'utilisateur trouve ou None
        """
        return (
            self.session.query(self.model)
            .filter(func.lower(self.model.email) == normalize_email(email))
            .first()
        )

    def email_exists(self, email: str) -> bool:
        """Verifie si un email est deja enregistre"""
        return self.get_by_email(email) is not None

    def create_user(
        self,
        email: str,
        password_hash: str,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        company: Optional[str] = None,
        role: UserRole = UserRole.CLIENT,
    ) -> User:
        """
        Cree un utilisateur.

        Args:
            email: Email (sera normalise)
            password_hash: Hash bcrypt deja calcule
            name: Nom affiche
            phone: Telephone
            company: Societe
            role: Role (CLIENT par defaut)

        Returns:
            L'utilisateur cree
        """
        return self.create({
            "email": normalize_email(email),
            "password_hash": password_hash,
            "name": name,
            "phone": phone,
            "company": company,
            "role": role,
        })

    def update_last_login(self, user: User) -> User:
        """Met a jour la date de derniere connexion"""
        user.last_login_at = datetime.now(timezone.utc)
        self.session.flush()
        return user

    # =========================================================================
    # Etat 2FA
    # =========================================================================

    def start_two_factor_setup(self, user: User, secret: str) -> User:
        """
        Enregistre un nouveau secret TOTP en attente de verification.

        Ecrase tout secret precedent et supprime les anciens codes de secours.
        """
        user.two_factor_secret = secret
        user.two_factor_enabled = False
        user.two_factor_backup_codes = None
        self.session.flush()
        return user

    def enable_two_factor(self, user: User, backup_codes: List[str]) -> User:
        """Active la 2FA et remplace les codes de secours"""
        user.two_factor_enabled = True
        user.two_factor_backup_codes = json.dumps(backup_codes)
        self.session.flush()
        return user

    def disable_two_factor(self, user: User) -> User:
        """Desactive la 2FA: secret, flag et codes sont effaces"""
        user.two_factor_secret = None
        user.two_factor_enabled = False
        user.two_factor_backup_codes = None
        self.session.flush()
        return user

    def consume_backup_code(self, user: User, code: str) -> bool:
        """
        Consomme un code de secours de maniere atomique.

        L'UPDATE est conditionne a la valeur lue (compare-and-swap): si une
        requete concurrente a deja consomme un code entre-temps, aucune ligne
        n'est modifiee et le code est refuse.

        Args:
            user: Utilisateur
            code: Code deja normalise (majuscules)

        Returns:
            True si le code existait et a ete retire
        """
        stored = user.two_factor_backup_codes
        codes = user.backup_codes
        if code not in codes:
            return False

        codes.remove(code)
        new_value = json.dumps(codes)

        result = self.session.execute(
            update(self.model)
            .where(self.model.id == user.id)
            .where(self.model.two_factor_backup_codes == stored)
            .values(two_factor_backup_codes=new_value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(f"Consommation concurrente d'un code de secours (user_id={user.id})")
            self.session.refresh(user)
            return False

        self.session.flush()
        self.session.refresh(user)
        return True
