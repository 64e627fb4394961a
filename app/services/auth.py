"""
Service Authentification pour ChantierPro Auth
Inscription et verification des identifiants

Ce module fournit le verificateur d'identifiants:
- Inscription avec validation email et politique de mot de passe
- Authentification email/password a message d'echec uniforme
- Audit de chaque tentative (succes ou echec, avec la cause precise)

Securite:
- bcrypt cost 12, jamais de mot de passe en clair dans les logs ou l'audit
- DUMMY_HASH quand l'utilisateur n'existe pas (temps de reponse constant)
- Indisponibilite du stockage = echec (fail closed)
"""
import logging
import re
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.logging import mask_email
from app.core.security import (
    PasswordValidationError,
    burn_password_check,
    hash_password,
    validate_password_strength,
    verify_password,
)
from app.models import User, UserRole
from app.repositories.user import UserRepository, normalize_email
from app.services.audit import AuditService, run_now
from app.services.exceptions import (
    EmailAlreadyExistsError,
    InvalidCredentialsError,
    MissingCredentialsError,
    RegistrationValidationError,
    StorageUnavailableError,
)

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Causes d'echec enregistrees dans l'audit
REASON_MISSING_CREDENTIALS = "missing_credentials"
REASON_USER_NOT_FOUND = "user_not_found"
REASON_INVALID_PASSWORD = "invalid_password"
REASON_INACTIVE_USER = "inactive_user"
REASON_SERVER_ERROR = "server_error"


class AuthService:
    """
    Verificateur d'identifiants.

    Args:
        user_repository: Repository des utilisateurs
        audit_service: Service d'audit
        defer: Planificateur des ecritures d'audit de succes; les endpoints
            passent BackgroundTasks.add_task. Les echecs sont audites avant
            de lever l'exception (les taches de fond sont perdues sur erreur)
    """

    def __init__(
        self,
        user_repository: UserRepository,
        audit_service: AuditService,
        defer: Callable[..., None] = run_now,
    ):
        self.user_repository = user_repository
        self.audit_service = audit_service
        self.defer = defer

    # =========================================================================
    # Inscription
    # =========================================================================

    def register(
        self,
        name: Optional[str],
        email: Optional[str],
        password: Optional[str],
        phone: Optional[str] = None,
        company: Optional[str] = None,
    ) -> User:
        """
        Inscrit un nouvel utilisateur (role CLIENT).

        Args:
            name: Nom affiche (requis)
            email: Email (requis, format valide)
            password: Mot de passe (politique de force)
            phone: Telephone (optionnel)
            company: Societe (optionnel)

        Returns:
            L'utilisateur cree

        Raises:
            RegistrationValidationError: Champ manquant, email ou mot de passe invalide
            EmailAlreadyExistsError: Email deja enregistre
            StorageUnavailableError: Base indisponible
        """
        if not name or not name.strip() or not email or not password:
            raise RegistrationValidationError("Nom, email et mot de passe requis")

        email = normalize_email(email)
        if not EMAIL_PATTERN.match(email):
            raise RegistrationValidationError("Format d'email invalide", field="email")

        try:
            validate_password_strength(password, email=email, name=name)
        except PasswordValidationError as e:
            raise RegistrationValidationError(str(e), field="password")

        try:
            if self.user_repository.email_exists(email):
                raise EmailAlreadyExistsError(email)

            user = self.user_repository.create_user(
                email=email,
                password_hash=hash_password(password),
                name=name.strip(),
                phone=phone or None,
                company=company or None,
                role=UserRole.CLIENT,
            )
        except IntegrityError:
            # Inscription concurrente avec le meme email
            self.user_repository.session.rollback()
            raise EmailAlreadyExistsError(email)
        except SQLAlchemyError as e:
            logger.error(f"Erreur base de donnees a l'inscription de {mask_email(email)}: {e}")
            raise StorageUnavailableError("register")

        logger.info(f"Nouvel utilisateur inscrit: {mask_email(email)} (id={user.id})")
        return user

    # =========================================================================
    # Authentification
    # =========================================================================

    def authenticate(
        self,
        email: Optional[str],
        password: Optional[str],
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> User:
        """
        Verifie email + mot de passe.

        Le message d'echec est identique pour un email inconnu et un mauvais
        mot de passe; seule l'entree d'audit porte la cause precise.

        Args:
            email: Email saisi
            password: Mot de passe saisi
            ip: IP du client (audit)
            user_agent: User-Agent du client (audit)

        Returns:
            L'utilisateur authentifie

        Raises:
            MissingCredentialsError: Email ou mot de passe absent
            InvalidCredentialsError: Identifiants invalides
            StorageUnavailableError: Base indisponible
        """
        if not email or not password:
            self._audit_failure(email, ip, user_agent, REASON_MISSING_CREDENTIALS)
            raise MissingCredentialsError()

        normalized_email = normalize_email(email)

        try:
            user = self.user_repository.get_by_email(normalized_email)
        except SQLAlchemyError as e:
            logger.error(f"Erreur base de donnees au login de {mask_email(normalized_email)}: {e}")
            self._audit_failure(normalized_email, ip, user_agent, REASON_SERVER_ERROR)
            raise StorageUnavailableError("login")

        if user is None or not user.has_password:
            burn_password_check(password)
            self._audit_failure(normalized_email, ip, user_agent, REASON_USER_NOT_FOUND)
            raise InvalidCredentialsError(REASON_USER_NOT_FOUND)

        if not verify_password(password, user.password_hash):
            self._audit_failure(normalized_email, ip, user_agent, REASON_INVALID_PASSWORD)
            raise InvalidCredentialsError(REASON_INVALID_PASSWORD)

        if not user.is_active:
            self._audit_failure(normalized_email, ip, user_agent, REASON_INACTIVE_USER)
            raise InvalidCredentialsError(REASON_INACTIVE_USER)

        return user

    def record_login_success(
        self,
        user: User,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        channel: str = "web",
    ) -> None:
        """
        Marque la connexion comme reussie (derniere connexion + audit).

        Appele une fois tous les facteurs verifies.
        """
        try:
            self.user_repository.update_last_login(user)
        except SQLAlchemyError as e:
            logger.error(f"Erreur mise a jour last_login (user_id={user.id}): {e}")
            raise StorageUnavailableError("login")

        self.defer(
            self.audit_service.log_login_success,
            user.id,
            ip,
            user_agent,
            {"email": user.email, "channel": channel},
        )
        logger.info(f"Connexion reussie pour user_id={user.id} ({channel})")

    def _audit_failure(
        self,
        email: Optional[str],
        ip: Optional[str],
        user_agent: Optional[str],
        reason: str,
    ) -> None:
        logger.info(f"Echec de connexion pour {mask_email(email)}: {reason}")
        self.audit_service.log_login_failed(email, ip, user_agent, reason)
