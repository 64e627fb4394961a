"""
Tests unitaires pour le verificateur d'identifiants (AuthService).

Repositories et audit sont mockes; le message d'echec est uniforme,
seule l'entree d'audit porte la cause precise.
"""
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.core.security import hash_password
from app.models import User, UserRole
from app.services.auth import AuthService
from app.services.exceptions import (
    EmailAlreadyExistsError,
    InvalidCredentialsError,
    MissingCredentialsError,
    RegistrationValidationError,
    StorageUnavailableError,
)


@pytest.fixture
def mock_user_repo():
    repo = MagicMock()
    repo.email_exists.return_value = False
    repo.create_user.side_effect = lambda **kwargs: User(id=7, **kwargs)
    return repo


@pytest.fixture
def mock_audit():
    return MagicMock()


@pytest.fixture
def deferred():
    """Collecte les taches planifiees au lieu de les executer"""
    calls = []

    def defer(func, *args, **kwargs):
        calls.append((func, args, kwargs))

    defer.calls = calls
    return defer


@pytest.fixture
def service(mock_user_repo, mock_audit, deferred):
    return AuthService(
        user_repository=mock_user_repo,
        audit_service=mock_audit,
        defer=deferred,
    )


def make_user(password: str, **overrides) -> User:
    data = {
        "id": 1,
        "email": "chef@chantier.fr",
        "password_hash": hash_password(password),
        "name": "Chef",
        "role": UserRole.CLIENT,
        "is_active": True,
        "two_factor_enabled": False,
    }
    data.update(overrides)
    return User(**data)


class TestRegister:

    def test_register_creates_client(self, service, mock_user_repo, sample_password):
        user = service.register("Paul Martin", " Paul@Chantier.FR ", sample_password)

        assert user.role == UserRole.CLIENT
        kwargs = mock_user_repo.create_user.call_args.kwargs
        assert kwargs["email"] == "paul@chantier.fr"
        assert kwargs["password_hash"] != sample_password
        assert kwargs["role"] == UserRole.CLIENT

    @pytest.mark.parametrize("name,email,password", [
        (None, "a@b.fr", "Chantier#Solide42"),
        ("  ", "a@b.fr", "Chantier#Solide42"),
        ("Paul", None, "Chantier#Solide42"),
        ("Paul", "a@b.fr", None),
    ])
    def test_missing_fields(self, service, name, email, password):
        with pytest.raises(RegistrationValidationError) as exc_info:
            service.register(name, email, password)

        assert exc_info.value.field is None

    @pytest.mark.parametrize("email", ["pas-un-email", "a@b", "a b@c.fr", "@b.fr"])
    def test_invalid_email(self, service, email, sample_password):
        with pytest.raises(RegistrationValidationError) as exc_info:
            service.register("Paul", email, sample_password)

        assert exc_info.value.field == "email"

    def test_weak_password(self, service, mock_user_repo):
        with pytest.raises(RegistrationValidationError) as exc_info:
            service.register("Paul", "paul@chantier.fr", "faible")

        assert exc_info.value.field == "password"
        mock_user_repo.create_user.assert_not_called()

    def test_password_containing_name(self, service):
        with pytest.raises(RegistrationValidationError) as exc_info:
            service.register("Paul", "p.m@chantier.fr", "Paul#Chantier2024")

        assert exc_info.value.field == "password"

    def test_duplicate_email(self, service, mock_user_repo, sample_password):
        mock_user_repo.email_exists.return_value = True

        with pytest.raises(EmailAlreadyExistsError):
            service.register("Paul", "paul@chantier.fr", sample_password)

    def test_concurrent_duplicate_is_conflict(self, service, mock_user_repo, sample_password):
        mock_user_repo.create_user.side_effect = IntegrityError("INSERT", {}, Exception("unique"))

        with pytest.raises(EmailAlreadyExistsError):
            service.register("Paul", "paul@chantier.fr", sample_password)

        mock_user_repo.session.rollback.assert_called_once()

    def test_storage_failure(self, service, mock_user_repo, sample_password):
        mock_user_repo.email_exists.side_effect = OperationalError("SELECT", {}, Exception("down"))

        with pytest.raises(StorageUnavailableError):
            service.register("Paul", "paul@chantier.fr", sample_password)


class TestAuthenticate:

    def test_success(self, service, mock_user_repo, mock_audit, sample_password):
        user = make_user(sample_password)
        mock_user_repo.get_by_email.return_value = user

        result = service.authenticate("Chef@Chantier.fr", sample_password, ip="1.2.3.4")

        assert result is user
        mock_user_repo.get_by_email.assert_called_once_with("chef@chantier.fr")
        mock_audit.log_login_failed.assert_not_called()

    @pytest.mark.parametrize("email,password", [(None, "x"), ("a@b.fr", None), ("", "")])
    def test_missing_credentials(self, service, mock_audit, email, password):
        with pytest.raises(MissingCredentialsError):
            service.authenticate(email, password)

        assert mock_audit.log_login_failed.call_args.args[3] == "missing_credentials"

    def test_unknown_user_and_wrong_password_look_identical(
        self, service, mock_user_repo, mock_audit, sample_password
    ):
        """Meme exception et meme message, seule la cause d'audit differe"""
        mock_user_repo.get_by_email.return_value = None
        with pytest.raises(InvalidCredentialsError) as unknown:
            service.authenticate("ghost@chantier.fr", sample_password)

        mock_user_repo.get_by_email.return_value = make_user(sample_password)
        with pytest.raises(InvalidCredentialsError) as wrong:
            service.authenticate("chef@chantier.fr", "Mauvais#Passe99")

        assert unknown.value.message == wrong.value.message
        reasons = [c.args[3] for c in mock_audit.log_login_failed.call_args_list]
        assert reasons == ["user_not_found", "invalid_password"]

    def test_user_without_password(self, service, mock_user_repo, mock_audit, sample_password):
        mock_user_repo.get_by_email.return_value = make_user(sample_password, password_hash=None)

        with pytest.raises(InvalidCredentialsError):
            service.authenticate("chef@chantier.fr", sample_password)

        assert mock_audit.log_login_failed.call_args.args[3] == "user_not_found"

    def test_inactive_user(self, service, mock_user_repo, mock_audit, sample_password):
        mock_user_repo.get_by_email.return_value = make_user(sample_password, is_active=False)

        with pytest.raises(InvalidCredentialsError):
            service.authenticate("chef@chantier.fr", sample_password)

        assert mock_audit.log_login_failed.call_args.args[3] == "inactive_user"

    def test_storage_failure_fails_closed(self, service, mock_user_repo, mock_audit, sample_password):
        mock_user_repo.get_by_email.side_effect = OperationalError("SELECT", {}, Exception("down"))

        with pytest.raises(StorageUnavailableError):
            service.authenticate("chef@chantier.fr", sample_password)

        assert mock_audit.log_login_failed.call_args.args[3] == "server_error"

    def test_failure_audit_is_written_before_raising(self, mock_user_repo, mock_audit, sample_password):
        """Les echecs ne passent pas par defer (perdu si l'endpoint leve)"""
        defer = MagicMock()
        service = AuthService(mock_user_repo, mock_audit, defer=defer)
        mock_user_repo.get_by_email.return_value = None

        with pytest.raises(InvalidCredentialsError):
            service.authenticate("ghost@chantier.fr", sample_password)

        defer.assert_not_called()
        mock_audit.log_login_failed.assert_called_once()


class TestRecordLoginSuccess:

    def test_updates_last_login_and_defers_audit(
        self, service, mock_user_repo, mock_audit, deferred, sample_password
    ):
        user = make_user(sample_password)

        service.record_login_success(user, ip="1.2.3.4", user_agent="pytest", channel="mobile")

        mock_user_repo.update_last_login.assert_called_once_with(user)
        func, args, _ = deferred.calls[0]
        assert func == mock_audit.log_login_success
        assert args == (1, "1.2.3.4", "pytest", {"email": "chef@chantier.fr", "channel": "mobile"})

    def test_storage_failure(self, service, mock_user_repo, deferred, sample_password):
        mock_user_repo.update_last_login.side_effect = OperationalError("UPDATE", {}, Exception("down"))

        with pytest.raises(StorageUnavailableError):
            service.record_login_success(make_user(sample_password))

        assert deferred.calls == []
