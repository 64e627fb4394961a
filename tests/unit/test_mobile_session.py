"""
Tests unitaires pour l'emetteur de sessions mobiles.

Les dependances (verificateur, repositories, audit, 2FA) sont mockees.
"""
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from app.core.security import create_signed_token, decode_signed_token
from app.models import MobileSession, User, UserRole
from app.services.exceptions import (
    InvalidCredentialsError,
    InvalidSessionError,
    StorageUnavailableError,
    SubscriptionOwnershipError,
    TwoFactorRequiredError,
)
from app.services.mobile_session import (
    ACCESS_TOKEN_ISSUER,
    REFRESH_TOKEN_ISSUER,
    DeviceInfo,
    MobileSessionService,
    MobileTokenClaims,
    get_role_permissions,
    has_permission,
)


def make_user(**overrides) -> User:
    data = {
        "id": 5,
        "email": "ouvrier@chantier.fr",
        "name": "Hugo",
        "role": UserRole.OUVRIER,
        "is_active": True,
        "two_factor_enabled": False,
    }
    data.update(overrides)
    return User(**data)


def make_claims(**overrides) -> MobileTokenClaims:
    data = {
        "user_id": 5,
        "email": "ouvrier@chantier.fr",
        "role": "OUVRIER",
        "device_id": "device-1",
    }
    data.update(overrides)
    return MobileTokenClaims(**data)


@pytest.fixture
def mocks():
    auth = MagicMock()
    auth.authenticate.return_value = make_user()
    users = MagicMock()
    users.get.return_value = make_user()
    sessions = MagicMock()
    sessions.get_for_device.return_value = MobileSession(
        user_id=5, device_id="device-1", platform="android", app_version="2.1.0",
        user_agent="ChantierPro/2.1", is_active=True,
    )
    return {
        "auth_service": auth,
        "user_repository": users,
        "mobile_session_repository": sessions,
        "push_subscription_repository": MagicMock(),
        "audit_service": MagicMock(),
        "session_factory": MagicMock(),
        "two_factor_service": MagicMock(),
    }


@pytest.fixture
def service(mocks):
    return MobileSessionService(**mocks)


class TestPermissions:

    def test_admin_has_wildcard(self):
        claims = make_claims(permissions=get_role_permissions(UserRole.ADMIN))

        assert has_permission(claims, "factures:write") is True
        assert claims.has_permission("n-importe:quoi") is True

    def test_client_is_read_mostly(self):
        permissions = get_role_permissions("CLIENT")

        assert "devis:read" in permissions
        assert "devis:write" not in permissions
        assert "messages:write" in permissions

    def test_commercial_writes_business_documents(self):
        permissions = get_role_permissions(UserRole.COMMERCIAL)

        assert "factures:write" in permissions
        assert "equipes:read" not in permissions

    def test_ouvrier(self):
        claims = make_claims(permissions=get_role_permissions(UserRole.OUVRIER))

        assert claims.has_permission("materiaux:read") is True
        assert claims.has_permission("devis:read") is False

    def test_unknown_role_gets_default(self):
        assert get_role_permissions("STAGIAIRE") == ["chantiers:read"]


class TestLogin:

    def test_login_issues_token_pair(self, service, mocks):
        device = DeviceInfo(platform="ios", version="3.0.0", user_agent="ChantierPro-iOS")

        result = service.login("ouvrier@chantier.fr", "secret", "device-9", device, ip="1.2.3.4")

        access = decode_signed_token(result.tokens.access_token, service.secret, issuer=ACCESS_TOKEN_ISSUER)
        assert access["userId"] == 5
        assert access["deviceId"] == "device-9"
        assert access["deviceInfo"] == {"platform": "ios", "version": "3.0.0", "userAgent": "ChantierPro-iOS"}
        assert "materiaux:read" in access["permissions"]

        refresh = decode_signed_token(result.tokens.refresh_token, service.secret, issuer=REFRESH_TOKEN_ISSUER)
        assert refresh["type"] == "refresh"
        assert refresh["exp"] - refresh["iat"] == 90 * 24 * 3600
        assert result.tokens.expires_in == 30 * 24 * 3600
        assert result.tokens.token_type == "Bearer"

        mocks["mobile_session_repository"].upsert.assert_called_once_with(
            user_id=5, device_id="device-9", platform="ios", app_version="3.0.0",
            user_agent="ChantierPro-iOS",
        )
        mocks["auth_service"].record_login_success.assert_called_once()

    def test_invalid_credentials_propagate(self, service, mocks):
        mocks["auth_service"].authenticate.side_effect = InvalidCredentialsError("invalid_password")

        with pytest.raises(InvalidCredentialsError):
            service.login("ouvrier@chantier.fr", "faux", "device-1")

        mocks["mobile_session_repository"].upsert.assert_not_called()

    def test_two_factor_code_required(self, service, mocks):
        mocks["auth_service"].authenticate.return_value = make_user(
            two_factor_enabled=True, two_factor_secret="JBSWY3DPEHPK3PXP"
        )

        with pytest.raises(TwoFactorRequiredError):
            service.login("ouvrier@chantier.fr", "secret", "device-1")

        mocks["mobile_session_repository"].upsert.assert_not_called()

    def test_two_factor_code_verified(self, service, mocks):
        user = make_user(two_factor_enabled=True, two_factor_secret="JBSWY3DPEHPK3PXP")
        mocks["auth_service"].authenticate.return_value = user

        service.login("ouvrier@chantier.fr", "secret", "device-1", two_factor_code="123456")

        mocks["two_factor_service"].verify.assert_called_once_with(
            user, "123456", "verify-login", ip=None, user_agent=None
        )

    def test_storage_failure(self, service, mocks):
        mocks["mobile_session_repository"].upsert.side_effect = OperationalError("INSERT", {}, Exception("down"))

        with pytest.raises(StorageUnavailableError):
            service.login("ouvrier@chantier.fr", "secret", "device-1")


class TestValidateRequest:

    def test_valid_access_token(self, service):
        tokens = service.login("ouvrier@chantier.fr", "secret", "device-1").tokens

        claims = service.validate_request(tokens.access_token)

        assert claims.user_id == 5
        assert claims.device_id == "device-1"
        assert claims.role == "OUVRIER"

    def test_refresh_token_is_not_an_access_token(self, service):
        tokens = service.login("ouvrier@chantier.fr", "secret", "device-1").tokens

        assert service.validate_request(tokens.refresh_token) is None

    @pytest.mark.parametrize("token", [None, "", "garbage"])
    def test_invalid_tokens_return_none(self, service, token):
        assert service.validate_request(token) is None

    def test_missing_claims_return_none(self, service):
        token = create_signed_token({"userId": 5}, service.secret, 60, issuer=ACCESS_TOKEN_ISSUER)

        assert service.validate_request(token) is None


class TestRefresh:

    def test_refresh_issues_new_pair(self, service):
        tokens = service.login("ouvrier@chantier.fr", "secret", "device-1").tokens

        renewed = service.refresh(tokens.refresh_token)

        access = decode_signed_token(renewed.access_token, service.secret, issuer=ACCESS_TOKEN_ISSUER)
        assert access["deviceInfo"]["platform"] == "android"
        assert access["deviceInfo"]["version"] == "2.1.0"

    def test_access_token_cannot_refresh(self, service):
        tokens = service.login("ouvrier@chantier.fr", "secret", "device-1").tokens

        with pytest.raises(InvalidSessionError):
            service.refresh(tokens.access_token)

    def test_inactive_user(self, service, mocks):
        tokens = service.login("ouvrier@chantier.fr", "secret", "device-1").tokens
        mocks["user_repository"].get.return_value = make_user(is_active=False)

        with pytest.raises(InvalidSessionError):
            service.refresh(tokens.refresh_token)

    def test_logged_out_device(self, service, mocks):
        tokens = service.login("ouvrier@chantier.fr", "secret", "device-1").tokens
        mocks["mobile_session_repository"].get_for_device.return_value.is_active = False

        with pytest.raises(InvalidSessionError):
            service.refresh(tokens.refresh_token)

    def test_missing_token(self, service):
        with pytest.raises(InvalidSessionError):
            service.refresh(None)


class TestLogoutAndTouch:

    def test_logout_deactivates_device(self, service, mocks):
        mocks["mobile_session_repository"].deactivate.return_value = True

        assert service.logout(make_claims(), ip="1.2.3.4") is True

        mocks["mobile_session_repository"].deactivate.assert_called_once_with(5, "device-1")
        mocks["audit_service"].log_logout.assert_called_once_with(5, "1.2.3.4", None)

    def test_get_user_inactive(self, service, mocks):
        mocks["user_repository"].get.return_value = None

        with pytest.raises(InvalidSessionError):
            service.get_user(make_claims())

    def test_touch_commits(self, service, mocks):
        db = mocks["session_factory"].return_value.__enter__.return_value

        service.touch(5, "device-1")

        db.commit.assert_called_once()

    def test_touch_is_best_effort(self, service, mocks):
        db = mocks["session_factory"].return_value.__enter__.return_value
        db.execute.side_effect = OperationalError("UPDATE", {}, Exception("down"))

        service.touch(5, "device-1")

        db.commit.assert_not_called()


class TestPushSubscriptions:

    def test_subscribe_defaults_to_token_device(self, service, mocks):
        service.subscribe(make_claims(), 5, "https://push.example/abc", "p256", "auth")

        mocks["push_subscription_repository"].upsert.assert_called_once_with(
            user_id=5, endpoint="https://push.example/abc", p256dh="p256", auth="auth",
            device_id="device-1",
        )

    def test_subscribe_for_other_user_is_denied_and_audited(self, service, mocks):
        with pytest.raises(SubscriptionOwnershipError):
            service.subscribe(make_claims(), 6, "https://push.example/abc", "p256", "auth")

        mocks["push_subscription_repository"].upsert.assert_not_called()
        details = mocks["audit_service"].log_access_denied.call_args.args[4]
        assert details["target_user_id"] == 6

    def test_unsubscribe(self, service, mocks):
        mocks["push_subscription_repository"].deactivate.return_value = False

        assert service.unsubscribe(make_claims(), "https://push.example/abc") is False
