"""
Tests unitaires pour la conversion des erreurs et les exception handlers
"""
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel
from sqlalchemy.exc import OperationalError

from app.api.errors import to_http_exception
from app.core import exceptions as http
from app.middleware.exception_handler import register_exception_handlers
from app.services.exceptions import (
    EmailAlreadyExistsError,
    InvalidCredentialsError,
    InvalidSessionError,
    InvalidTwoFactorActionError,
    InvalidTwoFactorCodeError,
    MissingCredentialsError,
    RegistrationValidationError,
    ServiceException,
    StorageUnavailableError,
    SubscriptionOwnershipError,
    TwoFactorNotConfiguredError,
    TwoFactorRequiredError,
)


class TestToHttpException:

    @pytest.mark.parametrize("service_exc,http_cls,status", [
        (EmailAlreadyExistsError("a@b.fr"), http.EmailAlreadyExists, 409),
        (MissingCredentialsError(), http.MissingCredentials, 400),
        (InvalidCredentialsError("user_not_found"), http.InvalidCredentials, 401),
        (StorageUnavailableError("login"), http.ServiceUnavailable, 503),
        (InvalidSessionError("token expire"), http.InvalidSession, 401),
        (SubscriptionOwnershipError(), http.PermissionDenied, 403),
        (InvalidTwoFactorCodeError(), http.InvalidTwoFactorCode, 401),
        (TwoFactorRequiredError(), http.TwoFactorRequired, 401),
        (TwoFactorNotConfiguredError(), http.BadRequest, 400),
        (InvalidTwoFactorActionError("reset"), http.BadRequest, 400),
    ])
    def test_mapping(self, service_exc, http_cls, status):
        result = to_http_exception(service_exc)

        assert type(result) is http_cls
        assert result.status_code == status

    def test_auth_failures_keep_generic_message(self):
        """La cause precise (reason) ne fuit pas vers le client"""
        result = to_http_exception(InvalidSessionError("utilisateur inconnu ou inactif"))

        assert result.message == "Session invalide ou expiree"

    def test_business_code_is_kept(self):
        result = to_http_exception(TwoFactorNotConfiguredError())

        assert result.error_code == "TWO_FACTOR_NOT_CONFIGURED"
        assert result.message == "2FA non configure"

    def test_weak_password(self):
        result = to_http_exception(RegistrationValidationError("Trop court", field="password"))

        assert isinstance(result, http.PasswordTooWeak)
        assert result.details == {"field": "password"}

    def test_other_validation_error(self):
        result = to_http_exception(RegistrationValidationError("Email invalide", field="email"))

        assert type(result) is http.ValidationError
        assert result.status_code == 400

    def test_unknown_service_error_is_bad_request(self):
        result = to_http_exception(ServiceException("Oups", code="X"))

        assert type(result) is http.BadRequest
        assert result.message == "Oups"


class Payload(BaseModel):
    email: str


@pytest.fixture
def error_client():
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/rate-limited")
    def rate_limited():
        raise http.RateLimitExceeded(retry_after=900, headers={"Retry-After": "900"})

    @app.get("/database")
    def database():
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    @app.get("/bug")
    def bug():
        raise RuntimeError("details internes")

    @app.post("/payload")
    def payload(body: Payload):
        return body

    return TestClient(app, raise_server_exceptions=False)


class TestExceptionHandlers:

    def test_app_exception_format_and_headers(self, error_client):
        response = error_client.get("/rate-limited")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "900"
        body = response.json()
        assert body["error"] == "RATE_LIMIT_EXCEEDED"
        assert body["details"]["retryAfter"] == 900

    def test_validation_is_400(self, error_client):
        response = error_client.post("/payload", json={})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert body["details"]["errors"][0]["field"] == "email"

    def test_database_error_is_503(self, error_client):
        response = error_client.get("/database")

        assert response.status_code == 503
        assert "connection refused" not in response.text

    def test_unexpected_error_hides_details(self, error_client):
        response = error_client.get("/bug")

        assert response.status_code == 500
        assert response.json()["error"] == "INTERNAL_ERROR"
        assert "details internes" not in response.text
