"""
Configuration globale pytest pour ChantierPro Auth
Fixtures partagees entre tous les tests

Environnement de test (ENV=test):
- SQLite en memoire (StaticPool: une seule connexion partagee)
- bcrypt a 4 rounds pour des tests rapides
- Rate limiter reinitialise avant chaque test (backend memoire)
"""
import os
from typing import Callable, Dict, Generator

import pytest

# Configuration environnement de test (avant tout import de app.*)
os.environ["ENV"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["LOG_FORMAT"] = "console"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = ""
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SESSION_SECRET"] = "test-session-secret-with-at-least-32-chars"

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.dependencies import get_session_factory, reset_rate_limiter
from app.main import app
from app.models import Base, User, UserRole
from app.services.web_session import WebSessionIssuer
from tests.factories import DEFAULT_TEST_PASSWORD, AdminUserFactory, UserFactory


# ============================================
# Configuration Base de Donnees Test
# ============================================

@pytest.fixture
def db_engine():
    """
    Engine SQLite en memoire, schema cree a partir des modeles.
    Une base neuve par test.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> Callable[[], Session]:
    """Fabrique de sessions liee a la base de test"""
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    """Session de DB pour preparer et verifier les donnees"""
    session = session_factory()
    yield session
    session.close()


# ============================================
# Client API Test
# ============================================

@pytest.fixture(autouse=True)
def fresh_rate_limiter():
    """Chaque test demarre avec des fenetres vides"""
    reset_rate_limiter()
    yield
    reset_rate_limiter()


@pytest.fixture
def client(session_factory) -> Generator[TestClient, None, None]:
    """
    TestClient FastAPI branche sur la base de test.

    get_db et les ecritures d'audit passent par get_session_factory.
    """
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# ============================================
# Fixtures Donnees de Test
# ============================================

@pytest.fixture
def sample_password() -> str:
    """Mot de passe valide pour les tests"""
    return DEFAULT_TEST_PASSWORD


@pytest.fixture
def weak_passwords() -> list:
    """Liste de mots de passe faibles pour tests de validation"""
    return [
        "",                      # Vide
        "Court#1a",              # Trop court
        "nouppercase123!",       # Pas de majuscule
        "NOLOWERCASE123!",       # Pas de minuscule
        "NoSpecialChar123",      # Pas de caractere special
        "NoNumbers!ABCdef",      # Pas de chiffre
        "A" * 200,               # Trop long
        "Qwerty#Chantier9",      # Sequence commune
    ]


@pytest.fixture
def test_user(db_session: Session) -> User:
    """Utilisateur CLIENT actif avec DEFAULT_TEST_PASSWORD"""
    return UserFactory.create(db_session=db_session)


@pytest.fixture
def admin_user(db_session: Session) -> User:
    """Utilisateur ADMIN actif"""
    return AdminUserFactory.create(db_session=db_session)


def auth_headers_for(user: User) -> Dict[str, str]:
    """Header Bearer avec une session web valide pour cet utilisateur"""
    token = WebSessionIssuer().issue(user).token
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers(test_user: User) -> Dict[str, str]:
    return auth_headers_for(test_user)


@pytest.fixture
def admin_headers(admin_user: User) -> Dict[str, str]:
    return auth_headers_for(admin_user)


@pytest.fixture
def commercial_user(db_session: Session) -> User:
    """Utilisateur COMMERCIAL actif"""
    return UserFactory.create(db_session=db_session, role=UserRole.COMMERCIAL)
