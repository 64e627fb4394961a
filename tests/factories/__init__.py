"""
Factories FactoryBoy pour les tests.

Usage:
    from tests.factories import UserFactory

    user = UserFactory.build()
    user = UserFactory.create(db_session=session)
"""
from tests.factories.user import (
    DEFAULT_TEST_PASSWORD,
    AdminUserFactory,
    InactiveUserFactory,
    UserDictFactory,
    UserFactory,
)

__all__ = [
    "DEFAULT_TEST_PASSWORD",
    "UserFactory",
    "AdminUserFactory",
    "InactiveUserFactory",
    "UserDictFactory",
]
