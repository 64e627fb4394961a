"""
Tests unitaires pour app/core/security.py

- Hashing bcrypt et verification
- Politique de force des mots de passe
- Signature et decodage des tokens JWT
"""
from datetime import datetime, timedelta, timezone

import pytest

from app.core.security import (
    InvalidTokenError,
    PasswordValidationError,
    TokenExpiredError,
    create_signed_token,
    decode_signed_token,
    hash_password,
    validate_password_strength,
    verify_password,
)

SECRET = "unit-test-secret-with-at-least-32-characters"


class TestPasswordHashing:
    """Tests pour hash_password / verify_password"""

    def test_hash_then_verify(self, sample_password):
        """Un hash se verifie avec le mot de passe d'origine"""
        hashed = hash_password(sample_password)

        assert hashed != sample_password
        assert hashed.startswith("$2")
        assert verify_password(sample_password, hashed) is True

    def test_wrong_password_rejected(self, sample_password):
        hashed = hash_password(sample_password)
        assert verify_password("Autre#MotDePasse9", hashed) is False

    def test_hashes_are_salted(self, sample_password):
        """Deux hash du meme mot de passe sont differents"""
        assert hash_password(sample_password) != hash_password(sample_password)

    def test_empty_password_cannot_be_hashed(self):
        with pytest.raises(PasswordValidationError):
            hash_password("")

    def test_verify_without_hash_returns_false(self, sample_password):
        assert verify_password(sample_password, None) is False
        assert verify_password("", "$2b$04$abcdefghijklmnopqrstuu") is False

    def test_corrupted_hash_returns_false(self, sample_password):
        """Un hash corrompu en base ne leve pas d'exception"""
        assert verify_password(sample_password, "pas-un-hash-bcrypt") is False


class TestPasswordStrength:
    """Tests pour validate_password_strength"""

    def test_valid_password(self, sample_password):
        assert validate_password_strength(sample_password) is True

    def test_weak_passwords_rejected(self, weak_passwords):
        for password in weak_passwords:
            with pytest.raises(PasswordValidationError):
                validate_password_strength(password)

    def test_password_at_bcrypt_limit_is_hashed(self):
        password = "Xy7!" + "k" * 68

        assert validate_password_strength(password) is True
        assert verify_password(password, hash_password(password)) is True

    def test_password_over_bcrypt_limit_rejected(self):
        with pytest.raises(PasswordValidationError):
            validate_password_strength("Xy7!" + "k" * 76)

    def test_multibyte_password_over_72_bytes_rejected(self):
        """44 caracteres mais 84 octets en UTF-8"""
        password = "Xy7!" + "éàèù" * 10

        with pytest.raises(PasswordValidationError) as exc_info:
            validate_password_strength(password)

        assert "72 octets" in str(exc_info.value)
        with pytest.raises(PasswordValidationError):
            hash_password(password)

    def test_password_with_email_local_part_rejected(self):
        with pytest.raises(PasswordValidationError) as exc_info:
            validate_password_strength("Jdupont#Chantier9", email="jdupont@example.fr")

        assert "nom ou votre email" in str(exc_info.value)

    def test_password_with_name_rejected(self):
        """Le nom est compare sans espaces, insensible a la casse"""
        with pytest.raises(PasswordValidationError):
            validate_password_strength("#9XJeanDupontX", name="Jean Dupont")

    def test_min_length_message(self):
        with pytest.raises(PasswordValidationError) as exc_info:
            validate_password_strength("Ab1#")

        assert "12 caracteres" in str(exc_info.value)


class TestSignedTokens:
    """Tests pour create_signed_token / decode_signed_token"""

    def test_round_trip_keeps_claims(self):
        token = create_signed_token({"sub": "42", "type": "web"}, SECRET, 60)

        payload = decode_signed_token(token, SECRET)

        assert payload["sub"] == "42"
        assert payload["type"] == "web"
        assert payload["exp"] - payload["iat"] == 60

    def test_expired_token(self):
        issued = datetime.now(timezone.utc) - timedelta(hours=2)
        token = create_signed_token({"sub": "1"}, SECRET, 60, now=issued)

        with pytest.raises(TokenExpiredError):
            decode_signed_token(token, SECRET)

    def test_wrong_secret(self):
        token = create_signed_token({"sub": "1"}, SECRET, 60)

        with pytest.raises(InvalidTokenError):
            decode_signed_token(token, "another-secret-with-at-least-32-chars!!")

    def test_issuer_is_checked_when_expected(self):
        token = create_signed_token({"sub": "1"}, SECRET, 60, issuer="chantierpro-mobile")

        assert decode_signed_token(token, SECRET, issuer="chantierpro-mobile")["iss"] == "chantierpro-mobile"
        with pytest.raises(InvalidTokenError):
            decode_signed_token(token, SECRET, issuer="chantierpro-mobile-refresh")

    @pytest.mark.parametrize("token", ["", None, "not.a.jwt"])
    def test_malformed_tokens(self, token):
        with pytest.raises(InvalidTokenError):
            decode_signed_token(token, SECRET)
