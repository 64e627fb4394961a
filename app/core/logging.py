"""
Configuration du logging structure pour ChantierPro Auth.

Fournit un logging JSON structure avec:
- Sanitization des donnees sensibles (mots de passe, secrets TOTP, tokens)
- Request ID et User ID dans tous les logs
- Timestamps ISO 8601 UTC

Usage:
    import logging
    from app.core.logging import sanitize_dict, mask_email

    logger = logging.getLogger(__name__)
    logger.info(f"Connexion reussie pour {mask_email(email)}")
"""
import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set
from contextvars import ContextVar

# Context variables pour request_id et user_id
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str] = ContextVar("user_id", default="")


# =============================================================================
# Sanitization des donnees sensibles
# =============================================================================

SENSITIVE_FIELDS: Set[str] = {
    "password",
    "password_hash",
    "token",
    "access_token",
    "refresh_token",
    "pending_token",
    "secret",
    "backup_codes",
    "code",
    "authorization",
    "cookie",
    "p256dh",
    "auth_key",
}

REDACTED = "[REDACTED]"


def sanitize_value(key: str, value: Any) -> Any:
    """
    Sanitize une valeur si la cle est sensible.

    Args:
        key: Nom du champ
        value: Valeur a verifier

    Returns:
        Valeur originale ou "[REDACTED]"
    """
    key_lower = key.lower()

    if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
        if isinstance(value, str) and len(value) > 8:
            # Garder les 4 premiers caracteres pour debug
            return f"{value[:4]}...{REDACTED}"
        return REDACTED

    return value


def mask_email(email: Optional[str]) -> str:
    """
    Masque un email pour les logs.
    """
    if not email or "@" not in email:
        return email or ""
    local, domain = email.split("@", 1)
    if len(local) <= 2:
        masked_local = f"{local[:1]}*"
    else:
        masked_local = f"{local[:1]}{'*' * (len(local) - 2)}{local[-1:]}"
    return f"{masked_local}@{domain}"


def sanitize_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Sanitize un dictionnaire en masquant les champs sensibles.

    Args:
        data: Dictionnaire a sanitizer

    Returns:
        Dictionnaire avec les valeurs sensibles masquees
    """
    if not isinstance(data, dict):
        return data

    result = {}
    for key, value in data.items():
        if isinstance(value, dict):
            result[key] = sanitize_dict(value)
        elif isinstance(value, list) and sanitize_value(key, None) is REDACTED:
            result[key] = REDACTED
        elif isinstance(value, list):
            result[key] = [
                sanitize_dict(item) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            result[key] = sanitize_value(key, value)

    return result


# =============================================================================
# Formatters
# =============================================================================

_SKIP_FIELDS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "asctime", "taskName",
}


class JSONFormatter(logging.Formatter):
    """
    Formatter qui produit des logs JSON structures.

    Inclut automatiquement timestamp UTC, level, logger, message,
    request_id et user_id (si disponibles) et les extra fields sanitizes.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Formate le log record en JSON."""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            log_entry["request_id"] = request_id

        user_id = user_id_var.get()
        if user_id:
            log_entry["user_id"] = user_id

        extra_fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _SKIP_FIELDS and not key.startswith("_")
        }
        if extra_fields:
            log_entry["extra"] = sanitize_dict(extra_fields)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    Formatter lisible pour la console en developpement.

    Format: [LEVEL] logger - message (request_id=xxx)
    """

    COLORS = {
        "DEBUG": "\033[36m",    # Cyan
        "INFO": "\033[32m",     # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",    # Red
        "CRITICAL": "\033[35m", # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        """Formate le log record pour la console."""
        color = self.COLORS.get(record.levelname, "")
        parts = [
            f"{color}[{record.levelname}]{self.RESET}",
            record.name,
            "-",
            record.getMessage(),
        ]

        request_id = request_id_var.get()
        if request_id:
            parts.append(f"(request_id={request_id[:8]}...)")

        message = " ".join(parts)
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


# =============================================================================
# Configuration du logging
# =============================================================================

def configure_logging(level: str = "INFO", json_format: bool = True) -> None:
    """
    Configure le logging pour l'application.

    Args:
        level: Niveau de log (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Si True, utilise le format JSON
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))
    handler.setFormatter(JSONFormatter() if json_format else ConsoleFormatter())
    root_logger.addHandler(handler)

    # Reduire le bruit des librairies tierces
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# =============================================================================
# Contexte de requete
# =============================================================================

def set_request_context(request_id: str = None, user_id: str = None) -> None:
    """
    Set le contexte de la requete pour les logs.

    Args:
        request_id: ID de la requete
        user_id: ID de l'utilisateur authentifie
    """
    if request_id:
        request_id_var.set(request_id)
    if user_id:
        user_id_var.set(str(user_id))


def clear_request_context() -> None:
    """Clear le contexte de la requete."""
    request_id_var.set("")
    user_id_var.set("")
