"""
Configuration de la connexion a la base de donnees
"""
from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import get_settings

settings = get_settings()


def _engine_options(url: str) -> Dict[str, Any]:
    """Options du pool (SQLite n'accepte pas pool_size/max_overflow)"""
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,  # Verifie la connexion avant utilisation
        "pool_size": settings.DATABASE_POOL_SIZE,
        "max_overflow": settings.DATABASE_MAX_OVERFLOW,
        "pool_recycle": settings.DATABASE_POOL_RECYCLE,
    }


# Creer le moteur SQLAlchemy
engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

# Session locale
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
