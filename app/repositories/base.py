"""
Base Repository generique pour ChantierPro Auth
Fournit les operations de base communes a tous les models

Ce module contient:
- BaseRepository: Operations get/get_many/create
- OffsetPage: Metadonnees de pagination calculees depuis (total, limit, offset)
"""
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy.orm import Session

from app.models.base import Base

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType", bound=Base)

# Constantes de pagination
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50


@dataclass
class OffsetPage:
    """
    Metadonnees de pagination par offset.

    Attributes:
        total: Nombre total d'elements correspondant aux filtres
        limit: Taille de la page
        offset: Nombre d'elements sautes
    """
    total: int
    limit: int
    offset: int

    @property
    def current_page(self) -> int:
        """Numero de page courant (1-indexed)."""
        return self.offset // self.limit + 1

    @property
    def total_pages(self) -> int:
        """Nombre total de pages."""
        return math.ceil(self.total / self.limit)

    @property
    def has_next(self) -> bool:
        """True si une page suivante existe."""
        return self.offset + self.limit < self.total

    @property
    def has_prev(self) -> bool:
        """True si une page precedente existe."""
        return self.offset > 0


class RepositoryException(Exception):
    """Exception de base pour les repositories"""
    pass


class PaginationError(RepositoryException):
    """Erreur de pagination (offset negatif, taille trop grande)"""
    pass


def validate_pagination(limit: int, offset: int, max_limit: int = MAX_PAGE_SIZE) -> None:
    """
    Valide les parametres de pagination.

    Raises:
        PaginationError: Si limit ou offset sont hors bornes
    """
    if limit < 1 or limit > max_limit:
        raise PaginationError(f"limit doit etre entre 1 et {max_limit}")
    if offset < 0:
        raise PaginationError("offset doit etre positif")


class BaseRepository(Generic[ModelType]):
    """
    Repository generique

    Usage:
        class UserRepository(BaseRepository[User]):
            model = User
    """

    # Type du model - doit etre defini dans les sous-classes
    model: Type[ModelType]

    def __init__(self, session: Session):
        """
        Initialise le repository avec une session DB

        Args:
            session: Session SQLAlchemy active
        """
        self.session = session

    def get(self, id: int) -> Optional[ModelType]:
        """
        Recupere un objet par son ID

        Args:
            id: ID de l'objet

        Returns:
            L'objet trouve ou None
        """
        return self.session.query(self.model).filter(self.model.id == id).first()

    def create(self, data: Dict[str, Any]) -> ModelType:
        """
        Cree un nouvel objet

        Args:
            data: Dictionnaire des attributs

        Returns:
            L'objet cree (flush, pas de commit)
        """
        obj = self.model(**data)
        self.session.add(obj)
        self.session.flush()
        self.session.refresh(obj)
        return obj

    def get_many(self, ids: List[int]) -> List[ModelType]:
        """Recupere plusieurs objets par leurs IDs"""
        if not ids:
            return []
        return self.session.query(self.model).filter(self.model.id.in_(ids)).all()
