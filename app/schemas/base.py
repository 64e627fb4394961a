"""
Schemas Pydantic de base pour ChantierPro Auth
Configuration commune (alias camelCase), responses standards
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BaseSchema(BaseModel):
    """
    Schema de base avec configuration commune.

    Les champs sont declares en snake_case et exposes en camelCase
    (deviceId, createdAt, ...) dans le JSON.
    """

    model_config = ConfigDict(
        from_attributes=True,  # Permet la conversion depuis ORM
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
        extra="forbid",  # Rejeter les champs inconnus (securite)
    )


class ResponseBase(BaseSchema):
    """Response de base pour les operations sans donnees"""
    success: bool = True
    message: Optional[str] = None


class HealthResponse(BaseSchema):
    """Response du health check"""
    status: str = "healthy"
    environment: str
    version: str = "0.1.0"
    database: Optional[str] = None
    redis: Optional[str] = None
