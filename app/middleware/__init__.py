"""
Middlewares pour ChantierPro Auth.

- RateLimitMiddleware: Limite GENERAL sur les routes d'authentification
- RequestIDMiddleware: X-Request-ID et contexte de logging
"""
from app.middleware.rate_limit import RateLimitMiddleware
from app.middleware.request_id import RequestIDMiddleware

__all__ = ["RateLimitMiddleware", "RequestIDMiddleware"]
