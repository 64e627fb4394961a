"""
Router principal API v1 pour ChantierPro Auth
Combine tous les endpoints v1

Endpoints disponibles:
- /auth: Inscription, login web (2FA), session, logout
- /auth/2fa: Configuration et verification TOTP
- /mobile: Sessions mobiles et abonnements push
- /admin: Journal d'audit et etat du rate limiter
"""
from fastapi import APIRouter

from app.api.v1.endpoints import admin, auth, mobile, two_factor


# Router principal v1
api_router = APIRouter()

# Inclusion des routers d'endpoints
api_router.include_router(auth.router)
api_router.include_router(two_factor.router)
api_router.include_router(mobile.router)
api_router.include_router(admin.router)
