"""
Request ID Middleware pour ChantierPro Auth.

Genere ou propage un X-Request-ID unique pour chaque requete.
Le request_id est inclus dans tous les logs JSON et dans les
responses d'erreur.
"""
import re
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.logging import clear_request_context, set_request_context

# Request ID fourni par le client: caracteres surs uniquement
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware pour la gestion des Request IDs.

    Fonctionnalites:
    - Genere un UUID v4 si X-Request-ID absent ou malforme
    - Propage le X-Request-ID existant (tracing distribue)
    - Stocke dans request.state.request_id
    - Ajoute X-Request-ID dans la response
    """

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next) -> Response:
        incoming = request.headers.get(self.HEADER_NAME)
        if incoming and _REQUEST_ID_PATTERN.match(incoming):
            request_id = incoming
        else:
            request_id = str(uuid.uuid4())

        request.state.request_id = request_id
        set_request_context(request_id=request_id)

        try:
            response = await call_next(request)
            response.headers[self.HEADER_NAME] = request_id
            return response
        finally:
            clear_request_context()
