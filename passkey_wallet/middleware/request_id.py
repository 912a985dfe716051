"""
Request ID Middleware

Tags every request with an ID so the provisioning log lines of one call can be
followed across normalization, lookups and submission.
"""
import re
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9\-_.]{1,64}$")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Reuses a well-formed incoming X-Request-ID or generates a new one, stores it
    on request.state and echoes it in the response headers.
    """
    async def dispatch(self, request: Request, call_next):
        incoming = request.headers.get(REQUEST_ID_HEADER)
        request_id = incoming if incoming and VALID_REQUEST_ID.match(incoming) else str(uuid.uuid4())
        request.state.request_id = request_id

        logger.info("[REQUEST] %s %s [ID: %s]", request.method, request.url.path, request_id)

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
