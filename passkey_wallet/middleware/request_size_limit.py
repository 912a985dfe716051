from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import ClientDisconnect

from ..core.config import settings

# Passkey payloads are a few hundred bytes; anything near this limit is not a credential
MAX_REQUEST_SIZE = settings.max_request_size_kb * 1024


def _too_large() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        content={"error": "Request body too large"},
    )


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        try:
            if content_length and int(content_length) > MAX_REQUEST_SIZE:
                return _too_large()
        except ValueError:
            pass

        if request.method in ("GET", "HEAD", "OPTIONS"):
            return await call_next(request)

        try:
            body = await request.body()
            if len(body) > MAX_REQUEST_SIZE:
                return _too_large()

            body_sent = False
            async def receive():
                nonlocal body_sent
                if not body_sent:
                    body_sent = True
                    return {"type": "http.request", "body": body, "more_body": False}
                return {"type": "http.request", "body": b"", "more_body": False}

            request._receive = receive
        except ClientDisconnect:
            raise

        return await call_next(request)
