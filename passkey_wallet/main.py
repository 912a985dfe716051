import logging
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from .core.config import settings
from .routers import provisioning_router
from .routers.provisioning_router import limiter
from .services.solana_rpc_client import create_ledger_client
from .utils.errors import ProvisioningError
from .middleware import RequestSizeLimitMiddleware, RequestIDMiddleware

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Passkey Smart Wallet API")

app.state.limiter = limiter
app.state.ledger = None
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(ProvisioningError)
async def provisioning_error_handler(request: Request, exc: ProvisioningError):
    logger.warning(
        "[PROVISION] %s failed with %s: %s",
        request.url.path, type(exc).__name__, exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request body")
    if first.get("type") == "json_invalid":
        message = "Request body must be valid JSON"
    elif location:
        message = f"{location}: {message}"
    logger.warning("[PROVISION] Rejected malformed request on %s: %s", request.url.path, message)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("[PROVISION] Unhandled error on %s: %s", request.url.path, exc, exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Accept",
        "X-Request-ID",
    ],
    max_age=600,
    expose_headers=["X-Request-ID"],
)

app.add_middleware(RequestIDMiddleware)
app.add_middleware(RequestSizeLimitMiddleware)


@app.on_event("startup")
async def startup():
    app.state.ledger = create_ledger_client(settings)
    if app.state.ledger is not None:
        logger.info(
            "[LEDGER] Connected to %s on %s (program %s)",
            settings.rpc_url, settings.solana_network, app.state.ledger.program_id,
        )
    if not settings.private_key:
        logger.warning("[LEDGER] PRIVATE_KEY is not set; new wallets require userPrivateKey in the request")


@app.on_event("shutdown")
async def shutdown():
    ledger = getattr(app.state, "ledger", None)
    if ledger is not None:
        await ledger.close()


# Include routers
app.include_router(provisioning_router.router)


@app.get("/")
def read_root():
    return {"message": "Passkey Smart Wallet API is running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "Passkey Smart Wallet API"}


@app.get("/readiness")
async def readiness_check():
    ledger = getattr(app.state, "ledger", None)
    if ledger is None:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not ready", "ledger": "not configured"},
        )
    return {
        "status": "ready",
        "ledger": "configured",
        "network": settings.solana_network,
        "feePayer": "configured" if settings.private_key else "caller-supplied",
    }


@app.get("/liveness")
async def liveness_check():
    return {"status": "alive", "service": "Passkey Smart Wallet API"}
