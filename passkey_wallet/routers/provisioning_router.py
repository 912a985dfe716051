import logging
from fastapi import APIRouter, Depends, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address
from ..core.config import settings
from ..schemas.provisioning import (
    ErrorResponse,
    ProvisionSmartWalletRequest,
    ProvisionSmartWalletResponse,
)
from ..services.ledger_client import LedgerClient
from ..services.provisioning_service import ProvisioningService
from ..utils.errors import upstream_error
from ..utils.log_sanitizer import describe_shape

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Smart Wallets"])
limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)


def get_ledger_client(request: Request) -> LedgerClient:
    ledger = getattr(request.app.state, "ledger", None)
    if ledger is None:
        raise upstream_error(
            log_message="[PROVISION] Ledger client unavailable; check SMART_WALLET_PROGRAM_ID and RPC_URL",
            user_message="Ledger client is not available. Check the smart wallet program configuration.",
        )
    return ledger


def get_provisioning_service(ledger: LedgerClient = Depends(get_ledger_client)) -> ProvisioningService:
    return ProvisioningService(ledger)


@router.post(
    "/provision-smart-wallet",
    response_model=ProvisionSmartWalletResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
@limiter.limit(settings.provision_rate_limit)
async def provision_smart_wallet(
    request: Request,
    body: ProvisionSmartWalletRequest,
    service: ProvisioningService = Depends(get_provisioning_service),
):
    logger.info(
        "[PROVISION] Request %s: passkeyData=%s userPrivateKey=%s",
        getattr(request.state, "request_id", "-"),
        describe_shape(body.passkeyData or {}),
        "supplied" if body.userPrivateKey else "absent",
    )
    result = await service.provision(body.passkeyData, body.userPrivateKey)
    return result.to_response()
