# Export all schemas for convenient imports
from .provisioning import (
    ProvisionSmartWalletRequest,
    ProvisionSmartWalletResponse,
    ErrorResponse,
)

__all__ = [
    "ProvisionSmartWalletRequest",
    "ProvisionSmartWalletResponse",
    "ErrorResponse",
]
