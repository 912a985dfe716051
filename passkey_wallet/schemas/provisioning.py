from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Any, Dict


class ProvisionSmartWalletRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    passkeyData: Optional[Dict[str, Any]] = Field(
        None,
        description="Passkey credential: credentialId, publicKey (string, x/y or byte array), optional smartWalletId",
    )
    userPrivateKey: Optional[str] = Field(
        None, description="Base58 fee-payer secret key (development networks only)"
    )


class ProvisionSmartWalletResponse(BaseModel):
    ok: bool = True
    walletAddress: str
    smartWalletId: str
    existing: Optional[bool] = Field(None, description="Present (true) when the wallet already existed")


class ErrorResponse(BaseModel):
    error: str
    hint: Optional[str] = None
    requiresPrivateKey: Optional[bool] = None
