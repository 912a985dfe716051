import re
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEV_RPC_PATTERN = re.compile(r"devnet|testnet|localhost|127\.0\.0\.1")
NON_PRODUCTION_NETWORKS = ("devnet", "testnet", "localnet")

# Smallest initial balance the program accepts for a new smart wallet
MIN_INIT_LAMPORTS = 3_500_000


class Settings(BaseSettings):
    rpc_url: str = Field(
        "https://api.devnet.solana.com",
        validation_alias=AliasChoices("rpc_url", "lazorkit_rpc_url"),
    )
    solana_network: str = "devnet"
    commitment: str = "confirmed"
    smart_wallet_program_id: str | None = None

    # Default fee payer (base58 secret key); callers may override per request
    private_key: str | None = None

    smart_wallet_init_lamports: int = 5_000_000
    min_fee_lamports: int = 5_000_000
    airdrop_lamports: int = 1_000_000_000

    ledger_timeout_s: int = 30
    confirm_timeout_s: int = 60
    confirm_poll_interval_s: float = 1.0

    strict_public_key_validation: bool = False

    frontend_url: str = "http://localhost:3000"
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:8081",
    ]

    max_request_size_kb: int = 64

    provision_rate_limit: str = "20/minute"
    rate_limit_enabled: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def allows_airdrop(self) -> bool:
        # Both must agree: a devnet network name with a mainnet RPC URL gets no faucet calls
        return self.solana_network.lower() in NON_PRODUCTION_NETWORKS and self.looks_like_dev_rpc

    @property
    def looks_like_dev_rpc(self) -> bool:
        return bool(DEV_RPC_PATTERN.search(self.rpc_url.lower()))

    @property
    def init_lamports(self) -> int:
        if self.smart_wallet_init_lamports <= 0:
            return 5_000_000
        return max(self.smart_wallet_init_lamports, MIN_INIT_LAMPORTS)


settings = Settings()
