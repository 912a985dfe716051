import logging
from fastapi import status

logger = logging.getLogger(__name__)


class ProvisioningError(Exception):
    """Base error for the provisioning flow, rendered as {"error", "hint", "requiresPrivateKey"}."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        requires_private_key: bool = False,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.requires_private_key = requires_private_key
        if status_code is not None:
            self.status_code = status_code

    def to_body(self) -> dict:
        body = {"error": self.message}
        if self.hint:
            body["hint"] = self.hint
        if self.requires_private_key:
            body["requiresPrivateKey"] = True
        return body


class MissingField(ProvisioningError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, field: str, message: str | None = None, **kwargs):
        super().__init__(message or f"Missing {field}", **kwargs)
        self.field = field


class FormatError(ProvisioningError):
    status_code = status.HTTP_400_BAD_REQUEST


class ConfigurationError(ProvisioningError):
    status_code = status.HTTP_400_BAD_REQUEST


class UpstreamUnavailable(ProvisioningError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class SubmissionFailure(ProvisioningError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def missing_private_key_error() -> ConfigurationError:
    return ConfigurationError(
        "Missing PRIVATE_KEY for wallet creation",
        hint="Provide a fee-payer private key in the login form. It is required to create smart wallets on devnet.",
        requires_private_key=True,
    )


def upstream_error(
    log_message: str = "",
    *,
    user_message: str = "Ledger service is currently unavailable. Please try again later.",
) -> UpstreamUnavailable:
    if log_message:
        logger.error(log_message)
    return UpstreamUnavailable(user_message)
