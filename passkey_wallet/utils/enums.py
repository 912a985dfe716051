from enum import Enum


class WalletStateEnum(str, Enum):
    ABSENT = "ABSENT"
    EXISTING = "EXISTING"
    JUST_CREATED = "JUST_CREATED"


class IdentitySourceEnum(str, Enum):
    HINT = "HINT"
    CREDENTIAL_ID = "CREDENTIAL_ID"
    PUBLIC_KEY = "PUBLIC_KEY"
    RANDOM = "RANDOM"


class SubmissionOutcomeEnum(str, Enum):
    CREATED = "CREATED"
    ALREADY_EXISTED = "ALREADY_EXISTED"


class LookupStrategyEnum(str, Enum):
    BY_IDENTITY = "BY_IDENTITY"
    BY_CREDENTIAL = "BY_CREDENTIAL"
    BY_PUBLIC_KEY = "BY_PUBLIC_KEY"
