"""Quick connect pairing engine."""

from quickconnect.pairing.engine import QuickConnect
from quickconnect.pairing.errors import (
    BadRequestError,
    CodeGenerationError,
    ForbiddenError,
    QuickConnectError,
)
from quickconnect.pairing.types import (
    AuthorizedDevice,
    CallerInfo,
    InitiateResult,
    PairingStatus,
    QuickConnectState,
)

__all__ = [
    "QuickConnect",
    "QuickConnectState",
    "CallerInfo",
    "InitiateResult",
    "PairingStatus",
    "AuthorizedDevice",
    "QuickConnectError",
    "ForbiddenError",
    "BadRequestError",
    "CodeGenerationError",
]
