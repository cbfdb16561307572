"""Type definitions for quick connect pairing."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

# Returns the current time (timezone-aware UTC)
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Default clock."""
    return datetime.now(timezone.utc)


class QuickConnectState(str, Enum):
    """Global availability of quick connect."""
    UNAVAILABLE = "Unavailable"  # Disabled by an administrator
    AVAILABLE = "Available"      # Enabled, idle until activated
    ACTIVE = "Active"            # Accepting new pairing requests


@dataclass(frozen=True)
class CallerInfo:
    """An already-authenticated session calling into the engine."""
    user_id: str
    session_id: str
    is_admin: bool = False


@dataclass(frozen=True)
class DeviceGrant:
    """Credentials bound to a pairing request when it is approved."""
    user_id: str
    device_id: str
    access_token: str
    issued_at: datetime


@dataclass
class PairingRequest:
    """A pending (or resolved but not yet collected) pairing request."""
    secret: str
    code: str
    created_at: datetime
    expires_at: datetime
    friendly_name: str | None = None
    resolved: bool = False
    authorizing_user_id: str | None = None
    grant: DeviceGrant | None = None

    def is_expired(self, now: datetime) -> bool:
        """Expiry is inclusive: a request is dead at its deadline."""
        return self.expires_at <= now


@dataclass(frozen=True)
class InitiateResult:
    """What the initiating device receives. The secret is only ever returned here."""
    secret: str
    code: str
    expires_at: datetime


@dataclass(frozen=True)
class PairingStatus:
    """Result of polling a request by its secret."""
    code: str
    resolved: bool
    user_id: str | None = None
    device_id: str | None = None
    access_token: str | None = None


@dataclass
class AuthorizedDevice:
    """A device that was granted access through quick connect."""
    user_id: str
    device_id: str
    authorized_at: str  # ISO 8601, UTC
    token_hash: str = ""  # sha256 of the access token
    friendly_name: str | None = None
