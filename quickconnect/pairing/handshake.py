"""Approval handshake: bind a pending request to an authenticated user."""

import hashlib
import secrets

from loguru import logger

from quickconnect.pairing.devices import AuthorizedDeviceRegistry
from quickconnect.pairing.errors import BadRequestError, ForbiddenError
from quickconnect.pairing.store import PendingRequestRegistry
from quickconnect.pairing.types import CallerInfo, Clock, DeviceGrant, PairingRequest, utcnow

MAX_CODE_INPUT_LENGTH = 32
ACCESS_TOKEN_BYTES = 32


def derive_device_id(session_id: str, secret: str) -> str:
    """Stable id for the device paired by one approving session."""
    return hashlib.sha256(f"{session_id}:{secret}".encode()).hexdigest()[:32]


def normalize_code(code: str | None) -> str:
    """Strip a user-entered code. Raises BadRequestError if it is malformed."""
    if code is None:
        raise BadRequestError("Missing code")
    code = code.strip()
    if not code:
        raise BadRequestError("Missing code")
    if len(code) > MAX_CODE_INPUT_LENGTH or not code.isalnum():
        raise BadRequestError("Malformed code")
    return code


class AuthorizationHandshake:
    """
    Resolves pending requests by code and records the authorized device.

    The request is claimed first, the device row is written, and only then is
    the request resolved. A failed write releases the claim, so a device
    never receives a token that is not on file.
    """

    def __init__(
        self,
        registry: PendingRequestRegistry,
        devices: AuthorizedDeviceRegistry,
        clock: Clock = utcnow,
    ):
        self.registry = registry
        self.devices = devices
        self._clock = clock

    def authorize(self, caller: CallerInfo | None, code: str | None) -> bool:
        """
        Approve the pending request that carries `code`.

        Returns False when the code is unknown, expired or already used.
        Raises BadRequestError for a malformed code and ForbiddenError for an
        anonymous caller.
        """
        if caller is None or not caller.user_id:
            raise ForbiddenError("Authorization requires an authenticated user")
        code = normalize_code(code)

        def issue_grant(request: PairingRequest) -> DeviceGrant:
            return DeviceGrant(
                user_id=caller.user_id,
                device_id=derive_device_id(caller.session_id, request.secret),
                access_token=secrets.token_hex(ACCESS_TOKEN_BYTES),
                issued_at=self._clock(),
            )

        request = self.registry.reserve_by_code(code, caller.user_id, issue_grant)
        if request is None:
            logger.info(f"Quick connect code {code} not found for user {caller.user_id}")
            return False

        grant = request.grant
        try:
            self.devices.record(
                user_id=grant.user_id,
                device_id=grant.device_id,
                authorized_at=grant.issued_at,
                access_token=grant.access_token,
                friendly_name=request.friendly_name,
            )
        except Exception as e:
            logger.error(f"Failed to record quick connect device for code {code}: {e}")
            self.registry.release(request.secret)
            raise

        if not self.registry.commit(request.secret):
            logger.warning(f"Quick connect code {code} expired while it was being authorized")
            self.devices.revoke_device(grant.user_id, grant.device_id)
            return False

        logger.info(f"Quick connect code {code} authorized by user {caller.user_id}")
        return True
