"""In-memory registry of pending pairing requests."""

from dataclasses import replace
from datetime import datetime, timedelta
from threading import Lock
from typing import Callable

from loguru import logger

from quickconnect.pairing.availability import AvailabilityStateMachine
from quickconnect.pairing.codes import CodeGenerator
from quickconnect.pairing.errors import CodeGenerationError, ForbiddenError
from quickconnect.pairing.types import (
    Clock,
    DeviceGrant,
    InitiateResult,
    PairingRequest,
    PairingStatus,
    QuickConnectState,
    utcnow,
)

# Constants
DEFAULT_REQUEST_TTL = timedelta(minutes=10)
DEFAULT_MAX_CODE_ATTEMPTS = 500

GrantFactory = Callable[[PairingRequest], DeviceGrant]


class PendingRequestRegistry:
    """
    Table of live pairing requests, keyed by secret.

    A secondary index maps the code of every *unresolved* request to its
    secret, so a code is unique among pending requests and may be reused once
    its request resolves or expires.

    A single lock serializes every operation; expired entries are swept at
    the start of each one.
    """

    def __init__(
        self,
        availability: AvailabilityStateMachine,
        generator: CodeGenerator | None = None,
        request_ttl: timedelta = DEFAULT_REQUEST_TTL,
        clock: Clock = utcnow,
        max_code_attempts: int = DEFAULT_MAX_CODE_ATTEMPTS,
    ):
        self.availability = availability
        self.generator = generator or CodeGenerator()
        self.request_ttl = request_ttl
        self.max_code_attempts = max_code_attempts
        self._clock = clock
        self._lock = Lock()
        self._by_secret: dict[str, PairingRequest] = {}
        self._secret_by_code: dict[str, str] = {}

    def _sweep_locked(self, now: datetime) -> int:
        expired = [s for s, r in self._by_secret.items() if r.is_expired(now)]
        for secret in expired:
            request = self._by_secret.pop(secret)
            if self._secret_by_code.get(request.code) == secret:
                del self._secret_by_code[request.code]
        if expired:
            logger.debug(f"Expired {len(expired)} quick connect request(s)")
        return len(expired)

    def _allocate_code_locked(self) -> str:
        for _ in range(self.max_code_attempts):
            code = self.generator.new_code()
            if code not in self._secret_by_code:
                return code
        logger.error(
            f"Could not allocate a unique quick connect code after {self.max_code_attempts} attempts"
        )
        raise CodeGenerationError("Failed to generate unique quick connect code")

    def create(self, friendly_name: str | None = None) -> InitiateResult:
        """
        Create a new pairing request.

        Raises ForbiddenError unless quick connect is active.
        """
        if self.availability.current_state() != QuickConnectState.ACTIVE:
            logger.warning("Rejected quick connect request: not active")
            raise ForbiddenError("Quick connect is not active")

        with self._lock:
            now = self._clock()
            self._sweep_locked(now)

            code = self._allocate_code_locked()
            secret = self.generator.new_secret()
            if secret in self._by_secret:
                logger.error("Generated a quick connect secret that is already in use")
                raise CodeGenerationError("Duplicate quick connect secret")

            request = PairingRequest(
                secret=secret,
                code=code,
                created_at=now,
                expires_at=now + self.request_ttl,
                friendly_name=friendly_name or None,
            )
            self._by_secret[secret] = request
            self._secret_by_code[code] = secret

        logger.info(f"Quick connect request created with code {code} ({friendly_name or 'unnamed'})")
        return InitiateResult(secret=secret, code=code, expires_at=request.expires_at)

    def lookup_by_secret(self, secret: str | None) -> PairingStatus | None:
        """
        Poll a request by its secret.

        Returns None when the secret is unknown, expired or already
        collected. A resolved request is removed by the poll that returns it.
        """
        if not secret:
            return None

        with self._lock:
            self._sweep_locked(self._clock())
            request = self._by_secret.get(secret)
            if request is None:
                return None

            if not request.resolved:
                return PairingStatus(code=request.code, resolved=False)

            del self._by_secret[secret]

        grant = request.grant
        logger.info(f"Quick connect request {request.code} collected")
        return PairingStatus(
            code=request.code,
            resolved=True,
            user_id=request.authorizing_user_id,
            device_id=grant.device_id if grant else None,
            access_token=grant.access_token if grant else None,
        )

    def reserve_by_code(
        self,
        code: str,
        user_id: str,
        grant_factory: GrantFactory | None = None,
    ) -> PairingRequest | None:
        """
        Claim a pending request for a user without resolving it yet.

        `grant_factory` runs under the registry lock. The request keeps its
        code, so neither a second approver nor a new request can take it,
        but polls still report it as pending until `commit` is called.
        Returns a snapshot of the claimed request, or None when no pending,
        unclaimed request has that code.
        """
        with self._lock:
            self._sweep_locked(self._clock())
            secret = self._secret_by_code.get(code)
            if secret is None:
                return None

            request = self._by_secret[secret]
            if request.authorizing_user_id is not None:
                return None
            grant = grant_factory(request) if grant_factory is not None else None

            request.authorizing_user_id = user_id
            request.grant = grant
            return replace(request)

    def commit(self, secret: str) -> bool:
        """
        Resolve a claimed request so the next poll collects it.

        Returns False when the request expired since it was claimed.
        """
        with self._lock:
            self._sweep_locked(self._clock())
            request = self._by_secret.get(secret)
            if request is None or request.authorizing_user_id is None:
                return False
            if self._secret_by_code.get(request.code) == secret:
                del self._secret_by_code[request.code]
            request.resolved = True
            return True

    def release(self, secret: str) -> None:
        """Drop the claim on an unresolved request so it can be approved again."""
        with self._lock:
            request = self._by_secret.get(secret)
            if request is None or request.resolved:
                return
            request.authorizing_user_id = None
            request.grant = None
        logger.debug(f"Released claim on quick connect request {request.code}")

    def resolve_by_code(
        self,
        code: str,
        user_id: str,
        grant_factory: GrantFactory | None = None,
    ) -> PairingRequest | None:
        """
        Bind a pending request to a user in one step.

        Returns a snapshot of the resolved request, or None when no pending
        request has that code.
        """
        request = self.reserve_by_code(code, user_id, grant_factory)
        if request is None or not self.commit(request.secret):
            return None
        return replace(request, resolved=True)

    def sweep_expired(self) -> None:
        """Drop every request whose deadline has passed."""
        with self._lock:
            self._sweep_locked(self._clock())

    def pending_count(self) -> int:
        """Number of live requests, resolved-but-uncollected included."""
        with self._lock:
            self._sweep_locked(self._clock())
            return len(self._by_secret)
