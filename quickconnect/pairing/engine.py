"""The quick connect engine: one process-scoped context object."""

from datetime import datetime, timedelta

from quickconnect.config.schema import Config
from quickconnect.pairing.availability import AvailabilityStateMachine
from quickconnect.pairing.codes import CodeGenerator
from quickconnect.pairing.devices import DEVICES_FILENAME, AuthorizedDeviceRegistry
from quickconnect.pairing.handshake import AuthorizationHandshake
from quickconnect.pairing.store import PendingRequestRegistry
from quickconnect.pairing.types import (
    CallerInfo,
    Clock,
    InitiateResult,
    PairingStatus,
    QuickConnectState,
    utcnow,
)


class QuickConnect:
    """
    Owns the availability state, the pending requests and the device registry.

    Create one per process and hand it to whatever serves the operations.
    Nothing here is persisted except authorized devices; a new instance
    starts unavailable unless told otherwise.
    """

    def __init__(
        self,
        devices: AuthorizedDeviceRegistry,
        request_ttl: timedelta = timedelta(minutes=10),
        activation_window: timedelta = timedelta(minutes=5),
        generator: CodeGenerator | None = None,
        clock: Clock = utcnow,
        initial_state: QuickConnectState = QuickConnectState.UNAVAILABLE,
        max_code_attempts: int = 500,
    ):
        self.devices = devices
        self.availability = AvailabilityStateMachine(
            activation_window=activation_window,
            clock=clock,
            initial_state=initial_state,
        )
        self.requests = PendingRequestRegistry(
            self.availability,
            generator=generator,
            request_ttl=request_ttl,
            clock=clock,
            max_code_attempts=max_code_attempts,
        )
        self.handshake = AuthorizationHandshake(self.requests, devices, clock=clock)

    @classmethod
    def from_config(cls, config: Config, clock: Clock = utcnow) -> "QuickConnect":
        """Build an engine from the loaded configuration."""
        qc = config.quick_connect
        return cls(
            devices=AuthorizedDeviceRegistry(config.data_path / DEVICES_FILENAME),
            request_ttl=timedelta(seconds=qc.request_ttl_seconds),
            activation_window=timedelta(seconds=qc.activation_window_seconds),
            generator=CodeGenerator(code_length=qc.code_length, secret_bytes=qc.secret_bytes),
            clock=clock,
            initial_state=(
                QuickConnectState.AVAILABLE if qc.available_on_start
                else QuickConnectState.UNAVAILABLE
            ),
            max_code_attempts=qc.max_code_attempts,
        )

    @property
    def state(self) -> QuickConnectState:
        return self.availability.current_state()

    def get_status(self) -> QuickConnectState:
        """Current state, after dropping expired requests."""
        self.requests.sweep_expired()
        return self.availability.current_state()

    def initiate(self, friendly_name: str | None = None) -> InitiateResult:
        return self.requests.create(friendly_name)

    def check_status(self, secret: str | None) -> PairingStatus | None:
        return self.requests.lookup_by_secret(secret)

    def activate(self) -> datetime:
        return self.availability.activate()

    def set_state(self, state: QuickConnectState | str) -> None:
        self.availability.set_state(state)

    def authorize(self, caller: CallerInfo | None, code: str | None) -> bool:
        return self.handshake.authorize(caller, code)

    def deauthorize(self, user_id: str) -> int:
        """Revoke every quick connect device of a user."""
        return self.devices.revoke_all(user_id)
