"""Persistent registry of devices authorized through quick connect."""

import hashlib
import json
import secrets
from dataclasses import asdict
from datetime import datetime
from pathlib import Path

from filelock import FileLock
from loguru import logger

from quickconnect.pairing.types import AuthorizedDevice, utcnow

DEVICES_FILENAME = "quickconnect-devices.json"
LOCK_TIMEOUT = 10


class CorruptDeviceFileError(ValueError):
    """The device file exists but does not hold a device list."""


def hash_token(access_token: str) -> str:
    """Digest stored in place of an access token."""
    return hashlib.sha256(access_token.encode()).hexdigest()


def _read_json_file(path: Path) -> dict | None:
    """Read a JSON object. Returns None if the file does not exist."""
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise CorruptDeviceFileError(f"{path} is not valid JSON: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("devices", []), list):
        raise CorruptDeviceFileError(f"{path} does not contain a device list")
    return data


def _write_json_file(path: Path, data: dict) -> None:
    """Safely write a JSON file with atomic rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(f".{secrets.token_hex(4)}.tmp")
    tmp_path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    tmp_path.chmod(0o600)
    tmp_path.replace(path)


def _parse_devices(data: dict) -> list[AuthorizedDevice]:
    return [
        AuthorizedDevice(
            user_id=str(d["user_id"]),
            device_id=str(d["device_id"]),
            authorized_at=d.get("authorized_at", ""),
            token_hash=d.get("token_hash", ""),
            friendly_name=d.get("friendly_name"),
        )
        for d in data.get("devices", [])
        if isinstance(d, dict) and "user_id" in d and "device_id" in d
    ]


class AuthorizedDeviceRegistry:
    """
    Devices that completed a quick connect handshake, per user.

    Stored as a JSON file guarded by a file lock so several processes
    (gateway and CLI) can share it. Only a digest of each access token is
    written. A file that cannot be parsed is moved aside, never overwritten.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock_path = self.path.with_suffix(".lock")

    def _file_lock(self) -> FileLock:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        return FileLock(self._lock_path, timeout=LOCK_TIMEOUT)

    def _quarantine(self) -> Path:
        target = self.path.with_name(f"{self.path.name}.corrupt-{secrets.token_hex(4)}")
        self.path.replace(target)
        return target

    def _load(self) -> list[AuthorizedDevice]:
        try:
            data = _read_json_file(self.path)
        except CorruptDeviceFileError as e:
            target = self._quarantine()
            logger.error(f"{e}; moved it to {target} and starting with no devices")
            return []
        if data is None:
            return []
        return _parse_devices(data)

    def _save(self, devices: list[AuthorizedDevice]) -> None:
        _write_json_file(self.path, {
            "version": 1,
            "devices": [asdict(d) for d in devices],
        })

    def record(
        self,
        user_id: str,
        device_id: str,
        authorized_at: datetime | None = None,
        access_token: str = "",
        friendly_name: str | None = None,
    ) -> AuthorizedDevice:
        """
        Record an authorized device.

        A row with the same (user_id, device_id) is replaced, never duplicated.
        """
        device = AuthorizedDevice(
            user_id=user_id,
            device_id=device_id,
            authorized_at=(authorized_at or utcnow()).isoformat(),
            token_hash=hash_token(access_token) if access_token else "",
            friendly_name=friendly_name,
        )

        with self._file_lock():
            devices = [
                d for d in self._load()
                if not (d.user_id == user_id and d.device_id == device_id)
            ]
            devices.append(device)
            self._save(devices)

        logger.info(f"Recorded quick connect device {device_id} for user {user_id}")
        return device

    def revoke_device(self, user_id: str, device_id: str) -> bool:
        """Delete one device row. Returns False if it was not on file."""
        with self._file_lock():
            devices = self._load()
            remaining = [
                d for d in devices
                if not (d.user_id == user_id and d.device_id == device_id)
            ]
            if len(remaining) == len(devices):
                return False
            self._save(remaining)

        logger.info(f"Revoked quick connect device {device_id} for user {user_id}")
        return True

    def revoke_all(self, user_id: str) -> int:
        """Delete every device of a user. Returns how many were deleted."""
        with self._file_lock():
            devices = self._load()
            remaining = [d for d in devices if d.user_id != user_id]
            removed = len(devices) - len(remaining)
            if removed:
                self._save(remaining)

        logger.info(f"Revoked {removed} quick connect device(s) for user {user_id}")
        return removed

    def list_devices(self, user_id: str | None = None) -> list[AuthorizedDevice]:
        """List devices, optionally for a single user, oldest first."""
        with self._file_lock():
            devices = self._load()
        if user_id is not None:
            devices = [d for d in devices if d.user_id == user_id]
        return sorted(devices, key=lambda d: d.authorized_at)

    def find_by_token(self, access_token: str | None) -> AuthorizedDevice | None:
        """Find the device an access token was issued to."""
        if not access_token:
            return None
        digest = hash_token(access_token)
        for device in self.list_devices():
            if device.token_hash and secrets.compare_digest(device.token_hash, digest):
                return device
        return None
