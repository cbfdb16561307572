"""Configuration schema using Pydantic."""

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class QuickConnectConfig(BaseModel):
    """Pairing engine configuration."""
    available_on_start: bool = False  # Start Available instead of Unavailable
    request_ttl_seconds: int = Field(default=600, gt=0)  # 10 minutes per request
    activation_window_seconds: int = Field(default=300, gt=0)  # 5 minutes per activation
    code_length: int = Field(default=6, ge=4)
    secret_bytes: int = Field(default=32, ge=16)
    max_code_attempts: int = Field(default=500, gt=0)


class ApiKeyConfig(BaseModel):
    """A static bearer token for a user of the gateway."""
    token: str
    user_id: str
    admin: bool = False  # May change availability


class GatewayConfig(BaseModel):
    """Gateway/server configuration."""
    host: str = "0.0.0.0"
    port: int = 8470
    api_keys: list[ApiKeyConfig] = Field(default_factory=list)


class StorageConfig(BaseModel):
    """Where authorized devices are kept."""
    data_dir: str = "~/.quickconnect/data"


class Config(BaseSettings):
    """Root configuration for quickconnect."""
    quick_connect: QuickConnectConfig = Field(default_factory=QuickConnectConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    model_config = SettingsConfigDict(
        env_prefix="QUICKCONNECT_",
        env_nested_delimiter="__",
    )

    @property
    def data_path(self) -> Path:
        """Get expanded data directory path."""
        return Path(self.storage.data_dir).expanduser()
