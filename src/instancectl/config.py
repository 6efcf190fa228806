from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """Connection settings for the control plane, read from OXIDE_* variables."""

    model_config = SettingsConfigDict(env_prefix="OXIDE_", extra="ignore")

    host: str = Field(description="Base URL, e.g. https://oxide.sys.example.com")
    token: str = Field(repr=False)
    insecure_skip_verify: bool = False
    connect_timeout: float = 10.0
