"""Core data models for o11n-deploy."""

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class BundleFormat(str, Enum):
    """Orchestrator plug-in bundle format. Values are case-sensitive."""

    DAR = "DAR"
    VMOAPP = "VMOAPP"

    @property
    def extension(self) -> str:
        """File extension and upload form value (``dar`` / ``vmoapp``)."""
        return self.value.lower()


class Credentials(BaseModel):
    """Basic-auth credentials for one Orchestrator service."""

    model_config = ConfigDict(frozen=True)

    username: str
    password: SecretStr

    def as_tuple(self) -> tuple[str, str]:
        return self.username, self.password.get_secret_value()


class BundleFile(BaseModel):
    """Resolved plug-in bundle on local disk."""

    model_config = ConfigDict(frozen=True)

    path: Path

    @property
    def name(self) -> str:
        return self.path.name

    def exists(self) -> bool:
        return self.path.is_file()


class DeploymentConfig(BaseModel):
    """Effective, validated configuration of a single deployment run."""

    model_config = ConfigDict(frozen=True)

    server: str = Field(..., description="Orchestrator hostname or IP address")
    plugin_service_port: int = Field(8281, description="Plug-in service REST API port")
    config_service_port: int = Field(8283, description="Config service (Control Center) REST API port")
    plugin_service_credentials: Credentials
    config_service_credentials: Optional[Credentials] = None

    bundle: BundleFile
    bundle_format: BundleFormat = BundleFormat.DAR

    overwrite: bool = True
    restart_service: bool = False
    delete_package: bool = False
    wait_for_pending_changes: bool = False
    package_name: Optional[str] = None

    insecure_tls: bool = True
    request_timeout_seconds: float = 30.0

    @property
    def plugin_service_url(self) -> str:
        return f"https://{self.server}:{self.plugin_service_port}"

    @property
    def config_service_url(self) -> str:
        return f"https://{self.server}:{self.config_service_port}"
