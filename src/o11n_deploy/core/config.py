"""Configuration management for o11n-deploy."""

from pathlib import Path
from typing import Any, Optional

import structlog
import yaml
from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from o11n_deploy.core.exceptions import ConfigurationError
from o11n_deploy.core.models import BundleFile, BundleFormat, Credentials, DeploymentConfig

logger = structlog.get_logger()

DEFAULT_PLUGIN_SERVICE_PORT = 8281
DEFAULT_CONFIG_SERVICE_PORT = 8283


def resolve_port(value: Any, default: int) -> int:
    """Return ``value`` as a port number, or ``default`` if it is unset or invalid.

    Out-of-range and non-numeric values are not an error; they silently fall
    back to the service's well-known port.
    """
    if value is None or value == "":
        return default
    try:
        port = int(value)
    except (TypeError, ValueError):
        return default
    if port < 1 or port > 65535:
        return default
    return port


class DeploySettings(BaseSettings):
    """Inbound deployment parameters.

    Read from ``O11N_*`` environment variables, an optional ``.env`` file and
    keyword overrides (YAML config file, CLI flags).
    """

    model_config = SettingsConfigDict(
        env_prefix="O11N_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server configuration
    server: str = Field("localhost", description="Orchestrator hostname or IP address")
    plugin_service_port: Optional[int] = Field(
        DEFAULT_PLUGIN_SERVICE_PORT, description="Plug-in service REST API port"
    )
    config_service_port: Optional[int] = Field(
        DEFAULT_CONFIG_SERVICE_PORT, description="Config service REST API port"
    )

    # Credentials. With the integrated LDAP, 'vcoadmin' may import plug-ins and
    # only 'root' may use the config service.
    plugin_service_user: str = Field("vcoadmin", description="User allowed to import plug-ins")
    plugin_service_password: Optional[SecretStr] = Field(SecretStr("vcoadmin"))
    config_service_user: Optional[str] = Field("root", description="User allowed to restart the service")
    config_service_password: Optional[SecretStr] = None

    # Plug-in bundle
    plugin_file_path: Path = Field(Path("target"), description="Directory containing the bundle")
    plugin_file_name: Optional[str] = Field(None, description="Bundle file name without extension")
    plugin_type: BundleFormat = Field(BundleFormat.DAR, description="DAR or VMOAPP (case-sensitive)")

    # Behaviour flags
    overwrite: bool = True
    restart_service: bool = False
    delete_package: bool = False
    package_name: Optional[str] = Field(None, description="pkg-name from dunes-meta-inf.xml")
    wait_for_pending_changes: bool = False

    # Transport
    insecure_tls: bool = Field(True, description="Accept any certificate and hostname")
    request_timeout_seconds: float = 30.0

    # Observability
    log_level: str = "INFO"
    log_format: str = "console"

    @field_validator("plugin_service_port", mode="before")
    @classmethod
    def _clamp_plugin_service_port(cls, v: Any) -> int:
        return resolve_port(v, DEFAULT_PLUGIN_SERVICE_PORT)

    @field_validator("config_service_port", mode="before")
    @classmethod
    def _clamp_config_service_port(cls, v: Any) -> int:
        return resolve_port(v, DEFAULT_CONFIG_SERVICE_PORT)


def load_settings(config_file: Optional[Path] = None, **overrides: Any) -> DeploySettings:
    """Build settings from an optional YAML file plus explicit overrides.

    Precedence: overrides > YAML file > environment > defaults. Overrides
    whose value is None are ignored.
    """
    data: dict[str, Any] = {}
    if config_file is not None:
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except OSError as e:
            raise ConfigurationError(f"Unable to read config file {config_file}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file {config_file}: {e}") from e
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigurationError(f"Config file {config_file} must contain a mapping")
        data.update(loaded)

    data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return DeploySettings(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid deployment settings: {e}") from e


def _secret_value(secret: Optional[SecretStr]) -> str:
    return secret.get_secret_value() if secret is not None else ""


def build_deployment_config(settings: DeploySettings) -> DeploymentConfig:
    """Normalize settings and enforce cross-field invariants.

    Raises:
        ConfigurationError: if the settings cannot describe a valid run.
    """
    if not settings.server or not settings.server.strip():
        raise ConfigurationError("'server' must not be empty.")
    if not settings.plugin_service_user:
        raise ConfigurationError("'plugin_service_user' must not be empty.")
    if not settings.plugin_file_name:
        raise ConfigurationError("'plugin_file_name' must be provided.")

    config_credentials: Optional[Credentials] = None
    if settings.restart_service:
        if not settings.config_service_user:
            raise ConfigurationError(
                "'restart_service' was set to 'true' but no 'config_service_user' was provided."
            )
        if not _secret_value(settings.config_service_password):
            raise ConfigurationError(
                "'restart_service' was set to 'true' but no 'config_service_password' was provided."
            )
    if settings.config_service_user and _secret_value(settings.config_service_password):
        config_credentials = Credentials(
            username=settings.config_service_user,
            password=settings.config_service_password,
        )

    if settings.delete_package and not (settings.package_name and settings.package_name.strip()):
        raise ConfigurationError(
            "'delete_package' was set to 'true' but no 'package_name' was provided."
        )

    wait_for_pending_changes = settings.wait_for_pending_changes
    if wait_for_pending_changes and not settings.restart_service:
        # Pending changes are only applied by a restart.
        logger.info("Ignoring wait_for_pending_changes because restart_service is not set")
        wait_for_pending_changes = False

    bundle_path = settings.plugin_file_path / f"{settings.plugin_file_name}.{settings.plugin_type.extension}"

    return DeploymentConfig(
        server=settings.server.strip(),
        plugin_service_port=resolve_port(settings.plugin_service_port, DEFAULT_PLUGIN_SERVICE_PORT),
        config_service_port=resolve_port(settings.config_service_port, DEFAULT_CONFIG_SERVICE_PORT),
        plugin_service_credentials=Credentials(
            username=settings.plugin_service_user,
            password=settings.plugin_service_password or SecretStr(""),
        ),
        config_service_credentials=config_credentials,
        bundle=BundleFile(path=bundle_path.resolve()),
        bundle_format=settings.plugin_type,
        overwrite=settings.overwrite,
        restart_service=settings.restart_service,
        delete_package=settings.delete_package,
        wait_for_pending_changes=wait_for_pending_changes,
        package_name=settings.package_name.strip() if settings.package_name else None,
        insecure_tls=settings.insecure_tls,
        request_timeout_seconds=settings.request_timeout_seconds,
    )
