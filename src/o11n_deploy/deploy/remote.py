"""Request wrappers for the Orchestrator plug-in and config service APIs.

Mutating calls (delete, upload, restart) return an ``OperationOutcome`` and
never raise for server or transport faults. Read calls (status, fingerprints)
return their value and raise ``TransportFailureError`` when the request could
not complete, so polling loops can abort on them.
"""

from __future__ import annotations

import functools
from typing import Any, Callable, Dict, Optional, Tuple

import httpx
import structlog

from o11n_deploy.core.exceptions import ConfigurationError, PreconditionError, TransportFailureError
from o11n_deploy.core.models import BundleFile, BundleFormat, Credentials, DeploymentConfig
from o11n_deploy.deploy.models import ConfigFingerprints, OperationOutcome, ServiceStatus
from o11n_deploy.deploy.transport import new_client


logger = structlog.get_logger()

ClientFactory = Callable[[Credentials], httpx.Client]

PACKAGES_PATH = "/vco/api/packages"
PLUGINS_PATH = "/vco/api/plugins"
RESTART_PATH = "/vco-controlcenter/api/server/status/restart"
STATUS_PATH = "/vco-controlcenter/api/server/status"
CONFIG_VERSION_PATH = "/vco-controlcenter/api/server/config-version"

# deletePackage drops only the package, deletePackageWithContent also removes
# elements shared with other packages.
DELETE_OPTION = "deletePackageKeepingShared"

JSON_HEADERS = {"Accept": "application/json"}

_NOT_FOUND = (
    "The requested resource was not found. Make sure the Orchestrator URL is correct "
    "and reachable from this machine"
)

# status code -> (success, reason)
_DELETE_RESPONSES: Dict[int, Tuple[bool, str]] = {
    200: (True, "Plug-in package deleted"),
    204: (True, "No plug-in package found for deletion"),
    401: (False, "Authentication is required to delete a plug-in package"),
    403: (False, "The provided user is not authorized to delete a plug-in package"),
    404: (True, "The plug-in package was not found on the server, nothing to delete"),
}

_UPLOAD_RESPONSES: Dict[int, Tuple[bool, str]] = {
    201: (True, "Plug-in uploaded"),
    204: (True, "Plug-in uploaded"),
    401: (False, "Authentication is required to upload a plug-in"),
    403: (False, "The provided user is not authorized to upload a plug-in"),
    404: (False, _NOT_FOUND),
    409: (False, "The plug-in already exists and the overwrite flag was not set"),
}

_RESTART_RESPONSES: Dict[int, Tuple[bool, str]] = {
    200: (True, "Service restart triggered"),
    201: (True, "Service restart triggered"),
    401: (False, "Authentication is required to restart the Orchestrator service"),
    403: (False, "The provided user is not authorized to restart the Orchestrator service"),
    404: (False, _NOT_FOUND),
}

_READ_FAILURES: Dict[int, str] = {
    401: "Authentication is required",
    403: "The provided user is not authorized",
    404: _NOT_FOUND,
}


def _classify(status_code: int, table: Dict[int, Tuple[bool, str]], action: str) -> OperationOutcome:
    entry = table.get(status_code)
    if entry is None:
        reason = f"Unknown status code HTTP {status_code} returned while {action}"
        logger.warning(reason, status_code=status_code)
        return OperationOutcome.rejected(reason, status_code, code="unknown_status")
    ok, reason = entry
    if ok:
        logger.debug(reason, status_code=status_code)
        return OperationOutcome.success(reason, status_code)
    logger.warning(reason, status_code=status_code)
    return OperationOutcome.rejected(reason, status_code)


def _json_body(response: httpx.Response, what: str) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise TransportFailureError(
            f"Unable to parse {what} response: {e}", status_code=response.status_code
        ) from e


class OrchestratorApi:
    """Client for the plug-in service and config service of one Orchestrator server."""

    def __init__(self, config: DeploymentConfig, client_factory: Optional[ClientFactory] = None):
        self.config = config
        self._client_factory = client_factory or functools.partial(
            self._default_client, config.insecure_tls, config.request_timeout_seconds
        )

    @staticmethod
    def _default_client(insecure_tls: bool, timeout: float, credentials: Credentials) -> httpx.Client:
        return new_client(insecure_tls, credentials, timeout)

    def _config_credentials(self) -> Credentials:
        if self.config.config_service_credentials is None:
            raise ConfigurationError("Config service credentials are required for this operation")
        return self.config.config_service_credentials

    def _send(self, credentials: Credentials, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send one request on a fresh client; the client is closed on every path."""
        logger.debug("Sending request", method=method, url=url)
        try:
            with self._client_factory(credentials) as client:
                response = client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise TransportFailureError(f"{method} {url} failed: {e}") from e
        logger.debug("Received response", method=method, url=url, status_code=response.status_code)
        return response

    def delete_package(self, package_name: str) -> OperationOutcome:
        """Delete the plug-in's package and its elements, keeping shared ones."""
        # Package names are dot-delimited; the trailing dot stops the server
        # from matching longer names sharing the same prefix.
        name = f"{package_name}."
        url = f"{self.config.plugin_service_url}{PACKAGES_PATH}/{name}"
        logger.info("Deleting plug-in package", package=name)
        try:
            response = self._send(
                self.config.plugin_service_credentials,
                "DELETE",
                url,
                params={"option": DELETE_OPTION},
                headers=JSON_HEADERS,
            )
        except TransportFailureError as e:
            logger.warning("Plug-in package deletion request failed", error=str(e))
            return OperationOutcome.transport_error(e)

        if response.status_code == 404:
            logger.warning("Plug-in package not found on the server, skipping deletion", package=name)
        return _classify(response.status_code, _DELETE_RESPONSES, "deleting a plug-in package")

    def upload_bundle(self, bundle: BundleFile, bundle_format: BundleFormat, overwrite: bool) -> OperationOutcome:
        """Upload the bundle as a multipart form (file, format, overwrite)."""
        url = f"{self.config.plugin_service_url}{PLUGINS_PATH}"
        logger.info("Uploading plug-in", bundle=str(bundle.path), format=bundle_format.extension)
        try:
            with bundle.path.open("rb") as fh:
                response = self._send(
                    self.config.plugin_service_credentials,
                    "POST",
                    url,
                    files={"file": (bundle.name, fh, "application/octet-stream")},
                    data={
                        "format": bundle_format.extension,
                        "overwrite": "true" if overwrite else "false",
                    },
                )
        except OSError as e:
            raise PreconditionError(f"Unable to read plug-in file {bundle.path}: {e}") from e
        except TransportFailureError as e:
            logger.warning("Plug-in upload request failed", error=str(e))
            return OperationOutcome.transport_error(e)
        return _classify(response.status_code, _UPLOAD_RESPONSES, "uploading the plug-in")

    def trigger_restart(self) -> OperationOutcome:
        url = f"{self.config.config_service_url}{RESTART_PATH}"
        logger.info("Restarting Orchestrator service")
        try:
            response = self._send(
                self._config_credentials(),
                "POST",
                url,
                content=b"",
                headers={**JSON_HEADERS, "Content-Type": "application/json"},
            )
        except TransportFailureError as e:
            logger.warning("Service restart request failed", error=str(e))
            return OperationOutcome.transport_error(e)
        return _classify(response.status_code, _RESTART_RESPONSES, "restarting the Orchestrator service")

    def get_service_status(self) -> ServiceStatus:
        """Read the current service status.

        Raises:
            TransportFailureError: if the request or JSON decoding fails.
        """
        url = f"{self.config.config_service_url}{STATUS_PATH}"
        response = self._send(self._config_credentials(), "GET", url, headers=JSON_HEADERS)
        if response.status_code != 200:
            reason = _READ_FAILURES.get(response.status_code, "Unknown status code")
            logger.warning("Unable to get service status", reason=reason, status_code=response.status_code)
            return ServiceStatus.UNDEFINED

        payload = _json_body(response, "service status")
        if not isinstance(payload, dict) or "currentStatus" not in payload:
            logger.warning("Service status response has no currentStatus field")
            return ServiceStatus.UNDEFINED

        current = payload["currentStatus"]
        logger.debug("Orchestrator service status", current_status=current)
        if current is None:
            return ServiceStatus.RESTARTING
        if isinstance(current, str):
            if current.upper() == "RUNNING":
                return ServiceStatus.RUNNING
            if current.upper() == "STOPPED":
                return ServiceStatus.STOPPED
        return ServiceStatus.UNDEFINED

    def get_config_fingerprints(self) -> Optional[ConfigFingerprints]:
        """Read the active and pending configuration fingerprints.

        Returns None when the server does not provide both fingerprints.

        Raises:
            TransportFailureError: if the request or JSON decoding fails.
        """
        url = f"{self.config.config_service_url}{CONFIG_VERSION_PATH}"
        response = self._send(self._config_credentials(), "GET", url, headers=JSON_HEADERS)
        if response.status_code != 200:
            reason = _READ_FAILURES.get(response.status_code, "Unknown status code")
            logger.warning(
                "Unable to get configuration fingerprint", reason=reason, status_code=response.status_code
            )
            return None

        payload = _json_body(response, "configuration fingerprint")
        if not isinstance(payload, dict):
            logger.warning("Configuration fingerprint response is not a JSON object")
            return None
        active = payload.get("activeConfigurationFingerprint")
        pending = payload.get("pendingConfigurationFingerprint")
        if active is None or pending is None:
            logger.warning("Configuration fingerprints missing from response")
            return None

        logger.debug("Configuration fingerprints", active=active, pending=pending)
        return ConfigFingerprints(active=str(active), pending=str(pending))
