"""
Deployment state machine.

Runs the fixed deployment workflow against one Orchestrator server:

    validate -> [delete package] -> upload -> [settle delay -> restart
    -> wait for restart -> [wait for pending changes] -> final status]

Each step runs only after the previous one succeeded. Mutating calls are
never retried; only status and fingerprint reads are polled.
"""

from __future__ import annotations

import time
from typing import Callable, List, Optional

import structlog

from o11n_deploy.core.config import DeploySettings, build_deployment_config
from o11n_deploy.core.exceptions import (
    DeploymentError,
    PreconditionError,
    RemoteRejectedError,
    TransportFailureError,
)
from o11n_deploy.core.models import DeploymentConfig
from o11n_deploy.deploy.models import (
    ConfigFingerprints,
    DeploymentOutcome,
    DeploymentResult,
    OperationOutcome,
    PollResult,
    PollState,
    ServiceStatus,
)
from o11n_deploy.deploy.polling import (
    CONVERGENCE_WAIT,
    RESTART_WAIT,
    CancellationToken,
    PollPolicy,
    poll_until,
)
from o11n_deploy.deploy.remote import ClientFactory, OrchestratorApi
from o11n_deploy.utils.logging import bind_deployment_context


logger = structlog.get_logger()

# Gives the server time to commit the uploaded plug-in before restarting.
SETTLE_DELAY_SECONDS = 3.0

MANUAL_RESTART_NOTE = (
    "Orchestrator service restart was not requested. "
    "Please restart the Orchestrator service manually for the changes to take effect."
)


class DeploymentOrchestrator:
    """Deploys one plug-in bundle and optionally restarts the Orchestrator service."""

    def __init__(
        self,
        settings: DeploySettings,
        *,
        client_factory: Optional[ClientFactory] = None,
        restart_wait: PollPolicy = RESTART_WAIT,
        convergence_wait: PollPolicy = CONVERGENCE_WAIT,
        settle_delay: float = SETTLE_DELAY_SECONDS,
        cancel_token: Optional[CancellationToken] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.settings = settings
        self.restart_wait = restart_wait
        self.convergence_wait = convergence_wait
        self.settle_delay = settle_delay
        self.cancel_token = cancel_token
        self._client_factory = client_factory
        if sleep is None:
            sleep = cancel_token.sleep if cancel_token is not None else time.sleep
        self._sleep = sleep

    def run(self) -> DeploymentResult:
        """Execute the deployment.

        Returns:
            DeploymentResult describing success, success with warnings or a
            failed restart.

        Raises:
            ConfigurationError: invalid settings, raised before any network call.
            PreconditionError: the bundle file does not exist.
            DeploymentError: a phase failed; ``__cause__`` holds the original error.
            DeploymentCancelledError: the cancellation token fired.
        """
        config = self._validate()
        bind_deployment_context(server=config.server, bundle=config.bundle.name)
        api = OrchestratorApi(config, self._client_factory)
        warnings: List[str] = []

        if config.delete_package:
            self._checkpoint()
            self._delete_package(api, config)

        self._checkpoint()
        self._upload(api, config)

        if not config.restart_service:
            logger.info(MANUAL_RESTART_NOTE)
            return DeploymentResult(DeploymentOutcome.SUCCESS, notes=[MANUAL_RESTART_NOTE])

        self._checkpoint()
        self._sleep(self.settle_delay)

        self._checkpoint()
        self._restart(api)

        restart_wait = self._wait_for_restart(api, warnings)

        convergence_wait = None
        if config.wait_for_pending_changes:
            convergence_wait = self._wait_for_convergence(api, warnings)

        self._checkpoint()
        final_status = self._final_status(api, warnings)
        return DeploymentResult(
            outcome=self._classify(final_status, warnings),
            final_status=final_status,
            warnings=warnings,
            restart_wait=restart_wait,
            convergence_wait=convergence_wait,
        )

    def _checkpoint(self) -> None:
        if self.cancel_token is not None:
            self.cancel_token.raise_if_cancelled()

    def _validate(self) -> DeploymentConfig:
        config = build_deployment_config(self.settings)
        if not config.bundle.exists():
            raise PreconditionError(f"Plug-in file not found: {config.bundle.path}")
        logger.debug(
            "Effective deployment configuration",
            server=config.server,
            plugin_service_port=config.plugin_service_port,
            config_service_port=config.config_service_port,
            bundle=str(config.bundle.path),
            restart_service=config.restart_service,
            delete_package=config.delete_package,
            wait_for_pending_changes=config.wait_for_pending_changes,
        )
        return config

    @staticmethod
    def _require(phase: str, outcome: OperationOutcome, message: str) -> None:
        if outcome.ok:
            return
        raise DeploymentError(phase, f"{message} {outcome.reason}.", code=outcome.code) from outcome.to_error()

    def _delete_package(self, api: OrchestratorApi, config: DeploymentConfig) -> None:
        logger.info("Package deletion was requested")
        outcome = api.delete_package(config.package_name)
        self._require("delete", outcome, "Plug-in package deletion has failed.")
        logger.info("Finished plug-in package deletion")

    def _upload(self, api: OrchestratorApi, config: DeploymentConfig) -> None:
        try:
            outcome = api.upload_bundle(config.bundle, config.bundle_format, config.overwrite)
        except PreconditionError as e:
            raise DeploymentError("upload", str(e), code=e.code) from e
        self._require("upload", outcome, "Plug-in upload has failed.")
        logger.info("Finished plug-in upload")

    def _restart(self, api: OrchestratorApi) -> None:
        logger.info("Service restart was requested")
        outcome = api.trigger_restart()
        self._require(
            "restart",
            outcome,
            "Orchestrator service restart has failed. Please restart the Orchestrator service "
            "manually for the changes to take effect.",
        )

    def _wait_for_restart(self, api: OrchestratorApi, warnings: List[str]) -> PollResult[ServiceStatus]:
        result = poll_until(
            api.get_service_status,
            lambda status: status is not ServiceStatus.RESTARTING,
            self.restart_wait.max_attempts,
            self.restart_wait.delay,
            cancel_token=self.cancel_token,
            sleep=self._sleep,
            description="service restart",
        )
        if result.state is PollState.TIMED_OUT:
            message = (
                "Timeout. Orchestrator service is not responding. "
                "Please verify your Orchestrator configuration."
            )
            logger.warning(message, attempts=result.attempts)
            warnings.append(message)
        elif result.state is PollState.ABORTED:
            message = f"Unable to follow the Orchestrator service restart: {result.error}"
            logger.warning(message)
            warnings.append(message)
        return result

    def _wait_for_convergence(
        self, api: OrchestratorApi, warnings: List[str]
    ) -> PollResult[ConfigFingerprints]:
        logger.info("Wait for pending changes was requested")

        def read_fingerprints() -> ConfigFingerprints:
            fingerprints = api.get_config_fingerprints()
            if fingerprints is None:
                raise RemoteRejectedError("Configuration fingerprints unavailable", code="no_data")
            return fingerprints

        result = poll_until(
            read_fingerprints,
            lambda fingerprints: fingerprints.converged,
            self.convergence_wait.max_attempts,
            self.convergence_wait.delay,
            cancel_token=self.cancel_token,
            sleep=self._sleep,
            description="pending configuration changes",
        )
        if result.state is PollState.ABORTED:
            raise DeploymentError(
                "convergence",
                "An error occurred while waiting for the configuration changes to be applied. "
                "Please verify your Orchestrator configuration.",
                code=getattr(result.error, "code", None),
            ) from result.error
        if result.state is PollState.TIMED_OUT:
            message = (
                "Timeout. Orchestrator configuration was not applied. "
                "Please verify your Orchestrator configuration."
            )
            logger.warning(message, attempts=result.attempts)
            warnings.append(message)
        else:
            logger.info("Pending configuration changes have been applied")
        return result

    def _final_status(self, api: OrchestratorApi, warnings: List[str]) -> ServiceStatus:
        try:
            return api.get_service_status()
        except TransportFailureError as e:
            message = f"Unable to read the final Orchestrator service status: {e}"
            logger.warning(message)
            warnings.append(message)
            return ServiceStatus.UNDEFINED

    @staticmethod
    def _classify(status: ServiceStatus, warnings: List[str]) -> DeploymentOutcome:
        if status is ServiceStatus.RUNNING:
            logger.info("Finished Orchestrator service restart")
            logger.info("Successfully updated plug-in in VMware Orchestrator")
            return DeploymentOutcome.SUCCESS_WITH_WARNINGS if warnings else DeploymentOutcome.SUCCESS
        if status is ServiceStatus.STOPPED:
            message = (
                "Orchestrator service could not be started. "
                "Please verify your Orchestrator configuration."
            )
            logger.warning(message)
            warnings.append(message)
            return DeploymentOutcome.RESTART_FAILED
        message = (
            f"Orchestrator service returned an unknown status ({status.value}). "
            "Please verify your Orchestrator configuration."
        )
        logger.warning(message)
        warnings.append(message)
        return DeploymentOutcome.SUCCESS_WITH_WARNINGS
