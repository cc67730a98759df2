"""CLI entrypoint: o11n-deploy."""

from __future__ import annotations

import argparse
import signal
import sys
from pathlib import Path
from typing import List, Optional

import structlog

from o11n_deploy.core.config import load_settings
from o11n_deploy.core.exceptions import (
    ConfigurationError,
    DeploymentCancelledError,
    O11nDeployError,
)
from o11n_deploy.core.models import BundleFormat
from o11n_deploy.deploy.models import DeploymentOutcome
from o11n_deploy.deploy.orchestrator import DeploymentOrchestrator
from o11n_deploy.deploy.polling import CancellationToken
from o11n_deploy.utils.logging import setup_logging

logger = structlog.get_logger()

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_RESTART_FAILED = 2
EXIT_CANCELLED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="o11n-deploy",
        description="Deploy a plug-in to VMware Orchestrator and optionally restart the service",
    )
    parser.add_argument("--config", type=Path, help="YAML file with deployment settings")

    server = parser.add_argument_group("server")
    server.add_argument("--server", help="Orchestrator hostname or IP address")
    server.add_argument("--plugin-port", dest="plugin_service_port", type=int, help="Plug-in service port (8281)")
    server.add_argument("--config-port", dest="config_service_port", type=int, help="Config service port (8283)")
    server.add_argument("--plugin-user", dest="plugin_service_user")
    server.add_argument("--plugin-password", dest="plugin_service_password")
    server.add_argument("--config-user", dest="config_service_user")
    server.add_argument("--config-password", dest="config_service_password")
    server.add_argument(
        "--secure-tls",
        dest="insecure_tls",
        action="store_const",
        const=False,
        default=None,
        help="Verify the server certificate and hostname",
    )
    server.add_argument("--timeout", dest="request_timeout_seconds", type=float, help="Per-request timeout in seconds")

    plugin = parser.add_argument_group("plug-in")
    plugin.add_argument("--plugin-path", dest="plugin_file_path", type=Path, help="Directory containing the bundle")
    plugin.add_argument("--plugin-name", dest="plugin_file_name", help="Bundle file name without extension")
    plugin.add_argument(
        "--plugin-type", dest="plugin_type", choices=[f.value for f in BundleFormat], help="Bundle format"
    )
    plugin.add_argument("--overwrite", action=argparse.BooleanOptionalAction, default=None)
    plugin.add_argument("--restart", dest="restart_service", action="store_const", const=True, default=None)
    plugin.add_argument("--delete-package", action="store_const", const=True, default=None)
    plugin.add_argument("--package-name", help="Package to delete before the upload")
    plugin.add_argument("--wait-for-pending-changes", action="store_const", const=True, default=None)

    logging_group = parser.add_argument_group("logging")
    logging_group.add_argument("--log-level")
    logging_group.add_argument("--log-format", choices=["console", "json"])
    return parser


def _install_signal_handlers(token: CancellationToken) -> dict:
    def handle_signal(signum, frame):
        logger.info("Received signal, cancelling deployment", signal=signum)
        token.cancel()

    previous = {}
    for sig in (signal.SIGTERM, signal.SIGINT):
        previous[sig] = signal.signal(sig, handle_signal)
    return previous


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    overrides = {k: v for k, v in vars(args).items() if k != "config"}

    try:
        settings = load_settings(args.config, **overrides)
    except ConfigurationError as e:
        setup_logging(args.log_level or "INFO", args.log_format or "console")
        logger.error("Invalid configuration", error=str(e))
        return EXIT_FAILURE

    setup_logging(settings.log_level, settings.log_format)

    token = CancellationToken()
    previous = _install_signal_handlers(token)
    try:
        result = DeploymentOrchestrator(settings, cancel_token=token).run()
    except DeploymentCancelledError:
        logger.warning("Deployment cancelled")
        return EXIT_CANCELLED
    except O11nDeployError as e:
        cause = e.__cause__
        logger.error(
            "Deployment failed",
            error=str(e),
            code=e.code,
            cause=f"{type(cause).__name__}: {cause}" if cause is not None else None,
        )
        return EXIT_FAILURE
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    if result.outcome is DeploymentOutcome.RESTART_FAILED:
        logger.error("Plug-in deployed but the Orchestrator service did not restart", warnings=result.warnings)
        return EXIT_RESTART_FAILED
    if result.outcome is DeploymentOutcome.SUCCESS_WITH_WARNINGS:
        logger.warning("Deployment completed with warnings", warnings=result.warnings)
    else:
        logger.info("Deployment completed", final_status=result.final_status.value if result.final_status else None)
    return EXIT_SUCCESS


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
