"""
Plug-in deployment subsystem.

- OrchestratorApi: plug-in service and config service requests
- poll_until / PollPolicy: bounded fixed-delay polling
- DeploymentOrchestrator: the deployment state machine
"""

from .models import (
    ConfigFingerprints,
    DeploymentOutcome,
    DeploymentResult,
    OperationOutcome,
    OutcomeKind,
    PollResult,
    PollState,
    ServiceStatus,
)
from .orchestrator import DeploymentOrchestrator
from .polling import CONVERGENCE_WAIT, RESTART_WAIT, CancellationToken, PollPolicy, poll_until
from .remote import OrchestratorApi
from .transport import new_client

__all__ = [
    "ConfigFingerprints",
    "DeploymentOutcome",
    "DeploymentResult",
    "OperationOutcome",
    "OutcomeKind",
    "PollResult",
    "PollState",
    "ServiceStatus",
    "DeploymentOrchestrator",
    "CONVERGENCE_WAIT",
    "RESTART_WAIT",
    "CancellationToken",
    "PollPolicy",
    "poll_until",
    "OrchestratorApi",
    "new_client",
]
