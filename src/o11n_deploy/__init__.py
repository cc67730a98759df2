"""o11n-deploy - Deploy plug-ins to VMware Orchestrator."""

__version__ = "0.1.0"

from o11n_deploy.core.config import DeploySettings, load_settings
from o11n_deploy.deploy.orchestrator import DeploymentOrchestrator

__all__ = ["DeploySettings", "DeploymentOrchestrator", "load_settings", "__version__"]
