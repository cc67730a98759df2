"""Custom exceptions for o11n-deploy."""

from typing import Optional


class O11nDeployError(Exception):
    """Base exception for all deployment errors."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class ConfigurationError(O11nDeployError):
    """Configuration error."""

    def __init__(self, message: str, code: Optional[str] = "configuration"):
        super().__init__(message, code)


class PreconditionError(O11nDeployError):
    """Plug-in bundle is missing on disk."""

    def __init__(self, message: str, code: Optional[str] = "bundle_missing"):
        super().__init__(message, code)


class RemoteError(O11nDeployError):
    """Errors talking to the Orchestrator server."""

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, code)
        self.status_code = status_code


class RemoteRejectedError(RemoteError):
    """Server answered with a definitive non-success status."""

    def __init__(self, message: str, code: Optional[str] = "remote_rejected", status_code: Optional[int] = None):
        super().__init__(message, code, status_code)


class TransportFailureError(RemoteError):
    """Request could not complete (connection or decoding fault)."""

    def __init__(self, message: str, code: Optional[str] = "transport", status_code: Optional[int] = None):
        super().__init__(message, code, status_code)


class DeploymentError(O11nDeployError):
    """A deployment phase failed.

    Always raised ``from`` the underlying error so ``__cause__`` carries the
    original fault.
    """

    def __init__(self, phase: str, message: str, code: Optional[str] = None):
        super().__init__(f"{phase} phase failed: {message}", code)
        self.phase = phase


class DeploymentCancelledError(O11nDeployError):
    """Run was cancelled before completion."""

    def __init__(self, message: str = "Deployment cancelled", code: Optional[str] = "cancelled"):
        super().__init__(message, code)
