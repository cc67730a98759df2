"""Models for remote operation results and deployment outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, List, Optional, TypeVar

from o11n_deploy.core.exceptions import (
    RemoteError,
    RemoteRejectedError,
    TransportFailureError,
)

T = TypeVar("T")


class ServiceStatus(str, Enum):
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"
    RESTARTING = "RESTARTING"  # server reports currentStatus = null
    UNDEFINED = "UNDEFINED"


@dataclass(frozen=True)
class ConfigFingerprints:
    """Active and pending configuration fingerprints of the server."""

    active: str
    pending: str

    @property
    def converged(self) -> bool:
        return self.active.lower() == self.pending.lower()


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    REJECTED = "rejected"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class OperationOutcome:
    """Result of a single mutating remote call."""

    kind: OutcomeKind
    reason: str
    status_code: Optional[int] = None
    code: Optional[str] = None
    error: Optional[BaseException] = None

    @classmethod
    def success(cls, reason: str, status_code: int) -> "OperationOutcome":
        return cls(OutcomeKind.SUCCESS, reason, status_code)

    @classmethod
    def rejected(cls, reason: str, status_code: int, code: str = "remote_rejected") -> "OperationOutcome":
        return cls(OutcomeKind.REJECTED, reason, status_code, code)

    @classmethod
    def transport_error(cls, error: BaseException) -> "OperationOutcome":
        return cls(OutcomeKind.TRANSPORT_ERROR, str(error), None, "transport", error)

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    def to_error(self) -> RemoteError:
        """Convert a failed outcome into the matching exception."""
        if isinstance(self.error, RemoteError):
            return self.error
        if self.kind is OutcomeKind.TRANSPORT_ERROR:
            return TransportFailureError(self.reason)
        return RemoteRejectedError(self.reason, code=self.code, status_code=self.status_code)


class PollState(str, Enum):
    DONE = "done"
    TIMED_OUT = "timed_out"
    ABORTED = "aborted"


@dataclass
class PollResult(Generic[T]):
    state: PollState
    attempts: int
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def done(self) -> bool:
        return self.state is PollState.DONE


class DeploymentOutcome(str, Enum):
    SUCCESS = "success"
    SUCCESS_WITH_WARNINGS = "success_with_warnings"
    RESTART_FAILED = "restart_failed"  # plug-in uploaded, service did not come back


@dataclass
class DeploymentResult:
    outcome: DeploymentOutcome
    final_status: Optional[ServiceStatus] = None
    warnings: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    restart_wait: Optional[PollResult[ServiceStatus]] = None
    convergence_wait: Optional[PollResult[ConfigFingerprints]] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is not DeploymentOutcome.RESTART_FAILED
