"""Run-scoped results for orchestration runs.

An ExecutionOutcome is created fresh by every start/stop call, collects
one ResourceOutcome per resource touched, and is returned to the caller.
Nothing here is persisted; the CLI decides how to render or store it.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Optional

# Per-resource statuses
STARTED = 'started'
ALREADY_RUNNING = 'already_running'
STOPPED = 'stopped'
ALREADY_STOPPED = 'already_stopped'
SKIPPED = 'skipped'
FAILED = 'failed'

# Overall run statuses
SUCCESS = 'success'
PARTIAL_SUCCESS = 'partial_success'
RUN_FAILED = 'failed'

# Resource kinds
VM = 'vm'
MOUNT = 'mount'
CONTAINER = 'container'

_OK_STATUSES = (STARTED, ALREADY_RUNNING, STOPPED, ALREADY_STOPPED)


@dataclass
class ResourceOutcome:
    """Result for a single resource.

    Attributes:
        kind: vm, mount or container
        ident: VMID, CTID or mount target
        name: Display name
        status: started, already_running, stopped, already_stopped, skipped, failed
        reason: Skip reason or error kind (e.g. dependency_unmet, mount_failed)
        message: Human-readable detail
    """
    kind: str
    ident: str
    name: str
    status: str
    reason: Optional[str] = None
    message: str = ''

    @property
    def ok(self) -> bool:
        return self.status in _OK_STATUSES

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            'kind': self.kind,
            'id': self.ident,
            'name': self.name,
            'status': self.status,
        }
        if self.reason is not None:
            d['reason'] = self.reason
        if self.message:
            d['message'] = self.message
        return d


class ExecutionOutcome:
    """Accumulates resource outcomes for one start or stop run."""

    def __init__(self, operation: str):
        """Initialize outcome.

        Args:
            operation: 'start' or 'stop'
        """
        self.operation = operation
        self._resources: list[ResourceOutcome] = []
        self.aborted = False
        self.abort_reason: Optional[str] = None
        self.started_at: Optional[float] = None
        self.completed_at: Optional[float] = None

    def start(self) -> None:
        self.started_at = time.time()

    def finish(self) -> None:
        self.completed_at = time.time()

    def record(self, kind: str, ident, name: str, status: str,
               reason: Optional[str] = None, message: str = '') -> ResourceOutcome:
        """Append a resource result in execution order."""
        outcome = ResourceOutcome(
            kind=kind, ident=str(ident), name=name, status=status,
            reason=reason, message=message,
        )
        self._resources.append(outcome)
        return outcome

    def abort(self, reason: str) -> None:
        """Mark the run as aborted by a fatal (VM phase) failure."""
        self.aborted = True
        self.abort_reason = reason

    @property
    def resources(self) -> list[ResourceOutcome]:
        return list(self._resources)

    def get(self, kind: str, ident) -> ResourceOutcome:
        """Get the outcome for a resource.

        Raises:
            KeyError: If the resource was not recorded
        """
        for outcome in self._resources:
            if outcome.kind == kind and outcome.ident == str(ident):
                return outcome
        raise KeyError(f"{kind} {ident}")

    @property
    def status(self) -> str:
        """Overall status: failed if aborted, success if every resource is ok."""
        if self.aborted:
            return RUN_FAILED
        if all(r.ok for r in self._resources):
            return SUCCESS
        return PARTIAL_SUCCESS

    @property
    def duration(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return self.completed_at - self.started_at
        return None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            'operation': self.operation,
            'status': self.status,
            'resources': [r.to_dict() for r in self._resources],
        }
        if self.abort_reason is not None:
            d['abort_reason'] = self.abort_reason
        if self.duration is not None:
            d['duration'] = round(self.duration, 2)
        return d


@dataclass
class ResourceStatus:
    """Point-in-time state of one configured resource."""
    kind: str
    ident: str
    name: str
    state: str

    def to_dict(self) -> dict:
        return {'kind': self.kind, 'id': self.ident, 'name': self.name, 'state': self.state}


@dataclass
class StatusSnapshot:
    """Best-effort state of every configured resource."""
    vm: Optional[ResourceStatus] = None
    mounts: list[ResourceStatus] = field(default_factory=list)
    containers: list[ResourceStatus] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'vm': self.vm.to_dict() if self.vm else None,
            'mounts': [m.to_dict() for m in self.mounts],
            'containers': [c.to_dict() for c in self.containers],
        }
