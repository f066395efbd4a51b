"""Adapter protocols consumed by the orchestration engine.

The engine is written once against these protocols; each resource kind
(VM, container, mount) supplies its own implementation.
"""

from typing import Protocol, runtime_checkable

from plan import ContainerSpec, ManagedVM

# Resource states reported by status()
RUNNING = 'running'
STOPPED = 'stopped'
NOT_FOUND = 'not_found'
UNKNOWN = 'unknown'

# Error kinds carried by AdapterError and recorded in outcomes
RESOURCE_NOT_FOUND = 'resource_not_found'
ADAPTER_COMMAND_FAILED = 'adapter_command_failed'
READINESS_TIMEOUT = 'readiness_timeout'
DEPENDENCY_UNMET = 'dependency_unmet'
MOUNT_FAILED = 'mount_failed'
UNMOUNT_FAILED = 'unmount_failed'


class AdapterError(Exception):
    """A lifecycle command could not be carried out."""

    def __init__(self, kind: str, message: str):
        self.kind = kind
        self.message = message
        super().__init__(f"{kind}: {message}")


@runtime_checkable
class LifecycleAdapter(Protocol):
    """Start/stop/status capability of a single VM or container."""

    def status(self) -> str:
        """Return RUNNING, STOPPED, NOT_FOUND or UNKNOWN."""

    def start(self) -> None:
        """Issue a start. Raises AdapterError on failure."""

    def stop(self, timeout: int) -> None:
        """Graceful shutdown bounded by timeout. Raises AdapterError on failure."""

    def kill(self) -> None:
        """Forced stop. Raises AdapterError on failure."""


@runtime_checkable
class MountAdapter(Protocol):
    """Host mount table operations."""

    def is_mounted(self, target: str) -> bool:
        """True if target is currently a mount point."""

    def ensure_mountpoint(self, target: str) -> None:
        """Create the target directory if missing. Raises AdapterError."""

    def mount(self, kind: str, source: str, target: str, options: str) -> None:
        """Mount source on target. Raises AdapterError on failure."""

    def unmount(self, target: str) -> None:
        """Unmount target. Raises AdapterError on failure."""


@runtime_checkable
class AdapterProvider(Protocol):
    """Hands the engine an adapter for each planned resource."""

    def vm(self, spec: ManagedVM) -> LifecycleAdapter:
        """Adapter for the storage VM."""

    def container(self, spec: ContainerSpec) -> LifecycleAdapter:
        """Adapter for one container."""

    def mounts(self) -> MountAdapter:
        """Adapter for the host mount table."""
