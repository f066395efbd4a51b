"""Proxmox VE adapters driving qm (VMs) and pct (containers)."""

import logging
from dataclasses import dataclass
from typing import Optional

from adapters.base import (
    ADAPTER_COMMAND_FAILED,
    NOT_FOUND,
    RUNNING,
    STOPPED,
    UNKNOWN,
    AdapterError,
    LifecycleAdapter,
    MountAdapter,
)
from adapters.mounts import HostMountAdapter
from common import run_command
from plan import ContainerSpec, ManagedVM

logger = logging.getLogger(__name__)

# Extra seconds allowed on top of a shutdown timeout before the
# subprocess itself is abandoned
COMMAND_GRACE = 30


@dataclass
class GuestAdapter:
    """Lifecycle of one guest through a PVE CLI (qm or pct).

    Attributes:
        tool: 'qm' for VMs, 'pct' for containers
        guest_id: VMID or CTID
        label: Name used in log and error messages
    """
    tool: str
    guest_id: int
    label: str = ''

    def _describe(self) -> str:
        return self.label or f'{self.tool} {self.guest_id}'

    def status(self) -> str:
        """Parse 'status: running' from '<tool> status <id>'.

        A timed out or unrunnable command is UNKNOWN; any other non-zero
        exit means the guest does not exist.
        """
        rc, out, err = run_command([self.tool, 'status', str(self.guest_id)], timeout=30)
        if rc == -1:
            logger.warning(f"{self.tool} status {self.guest_id} did not complete: {err.strip()}")
            return UNKNOWN
        if rc != 0:
            logger.debug(f"{self.tool} status {self.guest_id} failed: {err.strip()}")
            return NOT_FOUND
        parts = out.split()
        value = parts[1] if len(parts) > 1 else ''
        if value == RUNNING:
            return RUNNING
        if value == STOPPED:
            return STOPPED
        return UNKNOWN

    def _run(self, args: list[str], timeout: int, action: str) -> None:
        rc, _, err = run_command([self.tool] + args, timeout=timeout)
        if rc != 0:
            raise AdapterError(
                ADAPTER_COMMAND_FAILED,
                f"Failed to {action} {self._describe()}: {err.strip() or f'exit {rc}'}",
            )

    def start(self) -> None:
        self._run(['start', str(self.guest_id)], timeout=120, action='start')

    def stop(self, timeout: int) -> None:
        self._run(
            ['shutdown', str(self.guest_id), '--timeout', str(timeout)],
            timeout=timeout + COMMAND_GRACE,
            action='shut down',
        )

    def kill(self) -> None:
        self._run(['stop', str(self.guest_id)], timeout=120, action='force stop')


class PveAdapters:
    """Adapter provider for a local Proxmox VE host."""

    def __init__(self, mount_adapter: Optional[MountAdapter] = None):
        self._mounts = mount_adapter or HostMountAdapter()

    def vm(self, spec: ManagedVM) -> LifecycleAdapter:
        return GuestAdapter(tool='qm', guest_id=spec.vmid, label=f'VM {spec.vmid}')

    def container(self, spec: ContainerSpec) -> LifecycleAdapter:
        return GuestAdapter(tool='pct', guest_id=spec.ctid, label=f'container {spec.ctid}')

    def mounts(self) -> MountAdapter:
        return self._mounts
