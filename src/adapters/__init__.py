"""Resource lifecycle adapters for VMs, containers and mounts."""

from adapters.base import (
    RUNNING,
    STOPPED,
    NOT_FOUND,
    UNKNOWN,
    AdapterError,
    AdapterProvider,
    LifecycleAdapter,
    MountAdapter,
)
from adapters.mounts import HostMountAdapter
from adapters.pve import GuestAdapter, PveAdapters

__all__ = [
    'RUNNING',
    'STOPPED',
    'NOT_FOUND',
    'UNKNOWN',
    'AdapterError',
    'AdapterProvider',
    'LifecycleAdapter',
    'MountAdapter',
    'HostMountAdapter',
    'GuestAdapter',
    'PveAdapters',
]
