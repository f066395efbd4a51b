"""Orchestration plan loading and validation.

A plan declares what the orchestrator manages on this host:
- vm: the storage VM that exports shares (optional)
- mounts: NFS/CIFS shares served by that VM, in mount order
- containers: LXC containers in start order, optionally gated on a mount
- shutdown: timeouts and unmount policy for the stop sequence

The legacy top-level key 'truenas' is accepted as an alias for 'vm'.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from config import ConfigError, parse_yaml

logger = logging.getLogger(__name__)

MOUNT_KINDS = ('nfs', 'cifs')
HEALTH_CHECK_KINDS = ('ping', 'tcp', 'http')

# Options used when a mount entry does not set its own
DEFAULT_MOUNT_OPTIONS = {
    'nfs': 'rw,soft,intr',
    'cifs': 'rw,vers=3.0',
}

DEFAULT_WAIT_TIMEOUT = 300
DEFAULT_CONTAINER_TIMEOUT = 30
DEFAULT_VM_TIMEOUT = 120


def normalize_path(path: str) -> str:
    """Normalize a mount target so it can be used as a lookup key."""
    return os.path.normpath(path.strip())


def _require_int(value: Any, what: str) -> int:
    """Coerce an integer field, rejecting booleans, fractions and non-numeric strings."""
    if isinstance(value, bool):
        raise ConfigError(f"{what} must be an integer, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise ConfigError(f"{what} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{what} must be an integer, got {value!r}")


def _require_non_negative(value: Any, what: str) -> int:
    number = _require_int(value, what)
    if number < 0:
        raise ConfigError(f"{what} must not be negative, got {number}")
    return number


def _require_bool(value: Any, what: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ('true', 'false'):
        return value.lower() == 'true'
    raise ConfigError(f"{what} must be true or false, got {value!r}")


@dataclass(frozen=True)
class HealthCheck:
    """External readiness check run after the VM reports running.

    Attributes:
        kind: ping, tcp or http
        host: Hostname, IP or URL to probe
        port: Port for tcp (required) or http (optional)
        timeout: Seconds to keep probing before giving up
    """
    kind: str
    host: str
    port: Optional[int] = None
    timeout: int = DEFAULT_WAIT_TIMEOUT

    def to_dict(self) -> dict:
        d: dict[str, Any] = {'type': self.kind, 'host': self.host, 'timeout': self.timeout}
        if self.port is not None:
            d['port'] = self.port
        return d


@dataclass(frozen=True)
class ManagedVM:
    """The storage VM started first and stopped last."""
    vmid: int
    name: str = ''
    health_check: Optional[HealthCheck] = None

    @property
    def display_name(self) -> str:
        return self.name or f'vm-{self.vmid}'

    @classmethod
    def from_dict(cls, data: dict) -> Optional['ManagedVM']:
        """Create ManagedVM from the 'vm' section. Returns None without a vmid."""
        if not isinstance(data, dict):
            raise ConfigError("vm section must be a YAML object (dict)")
        if data.get('vmid') in (None, ''):
            return None

        vmid = _require_int(data['vmid'], 'vm.vmid')
        timeout = _require_non_negative(
            data.get('wait_timeout', DEFAULT_WAIT_TIMEOUT), 'vm.wait_timeout')

        health_check = None
        check = data.get('health_check') or {}
        if not isinstance(check, dict):
            raise ConfigError("vm.health_check must be a YAML object (dict)")
        if check.get('host'):
            kind = check.get('type', 'ping')
            if kind not in HEALTH_CHECK_KINDS:
                raise ConfigError(
                    f"vm.health_check.type '{kind}' is not supported. "
                    f"Supported: {', '.join(HEALTH_CHECK_KINDS)}"
                )
            port = check.get('port')
            if port in (None, ''):
                port = None
            else:
                port = _require_int(port, 'vm.health_check.port')
            if kind == 'tcp' and port is None:
                raise ConfigError("vm.health_check of type 'tcp' requires a port")
            health_check = HealthCheck(
                kind=kind,
                host=str(check['host']),
                port=port,
                timeout=_require_non_negative(check.get('timeout', timeout), 'vm.health_check.timeout'),
            )

        return cls(vmid=vmid, name=str(data.get('name') or ''), health_check=health_check)

    def to_dict(self) -> dict:
        d: dict[str, Any] = {'vmid': self.vmid, 'name': self.display_name}
        if self.health_check is not None:
            d['health_check'] = self.health_check.to_dict()
        return d


@dataclass(frozen=True)
class MountSpec:
    """A network share mounted on the host after the VM is ready.

    Attributes:
        kind: nfs or cifs
        source: Share locator (host:/export or //host/share)
        target: Absolute, normalized mount point
        options: Mount options; protocol defaults apply when empty
        credentials: Path to a CIFS credentials file
    """
    kind: str
    source: str
    target: str
    options: str = ''
    credentials: Optional[str] = None

    @property
    def default_options(self) -> str:
        return self.options or DEFAULT_MOUNT_OPTIONS[self.kind]

    @classmethod
    def from_dict(cls, data: dict, index: int) -> 'MountSpec':
        if not isinstance(data, dict):
            raise ConfigError(f"Mount {index} must be a YAML object (dict)")
        for key in ('type', 'source', 'target'):
            if not data.get(key):
                raise ConfigError(f"Mount {index} missing required field: {key}")
        kind = data['type']
        if kind not in MOUNT_KINDS:
            raise ConfigError(
                f"Mount {index} has unknown type '{kind}'. "
                f"Supported: {', '.join(MOUNT_KINDS)}"
            )
        target = str(data['target'])
        if not target.startswith('/'):
            raise ConfigError(f"Mount {index} target must be an absolute path, got '{target}'")
        if data.get('credentials') and kind != 'cifs':
            raise ConfigError(f"Mount {index} sets credentials, which only apply to cifs mounts")
        return cls(
            kind=kind,
            source=str(data['source']),
            target=normalize_path(target),
            options=str(data.get('options') or ''),
            credentials=str(data['credentials']) if data.get('credentials') else None,
        )

    def to_dict(self) -> dict:
        d: dict[str, Any] = {'type': self.kind, 'source': self.source, 'target': self.target}
        if self.options:
            d['options'] = self.options
        if self.credentials:
            d['credentials'] = self.credentials
        return d


@dataclass(frozen=True)
class ContainerSpec:
    """An LXC container started after the mounts."""
    ctid: int
    name: str = ''
    wait: int = 0
    depends_on_mount: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or f'container-{self.ctid}'

    @classmethod
    def from_dict(cls, data: dict, index: int) -> 'ContainerSpec':
        if not isinstance(data, dict):
            raise ConfigError(f"Container {index} must be a YAML object (dict)")
        if data.get('ctid') in (None, ''):
            raise ConfigError(f"Container {index} missing required field: ctid")
        depends = data.get('depends_on_mount')
        return cls(
            ctid=_require_int(data['ctid'], f'containers[{index}].ctid'),
            name=str(data.get('name') or ''),
            wait=_require_non_negative(data.get('wait', 0), f'containers[{index}].wait'),
            depends_on_mount=normalize_path(str(depends)) if depends else None,
        )

    def to_dict(self) -> dict:
        d: dict[str, Any] = {'ctid': self.ctid, 'name': self.display_name, 'wait': self.wait}
        if self.depends_on_mount:
            d['depends_on_mount'] = self.depends_on_mount
        return d


@dataclass(frozen=True)
class ShutdownPolicy:
    """Stop sequence settings."""
    container_timeout: int = DEFAULT_CONTAINER_TIMEOUT
    vm_timeout: int = DEFAULT_VM_TIMEOUT
    unmount_shares: bool = True

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'ShutdownPolicy':
        if not data:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError("shutdown section must be a YAML object (dict)")
        return cls(
            container_timeout=_require_non_negative(
                data.get('container_timeout', DEFAULT_CONTAINER_TIMEOUT), 'shutdown.container_timeout'),
            vm_timeout=_require_non_negative(
                data.get('vm_timeout', DEFAULT_VM_TIMEOUT), 'shutdown.vm_timeout'),
            unmount_shares=_require_bool(
                data.get('unmount_shares', True), 'shutdown.unmount_shares'),
        )

    def to_dict(self) -> dict:
        return {
            'container_timeout': self.container_timeout,
            'vm_timeout': self.vm_timeout,
            'unmount_shares': self.unmount_shares,
        }


@dataclass(frozen=True)
class Plan:
    """Validated, immutable orchestration plan.

    Attributes:
        vm: Storage VM, or None when the VM phase is skipped
        mounts: Shares in mount order
        containers: Containers in start order
        shutdown: Stop sequence policy
        source_path: File the plan was loaded from (for messages)
    """
    vm: Optional[ManagedVM] = None
    mounts: tuple[MountSpec, ...] = ()
    containers: tuple[ContainerSpec, ...] = ()
    shutdown: ShutdownPolicy = field(default_factory=ShutdownPolicy)
    source_path: Optional[Path] = None

    def __post_init__(self):
        # Lists passed by callers are frozen so a run cannot mutate them
        object.__setattr__(self, 'mounts', tuple(self.mounts))
        object.__setattr__(self, 'containers', tuple(self.containers))

    @property
    def is_empty(self) -> bool:
        return self.vm is None and not self.mounts and not self.containers

    @classmethod
    def from_dict(cls, data: dict, source_path: Optional[Path] = None) -> 'Plan':
        """Create Plan from dictionary.

        Raises:
            ConfigError: If the plan is invalid
        """
        vm_data = data.get('vm')
        if vm_data is None:
            vm_data = data.get('truenas')
        vm = ManagedVM.from_dict(vm_data) if vm_data else None

        mounts_data = data.get('mounts') or []
        if not isinstance(mounts_data, list):
            raise ConfigError("mounts must be a list")
        mounts = [MountSpec.from_dict(m, i) for i, m in enumerate(mounts_data)]

        containers_data = data.get('containers') or []
        if not isinstance(containers_data, list):
            raise ConfigError("containers must be a list")
        containers = [ContainerSpec.from_dict(c, i) for i, c in enumerate(containers_data)]

        _validate_references(mounts, containers)

        return cls(
            vm=vm,
            mounts=tuple(mounts),
            containers=tuple(containers),
            shutdown=ShutdownPolicy.from_dict(data.get('shutdown')),
            source_path=source_path,
        )

    def to_dict(self) -> dict:
        return {
            'vm': self.vm.to_dict() if self.vm else None,
            'mounts': [m.to_dict() for m in self.mounts],
            'containers': [c.to_dict() for c in self.containers],
            'shutdown': self.shutdown.to_dict(),
        }


def _validate_references(mounts: list[MountSpec], containers: list[ContainerSpec]) -> None:
    """Check uniqueness of targets and ctids, and that dependencies resolve."""
    targets: set[str] = set()
    for mount in mounts:
        if mount.target in targets:
            raise ConfigError(f"Duplicate mount target: {mount.target}")
        targets.add(mount.target)

    ctids: set[int] = set()
    for container in containers:
        if container.ctid in ctids:
            raise ConfigError(f"Duplicate container ctid: {container.ctid}")
        ctids.add(container.ctid)
        if container.depends_on_mount and container.depends_on_mount not in targets:
            raise ConfigError(
                f"Container {container.display_name} ({container.ctid}) depends on "
                f"'{container.depends_on_mount}' which is not a configured mount target. "
                f"Configured: {', '.join(sorted(targets)) if targets else 'none'}"
            )


def load_plan(path: Path) -> Plan:
    """Load and validate a plan from a YAML file.

    Raises:
        ConfigMissing: If the file does not exist
        ConfigError: If the file is invalid
    """
    data = parse_yaml(path)
    plan = Plan.from_dict(data, source_path=path)
    logger.debug(
        f"Loaded plan from {path}: vm={plan.vm.vmid if plan.vm else None}, "
        f"{len(plan.mounts)} mount(s), {len(plan.containers)} container(s)"
    )
    return plan
