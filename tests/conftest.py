"""Shared pytest fixtures for pve-orchestrator tests."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from adapters.base import (  # noqa: E402
    ADAPTER_COMMAND_FAILED,
    MOUNT_FAILED,
    NOT_FOUND,
    RUNNING,
    STOPPED,
    UNMOUNT_FAILED,
    AdapterError,
)
from orchestrator.engine import Engine  # noqa: E402
from plan import ContainerSpec, ManagedVM, MountSpec, Plan, ShutdownPolicy  # noqa: E402

# Calls that only read state
READ_ONLY = ('status', 'is_mounted')


class FakeClock:
    """Monotonic clock advanced only by sleep()."""

    def __init__(self, step=None):
        self.now = 0.0
        self.sleeps = []
        self.step = step  # override the requested sleep duration

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += self.step if self.step is not None else seconds


class FakeGuest:
    """In-memory VM or container recording every call on its host."""

    def __init__(self, host, kind, ident):
        self.host = host
        self.kind = kind
        self.ident = ident

    def _states(self):
        return self.host.vms if self.kind == 'vm' else self.host.containers

    def status(self):
        self.host.calls.append((self.kind, 'status', self.ident))
        return self._states().get(self.ident, NOT_FOUND)

    def start(self):
        self.host.calls.append((self.kind, 'start', self.ident))
        if (self.kind, self.ident) in self.host.fail_start:
            raise AdapterError(ADAPTER_COMMAND_FAILED, f"Failed to start {self.kind} {self.ident}")
        if (self.kind, self.ident) not in self.host.never_boots:
            self._states()[self.ident] = RUNNING

    def stop(self, timeout):
        self.host.calls.append((self.kind, 'stop', self.ident, timeout))
        if (self.kind, self.ident) in self.host.fail_stop:
            raise AdapterError(ADAPTER_COMMAND_FAILED, f"Failed to shut down {self.kind} {self.ident}")
        self._states()[self.ident] = STOPPED

    def kill(self):
        self.host.calls.append((self.kind, 'kill', self.ident))
        if (self.kind, self.ident) in self.host.fail_kill:
            raise AdapterError(ADAPTER_COMMAND_FAILED, f"Failed to force stop {self.kind} {self.ident}")
        self._states()[self.ident] = STOPPED


class FakeMounts:
    """In-memory mount table."""

    def __init__(self, host):
        self.host = host

    def is_mounted(self, target):
        self.host.calls.append(('mount', 'is_mounted', target))
        return target in self.host.mounted

    def ensure_mountpoint(self, target):
        self.host.calls.append(('mount', 'ensure_mountpoint', target))

    def mount(self, kind, source, target, options):
        self.host.calls.append(('mount', 'mount', target, kind, source, options))
        if target in self.host.fail_mount:
            raise AdapterError(MOUNT_FAILED, f"Failed to mount {kind.upper()}: {source} -> {target}")
        self.host.mounted.add(target)

    def unmount(self, target):
        self.host.calls.append(('mount', 'unmount', target))
        if target in self.host.fail_unmount:
            raise AdapterError(UNMOUNT_FAILED, f"Failed to unmount {target}")
        self.host.mounted.discard(target)


class FakeHost:
    """Adapter provider backed by in-memory state with an invocation log."""

    def __init__(self, vms=None, containers=None, mounted=None):
        self.vms = dict(vms or {})
        self.containers = dict(containers or {})
        self.mounted = set(mounted or ())
        self.calls = []
        self.fail_start = set()
        self.fail_stop = set()
        self.fail_kill = set()
        self.fail_mount = set()
        self.fail_unmount = set()
        self.never_boots = set()

    def vm(self, spec):
        return FakeGuest(self, 'vm', spec.vmid)

    def container(self, spec):
        return FakeGuest(self, 'container', spec.ctid)

    def mounts(self):
        return FakeMounts(self)

    def actions(self):
        """Invocation log without read-only queries."""
        return [c for c in self.calls if c[1] not in READ_ONLY]

    def count(self, op):
        return sum(1 for c in self.calls if c[1] == op)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def scenario_plan():
    """VM 100 without health check, one NFS share, one dependent container."""
    return Plan(
        vm=ManagedVM(vmid=100, name='truenas'),
        mounts=(MountSpec(kind='nfs', source='nas:/tank/a', target='/mnt/a'),),
        containers=(ContainerSpec(ctid=101, name='media', depends_on_mount='/mnt/a'),),
        shutdown=ShutdownPolicy(),
    )


@pytest.fixture
def fake_host():
    """Host where VM 100 and container 101 exist and are stopped."""
    return FakeHost(vms={100: STOPPED}, containers={101: STOPPED})


@pytest.fixture
def make_engine(fake_clock):
    """Factory building an Engine wired to a fake clock."""
    def _make(plan, host, **kwargs):
        kwargs.setdefault('probe', lambda kind, host_, port=None: True)
        return Engine(
            plan=plan,
            adapters=host,
            clock=fake_clock,
            sleep=fake_clock.sleep,
            **kwargs,
        )
    return _make


@pytest.fixture
def plan_file(tmp_path):
    """Write a YAML plan and return its path."""
    def _write(content: str) -> Path:
        path = tmp_path / 'config.yaml'
        path.write_text(content)
        return path
    return _write
