"""Orchestration engine: ordered startup and shutdown of planned resources.

Startup runs three phases in order:
1. VM: start the storage VM and wait until it is running and healthy.
   Any failure here is fatal and aborts the remaining phases.
2. Mounts: mount each share in declared order. Failures are isolated.
3. Containers: start each container in declared order, skipping those
   whose mount dependency is not mounted. Failures are isolated.

Shutdown runs the exact reverse and never aborts early.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from adapters.base import (
    DEPENDENCY_UNMET,
    MOUNT_FAILED,
    NOT_FOUND,
    READINESS_TIMEOUT,
    RESOURCE_NOT_FOUND,
    RUNNING,
    STOPPED as STATE_STOPPED,
    UNKNOWN,
    AdapterError,
    AdapterProvider,
    LifecycleAdapter,
)
from common import POLL_INTERVAL, WaitResult, wait_for
from orchestrator.outcome import (
    ALREADY_RUNNING,
    ALREADY_STOPPED,
    CONTAINER,
    FAILED,
    MOUNT,
    SKIPPED,
    STARTED,
    STOPPED,
    VM,
    ExecutionOutcome,
    ResourceStatus,
    StatusSnapshot,
)
from plan import MountSpec, Plan
from readiness import probe as health_probe

logger = logging.getLogger(__name__)

# Seconds to wait for the VM to report running after a start
VM_RUNNING_TIMEOUT = 60

MOUNTED = 'mounted'
NOT_MOUNTED = 'not_mounted'


def mount_options(spec: MountSpec) -> str:
    """Options passed to mount for a share.

    Protocol defaults apply when the mount entry sets none. A credentials file
    is appended for CIFS shares only, and only when it exists on disk.
    """
    options = spec.default_options
    if spec.credentials and spec.kind == 'cifs':
        if Path(spec.credentials).is_file():
            options = f'{options},credentials={spec.credentials}'
        else:
            logger.warning(f"[mounts] Credentials file not found: {spec.credentials}")
    return options


@dataclass
class Engine:
    """Executes a Plan against lifecycle adapters.

    Attributes:
        plan: Validated orchestration plan
        adapters: Provider of VM, container and mount adapters
        dry_run: If True, preview operations without executing
        probe: Health probe used for the VM readiness check
        clock: Monotonic time source for bounded waits
        sleep: Sleep function for bounded waits and post-start delays
        poll_interval: Seconds between readiness checks
        vm_running_timeout: Seconds to wait for the VM to report running
    """
    plan: Plan
    adapters: AdapterProvider
    dry_run: bool = False
    probe: Callable[..., bool] = health_probe
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], None] = time.sleep
    poll_interval: float = POLL_INTERVAL
    vm_running_timeout: int = VM_RUNNING_TIMEOUT

    # -------------------------------------------------------------------------
    # Startup
    # -------------------------------------------------------------------------

    def start(self) -> ExecutionOutcome:
        """Run the startup sequence: VM -> mounts -> containers."""
        outcome = ExecutionOutcome('start')
        outcome.start()

        if self.dry_run:
            self._preview_start()
            outcome.finish()
            return outcome

        logger.info("Starting PVE Orchestrator...")

        if self.plan.vm is None:
            logger.warning("[vm] No storage VM configured, skipping...")
        elif not self._start_vm(outcome):
            logger.error("[vm] Storage VM not ready, mounts and containers not attempted")
            outcome.finish()
            return outcome

        self._start_mounts(outcome)
        self._start_containers(outcome)

        outcome.finish()
        logger.info(f"PVE Orchestrator startup complete ({outcome.status})")
        return outcome

    def _start_vm(self, outcome: ExecutionOutcome) -> bool:
        """Start the VM and wait for readiness. Returns False on fatal failure."""
        vm = self.plan.vm
        adapter = self.adapters.vm(vm)
        label = f"{vm.display_name} (VMID: {vm.vmid})"

        state = self._query_status(adapter)
        if state == NOT_FOUND:
            return self._fail_vm(outcome, RESOURCE_NOT_FOUND, f"VM {vm.vmid} does not exist")

        if state == RUNNING:
            logger.info(f"[vm] {label} is already running")
            status = ALREADY_RUNNING
        else:
            logger.info(f"[vm] Starting {label}...")
            try:
                adapter.start()
            except AdapterError as e:
                return self._fail_vm(outcome, e.kind, e.message)

            running = self._wait(
                f"VM {vm.vmid} to be running",
                self.vm_running_timeout,
                lambda: adapter.status() == RUNNING,
            )
            if not running:
                return self._fail_vm(
                    outcome, READINESS_TIMEOUT,
                    f"VM {vm.vmid} not running after {self.vm_running_timeout}s",
                )
            status = STARTED

        check = vm.health_check
        if check is not None:
            logger.info(f"[vm] Waiting for {vm.display_name} to be accessible...")
            healthy = self._wait(
                f"{vm.display_name} health check ({check.kind} {check.host})",
                check.timeout,
                lambda: self.probe(check.kind, check.host, check.port),
            )
            if not healthy:
                return self._fail_vm(
                    outcome, READINESS_TIMEOUT,
                    f"{vm.display_name} health check failed after {check.timeout}s",
                )

        outcome.record(VM, vm.vmid, vm.display_name, status)
        logger.info(f"[vm] {vm.display_name} is ready")
        return True

    def _fail_vm(self, outcome: ExecutionOutcome, reason: str, message: str) -> bool:
        vm = self.plan.vm
        logger.error(f"[vm] {message}")
        outcome.record(VM, vm.vmid, vm.display_name, FAILED, reason=reason, message=message)
        outcome.abort(message)
        return False

    def _start_mounts(self, outcome: ExecutionOutcome) -> None:
        if not self.plan.mounts:
            logger.info("[mounts] No mounts configured, skipping...")
            return

        mounts = self.adapters.mounts()
        logger.info(f"[mounts] Configuring {len(self.plan.mounts)} mount(s)...")

        for spec in self.plan.mounts:
            kind = spec.kind.upper()
            if mounts.is_mounted(spec.target):
                logger.info(f"[mounts] {kind} {spec.target} is already mounted")
                outcome.record(MOUNT, spec.target, spec.source, ALREADY_RUNNING)
                continue

            logger.info(f"[mounts] Mounting {kind} {spec.source} -> {spec.target}")
            try:
                mounts.ensure_mountpoint(spec.target)
                mounts.mount(spec.kind, spec.source, spec.target, mount_options(spec))
            except AdapterError as e:
                logger.error(f"[mounts] {e.message}")
                outcome.record(MOUNT, spec.target, spec.source, FAILED,
                               reason=MOUNT_FAILED, message=e.message)
                continue

            logger.info(f"[mounts] {kind} mounted successfully: {spec.target}")
            outcome.record(MOUNT, spec.target, spec.source, STARTED)

    def _start_containers(self, outcome: ExecutionOutcome) -> None:
        if not self.plan.containers:
            logger.info("[containers] No containers configured, skipping...")
            return

        mounts = self.adapters.mounts()
        logger.info(f"[containers] Starting {len(self.plan.containers)} container(s)...")

        for spec in self.plan.containers:
            label = f"{spec.display_name} ({spec.ctid})"
            dependency = spec.depends_on_mount

            if dependency and not mounts.is_mounted(dependency):
                message = f"depends on {dependency} which is not mounted"
                logger.warning(f"[containers] Container {label} {message}, skipping...")
                outcome.record(CONTAINER, spec.ctid, spec.display_name, SKIPPED,
                               reason=DEPENDENCY_UNMET, message=message)
                continue

            adapter = self.adapters.container(spec)
            state = self._query_status(adapter)
            if state == RUNNING:
                logger.info(f"[containers] Container {label} is already running")
                outcome.record(CONTAINER, spec.ctid, spec.display_name, ALREADY_RUNNING)
                continue
            if state == NOT_FOUND:
                message = f"Container {spec.ctid} does not exist"
                logger.error(f"[containers] {message}")
                outcome.record(CONTAINER, spec.ctid, spec.display_name, FAILED,
                               reason=RESOURCE_NOT_FOUND, message=message)
                continue

            logger.info(f"[containers] Starting container: {label}")
            try:
                adapter.start()
            except AdapterError as e:
                logger.error(f"[containers] Failed to start container {label}: {e.message}")
                outcome.record(CONTAINER, spec.ctid, spec.display_name, FAILED,
                               reason=e.kind, message=e.message)
                continue

            outcome.record(CONTAINER, spec.ctid, spec.display_name, STARTED)
            if spec.wait > 0:
                logger.debug(f"[containers] Waiting {spec.wait}s before next container...")
                self.sleep(spec.wait)

        logger.info("[containers] Container startup complete")

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------

    def stop(self) -> ExecutionOutcome:
        """Run the shutdown sequence: containers -> mounts -> VM, all reversed."""
        outcome = ExecutionOutcome('stop')
        outcome.start()

        if self.dry_run:
            self._preview_stop()
            outcome.finish()
            return outcome

        logger.info("Stopping PVE Orchestrator...")

        self._stop_containers(outcome)
        self._stop_mounts(outcome)
        if self.plan.vm is not None:
            vm = self.plan.vm
            self._stop_guest(
                outcome, VM, vm.vmid, vm.display_name,
                self.adapters.vm(vm), self.plan.shutdown.vm_timeout, '[vm]',
            )

        outcome.finish()
        logger.info(f"PVE Orchestrator shutdown complete ({outcome.status})")
        return outcome

    def _stop_containers(self, outcome: ExecutionOutcome) -> None:
        if not self.plan.containers:
            return

        timeout = self.plan.shutdown.container_timeout
        logger.info(f"[containers] Stopping {len(self.plan.containers)} container(s)...")
        for spec in reversed(self.plan.containers):
            self._stop_guest(
                outcome, CONTAINER, spec.ctid, spec.display_name,
                self.adapters.container(spec), timeout, '[containers]',
            )

    def _stop_mounts(self, outcome: ExecutionOutcome) -> None:
        if not self.plan.mounts:
            return
        if not self.plan.shutdown.unmount_shares:
            logger.info("[mounts] Skipping unmount (disabled in config)")
            return

        mounts = self.adapters.mounts()
        logger.info(f"[mounts] Unmounting {len(self.plan.mounts)} share(s)...")
        for spec in reversed(self.plan.mounts):
            if not mounts.is_mounted(spec.target):
                logger.debug(f"[mounts] {spec.target} is not mounted")
                outcome.record(MOUNT, spec.target, spec.source, ALREADY_STOPPED)
                continue

            logger.info(f"[mounts] Unmounting {spec.target}...")
            try:
                mounts.unmount(spec.target)
            except AdapterError as e:
                logger.error(f"[mounts] {e.message}")
                outcome.record(MOUNT, spec.target, spec.source, FAILED,
                               reason=e.kind, message=e.message)
                continue

            logger.info(f"[mounts] Unmounted successfully: {spec.target}")
            outcome.record(MOUNT, spec.target, spec.source, STOPPED)

    def _stop_guest(self, outcome: ExecutionOutcome, kind: str, ident: int, name: str,
                    adapter: LifecycleAdapter, timeout: int, prefix: str) -> None:
        """Graceful stop with forced fallback for a VM or container."""
        label = f"{name} ({ident})"
        state = self._query_status(adapter)

        if state == NOT_FOUND:
            logger.warning(f"{prefix} {label} does not exist")
            outcome.record(kind, ident, name, ALREADY_STOPPED,
                           reason=RESOURCE_NOT_FOUND, message='does not exist')
            return
        if state == STATE_STOPPED:
            logger.info(f"{prefix} {label} is already stopped")
            outcome.record(kind, ident, name, ALREADY_STOPPED)
            return

        logger.info(f"{prefix} Stopping {label} (timeout: {timeout}s)...")
        try:
            adapter.stop(timeout)
        except AdapterError as e:
            logger.warning(f"{prefix} Graceful shutdown failed ({e.message}), forcing stop...")
            try:
                adapter.kill()
            except AdapterError as kill_error:
                logger.error(f"{prefix} {kill_error.message}")
                outcome.record(kind, ident, name, FAILED,
                               reason=kill_error.kind, message=kill_error.message)
                return
            logger.info(f"{prefix} {label} force stopped")
            outcome.record(kind, ident, name, STOPPED, message='forced')
            return

        logger.info(f"{prefix} {label} stopped successfully")
        outcome.record(kind, ident, name, STOPPED)

    def restart(self) -> tuple[ExecutionOutcome, ExecutionOutcome]:
        """Stop everything, then start everything."""
        stop_outcome = self.stop()
        start_outcome = self.start()
        return stop_outcome, start_outcome

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def status(self) -> StatusSnapshot:
        """Read-only snapshot of every configured resource."""
        snapshot = StatusSnapshot()

        vm = self.plan.vm
        if vm is not None:
            snapshot.vm = ResourceStatus(
                VM, str(vm.vmid), vm.display_name,
                self._query_status(self.adapters.vm(vm)),
            )

        if self.plan.mounts:
            mounts = self.adapters.mounts()
            for spec in self.plan.mounts:
                state = MOUNTED if mounts.is_mounted(spec.target) else NOT_MOUNTED
                snapshot.mounts.append(ResourceStatus(MOUNT, spec.target, spec.source, state))

        for spec in self.plan.containers:
            snapshot.containers.append(ResourceStatus(
                CONTAINER, str(spec.ctid), spec.display_name,
                self._query_status(self.adapters.container(spec)),
            ))

        return snapshot

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _wait(self, description: str, timeout: float, predicate: Callable[[], bool]) -> WaitResult:
        return wait_for(
            description, timeout, predicate,
            interval=self.poll_interval, clock=self.clock, sleep=self.sleep,
        )

    @staticmethod
    def _query_status(adapter: LifecycleAdapter) -> str:
        try:
            return adapter.status()
        except AdapterError as e:
            logger.warning(f"Status query failed: {e.message}")
            return UNKNOWN

    def _preview_start(self) -> None:
        """Preview startup operations."""
        print("")
        print("=" * 65)
        print("  DRY-RUN START")
        if self.plan.source_path:
            print(f"  Plan: {self.plan.source_path}")
        print("=" * 65)
        print("")
        vm = self.plan.vm
        if vm is not None:
            print(f"  1. vm          start {vm.display_name} (VMID {vm.vmid}), "
                  f"wait running ({self.vm_running_timeout}s)")
            if vm.health_check:
                check = vm.health_check
                port = f":{check.port}" if check.port else ""
                print(f"                 health check {check.kind} {check.host}{port} ({check.timeout}s)")
        for spec in self.plan.mounts:
            print(f"  2. mount       {spec.kind} {spec.source} -> {spec.target} [{mount_options(spec)}]")
        for spec in self.plan.containers:
            gate = f" (requires {spec.depends_on_mount})" if spec.depends_on_mount else ""
            wait = f", wait {spec.wait}s" if spec.wait else ""
            print(f"  3. container   start {spec.display_name} ({spec.ctid}){gate}{wait}")
        print("")

    def _preview_stop(self) -> None:
        """Preview shutdown operations."""
        policy = self.plan.shutdown
        print("")
        print("=" * 65)
        print("  DRY-RUN STOP")
        if self.plan.source_path:
            print(f"  Plan: {self.plan.source_path}")
        print("=" * 65)
        print("")
        for spec in reversed(self.plan.containers):
            print(f"  1. container   stop {spec.display_name} ({spec.ctid}) "
                  f"(timeout {policy.container_timeout}s)")
        if policy.unmount_shares:
            for spec in reversed(self.plan.mounts):
                print(f"  2. mount       unmount {spec.target}")
        elif self.plan.mounts:
            print("  2. mount       (unmount disabled)")
        vm = self.plan.vm
        if vm is not None:
            print(f"  3. vm          stop {vm.display_name} (VMID {vm.vmid}) "
                  f"(timeout {policy.vm_timeout}s)")
        print("")
