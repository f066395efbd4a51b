"""Host mount table adapter (mountpoint/mount/umount)."""

import logging
from pathlib import Path

from adapters.base import MOUNT_FAILED, UNMOUNT_FAILED, AdapterError
from common import run_command

logger = logging.getLogger(__name__)

MOUNT_TIMEOUT = 60


class HostMountAdapter:
    """Mounts NFS/CIFS shares on the local host."""

    def is_mounted(self, target: str) -> bool:
        rc, _, _ = run_command(['mountpoint', '-q', target], timeout=10)
        return rc == 0

    def ensure_mountpoint(self, target: str) -> None:
        path = Path(target)
        if path.is_dir():
            return
        logger.debug(f"Creating mount point: {target}")
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise AdapterError(MOUNT_FAILED, f"Cannot create mount point {target}: {e}")

    def mount(self, kind: str, source: str, target: str, options: str) -> None:
        rc, _, err = run_command(
            ['mount', '-t', kind, '-o', options, source, target],
            timeout=MOUNT_TIMEOUT,
        )
        if rc != 0:
            raise AdapterError(
                MOUNT_FAILED,
                f"Failed to mount {kind.upper()}: {source} -> {target}: {err.strip() or f'exit {rc}'}",
            )

    def unmount(self, target: str) -> None:
        rc, _, err = run_command(['umount', target], timeout=MOUNT_TIMEOUT)
        if rc != 0:
            raise AdapterError(
                UNMOUNT_FAILED,
                f"Failed to unmount {target}: {err.strip() or f'exit {rc}'}",
            )
