"""Common utilities: command execution and bounded polling."""

import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)

# Default interval between readiness checks
POLL_INTERVAL = 5


@dataclass
class WaitResult:
    """Result of a bounded wait.

    Truthy when the predicate succeeded before the deadline.
    """
    ready: bool
    elapsed: float = 0.0
    attempts: int = 0

    def __bool__(self) -> bool:
        return self.ready


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: int = 600,
    capture: bool = True,
    env: Optional[dict] = None
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr)."""
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=capture,
            text=True,
            timeout=timeout,
            env=env,
            check=False  # We handle return codes explicitly
        )
        return result.returncode, result.stdout, result.stderr
    except subprocess.TimeoutExpired:
        return -1, '', f'Command timed out after {timeout}s'
    except OSError as e:
        return -1, '', str(e)


def wait_for(
    description: str,
    timeout: float,
    predicate: Callable[[], bool],
    interval: float = POLL_INTERVAL,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> WaitResult:
    """Call predicate until it returns True or the timeout expires.

    The predicate runs once immediately, then after every interval. A new
    attempt is never started once the deadline has passed, but an attempt
    that started before the deadline is honored even if it returns late.

    Args:
        description: Human-readable name for log messages
        timeout: Overall deadline in seconds
        predicate: Zero-argument callable returning truthy on success
        interval: Seconds to sleep between attempts
        clock: Monotonic time source (injectable for tests)
        sleep: Sleep function (injectable for tests)

    Returns:
        WaitResult (truthy if ready)
    """
    logger.info(f"Waiting for {description} (timeout: {timeout}s)...")
    start = clock()
    attempts = 0

    while True:
        attempts += 1
        try:
            ok = predicate()
        except Exception as e:
            logger.debug(f"Check for {description} raised: {e}")
            ok = False

        elapsed = clock() - start
        if ok:
            logger.info(f"{description} - ready")
            return WaitResult(ready=True, elapsed=elapsed, attempts=attempts)

        if elapsed >= timeout:
            break

        sleep(interval)
        elapsed = clock() - start
        if elapsed >= timeout:
            break
        logger.debug(f"Still waiting for {description}... ({elapsed:.0f}s/{timeout}s)")

    logger.error(f"Timeout waiting for {description}")
    return WaitResult(ready=False, elapsed=clock() - start, attempts=attempts)
