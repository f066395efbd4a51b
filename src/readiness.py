"""Single-attempt health probes for the storage VM.

Each probe makes one bounded network attempt and reports True/False.
Probes never raise; retrying is left to common.wait_for.
"""

import logging
import socket
from typing import Optional

import requests
import urllib3

from common import run_command

# Suppress SSL warnings for self-signed certs
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 5


def check_ping(host: str) -> bool:
    """Send one ICMP echo request."""
    rc, _, _ = run_command(
        ['ping', '-c', '1', '-W', str(PROBE_TIMEOUT), host],
        timeout=PROBE_TIMEOUT + 2,
    )
    return rc == 0


def check_tcp_port(host: str, port: int) -> bool:
    """Attempt a TCP connection to host:port."""
    try:
        sock = socket.create_connection((host, port), timeout=PROBE_TIMEOUT)
        sock.close()
        return True
    except OSError as e:
        logger.debug(f"TCP connect to {host}:{port} failed: {e}")
        return False


def build_http_url(host: str, port: Optional[int] = None) -> str:
    """Build the URL probed by an http check.

    Host may already carry a scheme (https://nas.local); port is appended
    to the host part when given.
    """
    url = host if host.startswith(('http://', 'https://')) else f'http://{host}'
    if port is not None:
        url = f'{url.rstrip("/")}:{port}'
    return url


def check_http(url: str) -> bool:
    """GET url without auth; any 2xx or 3xx response counts as reachable."""
    try:
        resp = requests.get(
            url,
            verify=False,  # Self-signed cert
            timeout=PROBE_TIMEOUT,
            allow_redirects=False,
        )
    except requests.exceptions.RequestException as e:
        logger.debug(f"HTTP check {url} failed: {e}")
        return False
    return 200 <= resp.status_code < 400


def probe(kind: str, host: str, port: Optional[int] = None) -> bool:
    """Run one health check attempt.

    Args:
        kind: ping, tcp or http
        host: Hostname, IP or URL
        port: Port for tcp (required) or http (optional)

    Returns:
        True if the target responded
    """
    if kind == 'ping':
        return check_ping(host)
    if kind == 'tcp':
        if port is None:
            logger.error("TCP health check requires a port")
            return False
        return check_tcp_port(host, port)
    if kind == 'http':
        return check_http(build_http_url(host, port))

    logger.error(f"Unknown health check type: {kind}")
    return False
