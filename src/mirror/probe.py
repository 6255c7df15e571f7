"""
Mirror Probes — Timed HTTP fetches against mirrors.

A probe never raises for network problems: a failed, refused, non-2xx,
malformed or over-budget fetch simply measures as 0 bytes/s (or no
latency).
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional

import httpx

from . import __version__

logger = logging.getLogger(__name__)

USER_AGENT = f"pacman-mirror-optimizer/{__version__}"

# Raised for unusable URLs; InvalidURL is not an HTTPError
PROBE_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


def make_client(
    connect_timeout: float = 5.0,
    total_timeout: float = 10.0,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """HTTP client configured with the probe timeouts."""
    return httpx.Client(
        timeout=httpx.Timeout(total_timeout, connect=connect_timeout),
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT},
        transport=transport,
    )


class _Transfer:
    """One streamed download, run on a worker thread."""

    def __init__(self, client: httpx.Client, url: str, total_timeout: float):
        self.client = client
        self.url = url
        self.total_timeout = total_timeout
        self.received = 0
        self.elapsed: Optional[float] = None
        self.abandoned = threading.Event()

    def run(self) -> None:
        # A stalled read ends the thread by itself after one budget at most
        timeout = httpx.Timeout(max(self.total_timeout, 0.0), connect=self.client.timeout.connect)
        start = time.monotonic()
        try:
            with self.client.stream("GET", self.url, timeout=timeout) as response:
                if not response.is_success:
                    logger.debug(f"{self.url}: HTTP {response.status_code}")
                    return
                for chunk in response.iter_bytes():
                    if self.abandoned.is_set():
                        return
                    self.received += len(chunk)
        except httpx.TimeoutException:
            logger.debug(f"{self.url}: timed out")
            return
        except PROBE_ERRORS as e:
            logger.debug(f"{self.url}: {type(e).__name__}: {e}")
            return
        self.elapsed = time.monotonic() - start


def measure_download_speed(
    client: httpx.Client,
    url: str,
    total_timeout: float = 10.0,
) -> int:
    """
    Download `url` once and return the average speed in bytes/s.

    The whole transfer must finish within `total_timeout` seconds. The
    caller stops waiting at that point even if a read is still blocked,
    and the transfer counts as a failure.
    """
    transfer = _Transfer(client, url, total_timeout)
    worker = threading.Thread(target=transfer.run, name="mirror-probe", daemon=True)
    worker.start()
    worker.join(max(total_timeout, 0.0))

    if worker.is_alive():
        transfer.abandoned.set()
        logger.debug(f"{url}: exceeded {total_timeout}s budget")
        return 0

    elapsed = transfer.elapsed
    if elapsed is None or transfer.received == 0:
        return 0
    if elapsed > total_timeout:
        return 0

    return int(round(transfer.received / max(elapsed, 1e-6)))


def measure_latency(client: httpx.Client, url: str) -> Optional[float]:
    """
    Time until response headers arrive for a HEAD request, in ms.

    Any HTTP status counts as a response; only transport failures
    return None.
    """
    start = time.monotonic()
    try:
        client.head(url)
    except PROBE_ERRORS as e:
        logger.debug(f"{url}: latency check failed: {e}")
        return None
    return round((time.monotonic() - start) * 1000, 1)
