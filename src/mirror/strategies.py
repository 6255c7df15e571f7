"""
Ranking Strategies — Interface for the two ways of ranking mirrors.

- DelegatedStrategy: hand the job to reflector, which tests and sorts
  mirrors from the Arch mirror status feed.
- ManualStrategy: time one download of a reference file per candidate
  and sort by measured speed.

The ranker tries strategies in order; a strategy signals "try the next
one" by raising DelegateUnavailable.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from ..models.mirror import MirrorCandidate, MirrorList, RankingMethod
from .errors import DelegateUnavailable
from .mirrorlist import dedupe, parse_servers, probe_url

logger = logging.getLogger(__name__)

# (done, total, url, speed_bytes_per_sec)
ProgressCallback = Callable[[int, int, str, int], None]


@dataclass
class RankingRequest:
    """Everything a strategy may need for one ranking run."""

    max_results: int
    country: Optional[str] = None
    protocol: str = "https"
    candidates: List[str] = field(default_factory=list)


class RankingStrategy(ABC):
    """
    Abstract base class for ranking strategies.

    Strategies produce a ranked MirrorList and never write the live
    mirrorlist themselves.
    """

    @property
    @abstractmethod
    def method(self) -> RankingMethod:
        """The method recorded in the RankingResult."""
        pass

    @abstractmethod
    def rank(self, request: RankingRequest) -> MirrorList:
        """
        Rank mirrors for the request.

        Raises:
            DelegateUnavailable: If this strategy cannot produce a list and
                the next strategy should be tried
        """
        pass


class DelegatedStrategy(RankingStrategy):
    """
    Rank mirrors with reflector.

    Succeeds only if reflector exits 0 and its saved list contains at
    least one server. Failures are not retried.
    """

    def __init__(
        self,
        command: str = "reflector",
        latest: int = 20,
        threads: int = 5,
        timeout: int = 300,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        which: Callable[[str], Optional[str]] = shutil.which,
    ):
        self.command = command
        self.latest = latest
        self.threads = threads
        self.timeout = timeout
        self._run = runner
        self._which = which

    @property
    def method(self) -> RankingMethod:
        return RankingMethod.DELEGATED

    def locate(self) -> Optional[str]:
        """Full path of the delegate binary, or None if it is not on PATH."""
        return self._which(self.command)

    def is_available(self) -> bool:
        return self.locate() is not None

    def build_command(self, save_path: Path, request: RankingRequest) -> List[str]:
        cmd = [
            self.command,
            "--save", str(save_path),
            "--protocol", request.protocol,
            "--latest", str(self.latest),
            "--sort", "rate",
            "--number", str(request.max_results),
            "--threads", str(self.threads),
        ]
        if request.country:
            cmd.extend(["--country", request.country])
        return cmd

    def rank(self, request: RankingRequest) -> MirrorList:
        with tempfile.TemporaryDirectory(prefix="mirror-optimizer-") as tmp:
            save_path = Path(tmp) / "mirrorlist"
            cmd = self.build_command(save_path, request)

            logger.info(f"Ranking mirrors using {self.command}")
            logger.debug(f"Running: {' '.join(cmd)}")

            try:
                result = self._run(
                    cmd,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                )
            except FileNotFoundError:
                raise DelegateUnavailable(f"{self.command} is not installed")
            except subprocess.TimeoutExpired:
                raise DelegateUnavailable(f"{self.command} timed out after {self.timeout}s")
            except OSError as e:
                raise DelegateUnavailable(f"{self.command} could not be started: {e}")

            if result.returncode != 0:
                error = (result.stderr or result.stdout or "").strip()
                raise DelegateUnavailable(
                    f"{self.command} exited with status {result.returncode}",
                    details={"stderr": error[-500:]},
                )

            text = save_path.read_text(encoding="utf-8") if save_path.exists() else ""

        urls = dedupe(parse_servers(text))[: request.max_results]
        if not urls:
            raise DelegateUnavailable(f"{self.command} produced an empty mirror list")

        logger.info(f"{self.command} ranked {len(urls)} mirror(s)")
        return MirrorList(
            entries=[MirrorCandidate(url=url) for url in urls],
            max_length=request.max_results,
        )


class ManualStrategy(RankingStrategy):
    """
    Rank mirrors by timing one download of a reference file each.

    Candidates that fail or time out measure 0 and are dropped, even if
    that leaves fewer than max_results mirrors. Equal speeds keep their
    original order.
    """

    def __init__(
        self,
        probe: Callable[[str], int],
        arch: str = "x86_64",
        reference_file: str = "core.db",
        workers: int = 1,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.probe = probe
        self.arch = arch
        self.reference_file = reference_file
        self.workers = max(1, workers)
        self.on_progress = on_progress

    @property
    def method(self) -> RankingMethod:
        return RankingMethod.MANUAL

    def measure_all(self, servers: List[str]) -> List[MirrorCandidate]:
        """Measure every server; results are in input order."""
        total = len(servers)

        def measure(server: str) -> int:
            url = probe_url(server, self.arch, self.reference_file)
            speed = max(0, int(self.probe(url)))
            logger.debug(f"{server}: {speed} B/s")
            return speed

        if self.workers > 1 and total > 1:
            with ThreadPoolExecutor(max_workers=min(self.workers, total)) as executor:
                speeds = executor.map(measure, servers)
                candidates = self._collect(servers, speeds, total)
        else:
            candidates = self._collect(servers, map(measure, servers), total)

        return candidates

    def _collect(self, servers, speeds, total: int) -> List[MirrorCandidate]:
        candidates = []
        for done, (server, speed) in enumerate(zip(servers, speeds), start=1):
            candidates.append(MirrorCandidate(url=server, measured_speed_bytes_per_sec=speed))
            if self.on_progress:
                self.on_progress(done, total, server, speed)
        return candidates

    def rank(self, request: RankingRequest) -> MirrorList:
        servers = dedupe(request.candidates)
        logger.info(f"Testing {len(servers)} mirror(s) manually")

        measured = self.measure_all(servers)
        return select_fastest(measured, request.max_results)


def select_fastest(candidates: List[MirrorCandidate], max_results: int) -> MirrorList:
    """
    Order candidates by descending speed and keep the best `max_results`.

    Zero-speed candidates are never selected. The sort is stable, so ties
    keep their input order.
    """
    reachable = [c for c in candidates if c.reachable]
    ranked = sorted(reachable, key=lambda c: c.measured_speed_bytes_per_sec, reverse=True)
    return MirrorList(entries=ranked[:max_results], max_length=max_results)
