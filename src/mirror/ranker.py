"""
Mirror Ranker — Orchestrates ranking, fallback and mirrorlist updates.

This is the main entry point for mirror operations. It chains the
delegated and manual strategies, guards the live mirrorlist, and records
what happened in the operation ledger.

## Usage from other modules:

    from src.mirror.ranker import MirrorRanker

    with MirrorRanker.from_settings(settings) as ranker:
        result = ranker.optimize(country="DE")
        print(result.method_used, result.mirrors.urls)

## Failure semantics

- Delegate failure: logged, then manual ranking over the current
  mirrorlist's servers.
- No usable mirror from either path: NoMirrorsRanked, nothing written.
- Backup of the previous list fails: BackupWriteFailed, nothing written.
- Writing the new list fails: MirrorlistWriteFailed, previous list intact.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

import httpx

from ..config.loader import Settings
from ..models.mirror import BackupInfo, BenchmarkEntry, MirrorList, RankingMethod, RankingResult
from ..persistence.ledger import OperationLedger
from .errors import (
    AllCandidatesUnreachable,
    BackupWriteFailed,
    DelegateUnavailable,
    MirrorlistMissing,
    MirrorlistWriteFailed,
    NoMirrorsRanked,
)
from .mirrorlist import probe_url, render_mirrorlist, server_host, server_root
from .probe import make_client, measure_download_speed, measure_latency
from .store import MirrorlistStore
from .strategies import (
    DelegatedStrategy,
    ManualStrategy,
    ProgressCallback,
    RankingRequest,
    RankingStrategy,
)

logger = logging.getLogger(__name__)


class MirrorRanker:
    """
    Ranks mirrors and replaces the live mirrorlist with the result.

    Strategies are tried in a fixed order: the delegate (if any), then
    manual ranking over the current mirrorlist.
    """

    def __init__(
        self,
        store: MirrorlistStore,
        manual: ManualStrategy,
        delegate: Optional[RankingStrategy] = None,
        ledger: Optional[OperationLedger] = None,
        latency_probe: Optional[Callable[[str], Optional[float]]] = None,
        protocol: str = "https",
        max_results: int = 10,
        country: Optional[str] = None,
        relax_country: bool = False,
        client: Optional[httpx.Client] = None,
    ):
        self.store = store
        self.manual = manual
        self.delegate = delegate
        self.ledger = ledger or OperationLedger(None)
        self.latency_probe = latency_probe or (lambda url: None)
        self.protocol = protocol
        self.max_results = max_results
        self.country = country
        self.relax_country = relax_country
        self._client = client

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        on_progress: Optional[ProgressCallback] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> "MirrorRanker":
        """Create a ranker (and its HTTP client) from settings."""
        client = make_client(
            connect_timeout=settings.connect_timeout,
            total_timeout=settings.total_timeout,
            transport=transport,
        )
        ledger = OperationLedger(settings.ledger_path)
        store = MirrorlistStore(
            settings.mirrorlist_path,
            settings.backup_dir,
            retention=settings.backup_retention,
            ledger=ledger,
        )
        manual = ManualStrategy(
            probe=lambda url: measure_download_speed(client, url, settings.total_timeout),
            arch=settings.arch,
            reference_file=settings.reference_file,
            workers=settings.workers,
            on_progress=on_progress,
        )
        delegate = DelegatedStrategy(
            command=settings.delegate_command,
            latest=settings.delegate_latest,
            threads=settings.delegate_threads,
            timeout=settings.delegate_timeout,
        )
        return cls(
            store=store,
            manual=manual,
            delegate=delegate,
            ledger=ledger,
            latency_probe=lambda url: measure_latency(client, url),
            protocol=settings.protocol,
            max_results=settings.max_mirrors,
            country=settings.country,
            relax_country=settings.relax_country,
            client=client,
        )

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "MirrorRanker":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ─── Ranking ────────────────────────────────────────────

    def rank_via_delegate(
        self,
        country: Optional[str],
        protocol: str,
        max_results: int,
    ) -> MirrorList:
        """
        Rank with the external tool.

        Raises:
            DelegateUnavailable: Tool missing, non-zero exit, or empty output
        """
        if self.delegate is None:
            raise DelegateUnavailable("No delegate ranking tool configured")
        request = RankingRequest(max_results=max_results, country=country, protocol=protocol)
        return self.delegate.rank(request)

    def rank_manually(self, candidates: List[str], max_results: int) -> MirrorList:
        """Rank candidates by one timed download each; may return an empty list."""
        request = RankingRequest(max_results=max_results, candidates=list(candidates))
        return self.manual.rank(request)

    def _try_delegate(
        self,
        country: Optional[str],
        protocol: str,
        max_results: int,
    ) -> Optional[MirrorList]:
        attempts = [country]
        if country and self.relax_country:
            attempts.append(None)

        for attempt_country in attempts:
            try:
                mirrors = self.rank_via_delegate(attempt_country, protocol, max_results)
                logger.info("Mirrors ranked successfully with delegate")
                return mirrors
            except DelegateUnavailable as e:
                logger.warning(f"Delegate ranking failed: {e}", extra={"method": RankingMethod.DELEGATED.value})
                self.ledger.emit(
                    "delegate_failed",
                    level="warning",
                    details={"error": str(e), "country": attempt_country, **e.details},
                )
        return None

    def optimize(
        self,
        country: Optional[str] = None,
        protocol: Optional[str] = None,
        max_results: Optional[int] = None,
        use_delegate: bool = True,
        dry_run: bool = False,
    ) -> RankingResult:
        """
        Rank mirrors and make the result the live mirrorlist.

        Args:
            country: Country filter for the delegate (defaults to settings)
            protocol: Protocol filter for the delegate (defaults to settings)
            max_results: Maximum mirrors to keep (defaults to settings)
            use_delegate: False skips straight to manual ranking
            dry_run: Rank but do not write anything

        Raises:
            NoMirrorsRanked: Neither path produced a usable mirror
            MirrorlistMissing: Manual fallback needed the current list and
                it could not be read
            BackupWriteFailed: The previous list could not be backed up
            MirrorlistWriteFailed: The new list could not be written
        """
        country = country if country is not None else self.country
        protocol = protocol or self.protocol
        max_results = max_results or self.max_results

        self.ledger.emit(
            "optimize_start",
            details={
                "country": country,
                "protocol": protocol,
                "max_results": max_results,
                "use_delegate": use_delegate,
                "dry_run": dry_run,
            },
        )

        mirrors = self._try_delegate(country, protocol, max_results) if use_delegate else None

        if mirrors is not None:
            method = self.delegate.method
        else:
            method = self.manual.method
            logger.info("Falling back to manual speed testing", extra={"method": method.value})
            self.ledger.emit("fallback_manual", details={"reason": "delegate" if use_delegate else "requested"})
            candidates = self._manual_candidates()
            mirrors = self.rank_manually(candidates, max_results)

        if mirrors.is_empty:
            self.ledger.emit("optimize_failed", level="error", details={"reason": "no_mirrors"})
            raise NoMirrorsRanked(
                "No mirror responded to the speed test; mirrorlist left unchanged",
                details={"method": method.value},
            )

        if dry_run:
            logger.info(f"Dry run: ranked {len(mirrors)} mirror(s), nothing written")
            return RankingResult(mirrors=mirrors, method_used=method)

        content = render_mirrorlist(mirrors, method)
        try:
            backup_path = self.store.replace(content)
        except BackupWriteFailed as e:
            self.ledger.emit("optimize_failed", level="error", details={"reason": "backup", "error": str(e)})
            raise
        except MirrorlistWriteFailed as e:
            self.ledger.emit("optimize_failed", level="error", details={"reason": "write", "error": str(e)})
            raise

        self.ledger.emit(
            "mirrorlist_replaced",
            details={
                "method": method.value,
                "count": len(mirrors),
                "backup": str(backup_path) if backup_path else None,
            },
        )
        logger.info(f"Mirrorlist updated with {len(mirrors)} mirror(s) ({method.value})")

        return RankingResult(
            mirrors=mirrors,
            method_used=method,
            written=True,
            backup_path=str(backup_path) if backup_path else None,
        )

    def _manual_candidates(self) -> List[str]:
        candidates = self.store.servers()
        if not candidates:
            self.ledger.emit("optimize_failed", level="error", details={"reason": "no_candidates"})
            raise AllCandidatesUnreachable(f"No mirrors found in {self.store.path}")
        return candidates

    # ─── Inspection / recovery ──────────────────────────────

    def benchmark(self, count: int = 5) -> List[BenchmarkEntry]:
        """
        Measure speed and latency of the first `count` configured mirrors.

        Raises:
            MirrorlistMissing: The mirrorlist is missing or has no servers
        """
        servers = self.store.servers()[:count]
        if not servers:
            raise MirrorlistMissing(f"No servers found in {self.store.path}")

        entries = []
        for server in servers:
            url = probe_url(server, self.manual.arch, self.manual.reference_file)
            speed = max(0, int(self.manual.probe(url)))
            latency = self.latency_probe(server_root(server))
            entries.append(
                BenchmarkEntry(
                    url=server,
                    host=server_host(server),
                    speed_bytes_per_sec=speed,
                    latency_ms=latency,
                )
            )
        return entries

    def list_backups(self) -> List[BackupInfo]:
        return self.store.list_backups()

    def restore(self, backup_id: str) -> BackupInfo:
        """Make a backup the live mirrorlist (see MirrorlistStore.restore)."""
        return self.store.restore(backup_id)
