"""
Tests for ranking strategies — delegated (reflector) and manual speed tests.
"""

from __future__ import annotations

import subprocess
import threading
import time
from pathlib import Path

import httpx
import pytest

from src.mirror.errors import DelegateUnavailable
from src.mirror.probe import make_client, measure_download_speed
from src.mirror.strategies import (
    DelegatedStrategy,
    ManualStrategy,
    RankingRequest,
    select_fastest,
)
from src.models.mirror import MirrorCandidate, RankingMethod


def _speeds_probe(speeds):
    """Probe returning a fixed speed per mirror host."""

    def probe(url: str) -> int:
        for host, speed in speeds.items():
            if f"//{host}/" in url:
                return speed
        raise AssertionError(f"unexpected probe {url}")

    return probe


class FakeRunner:
    """Stand-in for subprocess.run that writes a mirrorlist to --save."""

    def __init__(self, output: str = "", returncode: int = 0, raises=None):
        self.output = output
        self.returncode = returncode
        self.raises = raises
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        if self.raises is not None:
            raise self.raises
        save = Path(cmd[cmd.index("--save") + 1])
        if self.output:
            save.write_text(self.output)
        return subprocess.CompletedProcess(cmd, self.returncode, stdout="", stderr="boom")


class TestSelectFastest:
    """Tests for select_fastest."""

    def _candidates(self, speeds):
        return [
            MirrorCandidate(url=f"https://m{i}.example/", measured_speed_bytes_per_sec=s)
            for i, s in enumerate(speeds)
        ]

    def test_orders_by_speed_and_truncates(self):
        result = select_fastest(self._candidates([5, 0, 10, 3]), 2)
        assert [c.measured_speed_bytes_per_sec for c in result.entries] == [10, 5]
        assert result.urls == ["https://m2.example/", "https://m0.example/"]

    def test_zero_speed_never_selected(self):
        result = select_fastest(self._candidates([0, 0, 7]), 3)
        assert result.urls == ["https://m2.example/"]
        assert all(c.measured_speed_bytes_per_sec > 0 for c in result.entries)

    def test_all_unreachable(self):
        assert select_fastest(self._candidates([0, 0]), 5).is_empty

    def test_ties_keep_input_order(self):
        result = select_fastest(self._candidates([4, 9, 4, 4]), 4)
        assert result.urls == [
            "https://m1.example/",
            "https://m0.example/",
            "https://m2.example/",
            "https://m3.example/",
        ]

    def test_fewer_than_max(self):
        assert len(select_fastest(self._candidates([1, 2]), 10)) == 2


class TestManualStrategy:
    """Tests for ManualStrategy."""

    SPEEDS = {"a.example": 500, "b.example": 0, "c.example": 2000, "d.example": 1000}

    def _servers(self):
        return [f"https://{host}/$repo/os/$arch" for host in self.SPEEDS]

    def test_method(self):
        assert ManualStrategy(probe=lambda url: 1).method == RankingMethod.MANUAL

    def test_rank(self):
        strategy = ManualStrategy(probe=_speeds_probe(self.SPEEDS))
        result = strategy.rank(RankingRequest(max_results=2, candidates=self._servers()))
        assert result.urls == [
            "https://c.example/$repo/os/$arch",
            "https://d.example/$repo/os/$arch",
        ]

    def test_probes_reference_file(self):
        seen = []

        def probe(url):
            seen.append(url)
            return 1

        strategy = ManualStrategy(probe=probe, arch="aarch64", reference_file="core.db")
        strategy.rank(RankingRequest(max_results=1, candidates=["https://a.example/$repo/os/$arch"]))
        assert seen == ["https://a.example/core/os/aarch64/core.db"]

    def test_duplicates_measured_once(self):
        calls = []

        def probe(url):
            calls.append(url)
            return 10

        strategy = ManualStrategy(probe=probe)
        servers = ["https://a.example/", "https://a.example/"]
        result = strategy.rank(RankingRequest(max_results=5, candidates=servers))
        assert len(calls) == 1
        assert result.urls == ["https://a.example/"]

    def test_negative_probe_treated_as_zero(self):
        strategy = ManualStrategy(probe=lambda url: -5)
        result = strategy.rank(RankingRequest(max_results=3, candidates=["https://a.example/"]))
        assert result.is_empty

    def test_empty_candidates(self):
        strategy = ManualStrategy(probe=lambda url: 1)
        assert strategy.rank(RankingRequest(max_results=3)).is_empty

    def test_progress_callback(self):
        progress = []
        strategy = ManualStrategy(
            probe=_speeds_probe(self.SPEEDS),
            on_progress=lambda done, total, url, speed: progress.append((done, total, speed)),
        )
        strategy.rank(RankingRequest(max_results=4, candidates=self._servers()))
        assert progress == [(1, 4, 500), (2, 4, 0), (3, 4, 2000), (4, 4, 1000)]

    def test_parallel_matches_sequential(self):
        """Completion order must not change the ranking."""
        delays = {"a.example": 0.05, "b.example": 0.0, "c.example": 0.03, "d.example": 0.01}
        base = _speeds_probe(self.SPEEDS)

        def slow_probe(url):
            for host, delay in delays.items():
                if f"//{host}/" in url:
                    time.sleep(delay)
            return base(url)

        request = RankingRequest(max_results=3, candidates=self._servers())
        sequential = ManualStrategy(probe=base, workers=1).rank(request)
        parallel = ManualStrategy(probe=slow_probe, workers=4).rank(request)

        assert parallel.urls == sequential.urls

    def test_parallel_runs_concurrently(self):
        active = []
        peak = []
        lock = threading.Lock()

        def probe(url):
            with lock:
                active.append(url)
                peak.append(len(active))
            time.sleep(0.05)
            with lock:
                active.remove(url)
            return 1

        servers = [f"https://m{i}.example/" for i in range(4)]
        ManualStrategy(probe=probe, workers=4).rank(RankingRequest(max_results=4, candidates=servers))
        assert max(peak) > 1

    def test_malformed_server_scores_zero(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"x" * 1000))
        good = "https://good.example/$repo/os/$arch"
        with make_client(transport=transport) as client:
            strategy = ManualStrategy(probe=lambda url: measure_download_speed(client, url))
            result = strategy.rank(
                RankingRequest(max_results=5, candidates=[good, "http://[::1/$repo/os/$arch"])
            )
        assert result.urls == [good]


class TestDelegatedStrategy:
    """Tests for DelegatedStrategy."""

    OUTPUT = (
        "# reflector output\n"
        "Server = https://x.example/$repo/os/$arch\n"
        "Server = https://y.example/$repo/os/$arch\n"
        "Server = https://x.example/$repo/os/$arch\n"
        "Server = https://z.example/$repo/os/$arch\n"
    )

    def test_method(self):
        assert DelegatedStrategy().method == RankingMethod.DELEGATED

    def test_build_command(self):
        strategy = DelegatedStrategy(latest=20, threads=5)
        cmd = strategy.build_command(
            Path("/tmp/out"), RankingRequest(max_results=10, country="DE", protocol="https")
        )
        assert cmd == [
            "reflector",
            "--save", "/tmp/out",
            "--protocol", "https",
            "--latest", "20",
            "--sort", "rate",
            "--number", "10",
            "--threads", "5",
            "--country", "DE",
        ]

    def test_build_command_without_country(self):
        cmd = DelegatedStrategy().build_command(Path("/tmp/out"), RankingRequest(max_results=3))
        assert "--country" not in cmd

    def test_rank_parses_saved_output(self):
        runner = FakeRunner(output=self.OUTPUT)
        result = DelegatedStrategy(runner=runner).rank(RankingRequest(max_results=10))
        assert result.urls == [
            "https://x.example/$repo/os/$arch",
            "https://y.example/$repo/os/$arch",
            "https://z.example/$repo/os/$arch",
        ]
        assert all(e.measured_speed_bytes_per_sec == 0 for e in result.entries)

    def test_rank_truncates(self):
        runner = FakeRunner(output=self.OUTPUT)
        result = DelegatedStrategy(runner=runner).rank(RankingRequest(max_results=1))
        assert result.urls == ["https://x.example/$repo/os/$arch"]

    def test_nonzero_exit(self):
        runner = FakeRunner(output=self.OUTPUT, returncode=1)
        with pytest.raises(DelegateUnavailable) as exc:
            DelegatedStrategy(runner=runner).rank(RankingRequest(max_results=5))
        assert exc.value.details["stderr"] == "boom"

    def test_empty_output(self):
        with pytest.raises(DelegateUnavailable):
            DelegatedStrategy(runner=FakeRunner(output="")).rank(RankingRequest(max_results=5))

    def test_only_comments(self):
        runner = FakeRunner(output="#Server = https://x.example/\n")
        with pytest.raises(DelegateUnavailable):
            DelegatedStrategy(runner=runner).rank(RankingRequest(max_results=5))

    def test_not_installed(self):
        runner = FakeRunner(raises=FileNotFoundError("reflector"))
        with pytest.raises(DelegateUnavailable, match="not installed"):
            DelegatedStrategy(runner=runner).rank(RankingRequest(max_results=5))

    def test_timeout(self):
        runner = FakeRunner(raises=subprocess.TimeoutExpired("reflector", 1))
        with pytest.raises(DelegateUnavailable, match="timed out"):
            DelegatedStrategy(timeout=1, runner=runner).rank(RankingRequest(max_results=5))

    def test_real_missing_binary(self):
        strategy = DelegatedStrategy(command="definitely-not-a-real-reflector")
        assert strategy.is_available() is False
        with pytest.raises(DelegateUnavailable):
            strategy.rank(RankingRequest(max_results=5))

    def test_locate_uses_lookup(self):
        strategy = DelegatedStrategy(which=lambda cmd: f"/usr/bin/{cmd}")
        assert strategy.locate() == "/usr/bin/reflector"
        assert strategy.is_available() is True
