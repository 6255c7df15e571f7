"""
Mirrorlist Format — Parse and render pacman mirrorlist files.

Only active `Server = <url>` lines are candidates; commented servers
(`#Server = ...`) are ignored. URLs may contain the `$repo` and `$arch`
placeholders pacman expands at runtime.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Iterable, List, Optional
from urllib.parse import urlparse

from ..models.mirror import MirrorList, RankingMethod

SERVER_RE = re.compile(r"^Server\s*=\s*(\S.*?)\s*$")

PROBE_REPO = "core"


def parse_servers(text: str) -> List[str]:
    """
    Extract server URLs from mirrorlist text, in file order.

    Duplicates are dropped (first occurrence wins).
    """
    servers: List[str] = []
    seen = set()
    for line in text.splitlines():
        match = SERVER_RE.match(line.strip())
        if not match:
            continue
        url = match.group(1)
        if url in seen:
            continue
        seen.add(url)
        servers.append(url)
    return servers


def dedupe(urls: Iterable[str]) -> List[str]:
    """Drop repeated URLs, keeping the first occurrence."""
    seen = set()
    result = []
    for url in urls:
        if url not in seen:
            seen.add(url)
            result.append(url)
    return result


def render_mirrorlist(
    mirrors: MirrorList,
    method: RankingMethod,
    generated_at: Optional[datetime] = None,
) -> str:
    """Render a ranked list as mirrorlist text."""
    when = (generated_at or datetime.now()).strftime("%a %b %d %H:%M:%S %Y")
    lines = [
        "##",
        f"## Arch Linux mirrorlist - Optimized on {when}",
        f"## Ranking method: {method.value}",
        "##",
        "",
    ]
    lines.extend(f"Server = {url}" for url in mirrors.urls)
    return "\n".join(lines) + "\n"


def expand_placeholders(server: str, arch: str, repo: str = PROBE_REPO) -> str:
    """Substitute the pacman `$repo` / `$arch` placeholders."""
    return server.replace("$repo", repo).replace("$arch", arch)


def probe_url(server: str, arch: str, reference_file: str) -> str:
    """
    Build the URL of the fixed reference object for a server.

    `https://host/$repo/os/$arch` becomes
    `https://host/core/os/x86_64/core.db`.
    """
    base = expand_placeholders(server, arch).rstrip("/")
    return f"{base}/{reference_file.lstrip('/')}"


def server_host(server: str) -> str:
    """Hostname of a server URL (the raw string if it has none or is malformed)."""
    try:
        host = urlparse(server).hostname
    except ValueError:
        return server
    return host or server


def server_root(server: str) -> str:
    """Scheme and host of a server URL, used for latency checks."""
    try:
        parsed = urlparse(server)
    except ValueError:
        return server
    if not parsed.scheme or not parsed.netloc:
        return server
    return f"{parsed.scheme}://{parsed.netloc}/"
