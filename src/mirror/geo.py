"""
Country Detection — Guess the caller's country from a geo-IP service.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

GEO_URL = "https://ipapi.co/country_code/"

_CODE_RE = re.compile(r"^[A-Z]{2}$")


def detect_country(
    client: Optional[httpx.Client] = None,
    url: str = GEO_URL,
    timeout: float = 5.0,
) -> Optional[str]:
    """
    Return the two-letter country code for this host's public IP.

    Returns None when the service is unreachable or answers with anything
    other than a country code (rate limits answer with an error page).
    """
    try:
        if client is not None:
            resp = client.get(url, timeout=timeout)
        else:
            resp = httpx.get(url, timeout=timeout, follow_redirects=True)
    except httpx.HTTPError as e:
        logger.warning(f"Could not detect country automatically: {e}")
        return None

    if resp.status_code != 200:
        logger.warning(f"Country lookup returned HTTP {resp.status_code}")
        return None

    code = resp.text.strip().upper()
    if not _CODE_RE.match(code):
        logger.warning(f"Country lookup returned unexpected body: {resp.text[:40]!r}")
        return None

    logger.info(f"Detected country: {code}")
    return code
