"""
Request checksums.

Two requests that must return the same upstream data must hash to the same
key: domains are compared case-insensitively.
"""

import hashlib
from typing import Optional


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def competitor_checksum(
    your_domain: str,
    competitor_domain: str,
    location_code: Optional[int],
    language_code: Optional[str],
    limit: Optional[int],
) -> str:
    """
    SHA-256 of ``lower(your)|lower(competitor)|location|language|limit``.

    Missing optional values hash as empty strings.
    """
    parts = [
        (your_domain or "").lower(),
        (competitor_domain or "").lower(),
        "" if location_code is None else str(location_code),
        language_code or "",
        "" if limit is None else str(limit),
    ]
    return _sha256("|".join(parts))
