"""
Domain normalization.

Callers type domains in every shape imaginable ("https://www.Site.com/blog",
"site.com:443", " WWW.site.com "). Everything downstream (checksums, gap
comparison, upstream targets) works on the bare lower-cased host.
"""

import re
from typing import Optional

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


def normalize_domain(domain: Optional[str]) -> str:
    """
    Reduce a user-supplied domain or URL to its bare host.

    Strips the scheme, a leading ``www.``, any path/query/fragment, a port and
    trailing dots, then lower-cases.

    Examples:
        >>> normalize_domain("https://www.Example.com/path?q=1")
        'example.com'
        >>> normalize_domain("www.rival.org/path")
        'rival.org'

    Returns:
        Normalized host, or an empty string when nothing usable remains.
    """
    if not domain:
        return ""

    value = domain.strip().lower()
    value = _SCHEME_RE.sub("", value)

    # Cut at the first path, query or fragment separator
    for separator in ("/", "?", "#"):
        value = value.split(separator, 1)[0]

    # Drop credentials and port
    value = value.rsplit("@", 1)[-1]
    value = value.split(":", 1)[0]

    if value.startswith("www."):
        value = value[4:]

    return value.strip(".")
