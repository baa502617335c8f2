"""URL sanitization for values pulled from the remote system.

The transformer only depends on the UrlSanitizer callable; sanitize_url is
the default used when no sanitizer is injected.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from urllib.parse import urlsplit

UrlSanitizer = Callable[[str], str]

ALLOWED_SCHEMES = frozenset({"http", "https", "ftp", "ftps", "mailto", "tel", "sms"})

# Characters that can never appear in a stored URL.
_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9\-~+_.?#=!&;,/:%@$|*'()\[\]]")


def sanitize_url(url: str) -> str:
    """Return a URL safe to store locally, or "" if it cannot be made safe.

    Strips whitespace and characters outside the URL alphabet, prefixes bare
    host names with http://, and rejects schemes outside ALLOWED_SCHEMES
    (javascript:, data:, ...).
    """
    cleaned = _UNSAFE_CHARS.sub("", url.strip().replace(" ", "%20"))
    if not cleaned:
        return ""

    if ":" not in cleaned and not cleaned.startswith(("/", "#", "?")):
        cleaned = f"http://{cleaned}"

    scheme = urlsplit(cleaned).scheme.lower()
    if scheme and scheme not in ALLOWED_SCHEMES:
        return ""
    return cleaned
