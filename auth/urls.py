from __future__ import annotations

import urllib.parse
from collections.abc import Iterable


def is_same_origin_return_url(return_url: str, allowed_origins: Iterable[str] = ()) -> bool:
    """Accept a relative path, or an absolute URL on one of ``allowed_origins``."""
    if return_url.startswith("//"):
        return False
    if return_url.startswith("/"):
        return True

    parsed = urllib.parse.urlparse(return_url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        return False
    origin = f"{parsed.scheme}://{parsed.netloc}".lower()
    return origin in {allowed.rstrip("/").lower() for allowed in allowed_origins}


def is_allowed_authorize_url(url: str) -> bool:
    parsed = urllib.parse.urlparse(url)
    if not parsed.netloc:
        return False
    if parsed.scheme == "https":
        return True
    return parsed.scheme == "http" and parsed.hostname in {"localhost", "127.0.0.1"}
