from __future__ import annotations

import urllib.parse


def is_valid_redirect_uri(uri: str) -> bool:
    """Absolute URI with a scheme and host, and no fragment."""
    try:
        parsed = urllib.parse.urlparse(uri)
    except ValueError:
        return False
    if not parsed.scheme or not parsed.netloc:
        return False
    return not parsed.fragment


def append_query_params(url: str, params: dict[str, str]) -> str:
    """Append ``params`` after any existing query, leaving that query as is."""
    parsed = urllib.parse.urlsplit(url)
    extra = urllib.parse.urlencode(params)
    query = f"{parsed.query}&{extra}" if parsed.query else extra
    return urllib.parse.urlunsplit(parsed._replace(query=query))
