from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_ASYNC_SCHEME = "postgresql+psycopg"


def normalize_database_url(url: str) -> str:
    """Point plain postgres URLs at the async psycopg driver and fold ``ssl=`` into ``sslmode``."""
    url = (url or "").strip()
    if not url:
        return url

    parts = urlsplit(url)
    scheme = parts.scheme
    if scheme in {"postgres", "postgresql", "postgresql+asyncpg"}:
        scheme = _ASYNC_SCHEME
    if not scheme.startswith("postgresql"):
        return url

    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    ssl_key = next((key for key in query if key.lower() == "ssl"), None)
    if ssl_key is not None:
        flag = query.pop(ssl_key).lower().strip()
        if "sslmode" not in query:
            if flag in {"0", "false", "no", "off", "disable"}:
                query["sslmode"] = "disable"
            elif flag in {"require", "verify-ca", "verify-full"}:
                query["sslmode"] = flag
            else:
                query["sslmode"] = "require"

    return urlunsplit((scheme, parts.netloc, parts.path, urlencode(query, doseq=True), parts.fragment))
