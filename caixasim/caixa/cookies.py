"""
Minimal cookie jar for one remote session.
Replays name=value pairs only; expiry, path and domain are ignored.
"""
from typing import Any, Dict, List


def _set_cookie_values(headers: Any) -> List[str]:
    for accessor in ("getlist", "get_all"):
        getter = getattr(headers, accessor, None)
        if callable(getter):
            values = getter("Set-Cookie") or []
            if values:
                return list(values)

    # Transports that only expose a single combined header
    combined = headers.get("set-cookie") if hasattr(headers, "get") else None
    return [combined] if combined else []


class CookieJar:
    """Captures Set-Cookie headers and serializes them back as a Cookie header."""

    def __init__(self):
        self._values: Dict[str, str] = {}

    def ingest(self, headers: Any) -> None:
        """Stores every cookie found in the response headers, overwriting by name."""
        if headers is None:
            return

        for cookie in _set_cookie_values(headers):
            first_part = cookie.split(";", 1)[0]
            name, separator, value = first_part.partition("=")
            name = name.strip()
            if not separator or not name:
                continue
            self._values[name] = value.strip()

    def as_header(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self._values.items())

    def __len__(self) -> int:
        return len(self._values)
