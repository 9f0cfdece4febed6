"""Request data the form core reads: method, canonical URL, params, content length."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable
from urllib.parse import urljoin, urlsplit, urlunsplit

if TYPE_CHECKING:
    from litestar import Request

DEFAULT_POST_LIKE_METHODS = ("POST", "PUT", "PATCH")


def canonical_url(url: str, base: str | None = None) -> str:
    """Scheme, host and path of ``url`` (resolved against ``base``), query and fragment stripped."""
    if base:
        url = urljoin(base, url)
    parts = urlsplit(url)
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path or "/", "", ""))


def _multi_items(data: Any) -> Iterable[tuple[str, Any]]:
    if hasattr(data, "multi_items"):
        return data.multi_items()
    return data.items()


def collect_params(items: Iterable[tuple[str, Any]]) -> dict[str, Any]:
    """Build a params map; repeated keys become lists in submission order."""
    params: dict[str, Any] = {}
    for key, value in items:
        if key in params:
            existing = params[key]
            if isinstance(existing, list):
                existing.append(value)
            else:
                params[key] = [existing, value]
        else:
            params[key] = value
    return params


@dataclass
class RequestData:
    """Snapshot of the parts of a request the form core needs.

    Attributes:
        method: Upper-case HTTP method
        url: Canonical request URL (scheme + host + path)
        params: Method-appropriate submitted params
        content_length: Declared body length, ``None`` when absent
    """

    method: str = "GET"
    url: str = "http://localhost/"
    params: dict[str, Any] = field(default_factory=dict)
    content_length: int | None = None

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        self.url = canonical_url(self.url)

    @classmethod
    async def from_litestar(
        cls,
        request: Request,
        post_like_methods: Iterable[str] = DEFAULT_POST_LIKE_METHODS,
    ) -> RequestData:
        method = request.method.upper()
        url = canonical_url(str(request.url))

        header = request.headers.get("content-length")
        try:
            content_length = int(header) if header is not None else None
        except ValueError:
            content_length = None

        if method in {m.upper() for m in post_like_methods}:
            data = await request.form()
        else:
            data = request.query_params
        params = collect_params(
            (key, value) for key, value in _multi_items(data) if isinstance(value, str)
        )
        return cls(method=method, url=url, params=params, content_length=content_length)
