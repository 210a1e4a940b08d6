"""HTTP content provider: a JSON REST client for a page/block workspace API.

Endpoints (relative to ``base_url``):
  GET /items?since=<marker>&cursor=<cursor>  → {"items": [...], "deleted": [...]?, "next_cursor": ...}
  GET /items/<id>                            → full item with "blocks"
  GET /items/ids                             → {"ids": [...]}

Error mapping:
  429                          → ProviderRateLimited (Retry-After honoured)
  401 / 403                    → ProviderAuthError
  404                          → NotFoundError
  5xx, timeouts, resets, DNS   → TransientFetchError
"""

from __future__ import annotations

import json
import socket
import urllib.error
import urllib.parse
import urllib.request
from http.client import HTTPResponse

from pagemind.errors import (
    FetchError,
    NotFoundError,
    ProviderAuthError,
    ProviderRateLimited,
    TransientFetchError,
)
from pagemind.source.models import ChangePage, ContentItem, ItemSummary

_USER_AGENT = "pagemind/0.1"
_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
_ALLOWED_SCHEMES = {"https", "http"}


class HttpContentProvider:
    """ContentProvider over the workspace's JSON API using the stdlib HTTP client.

    Args:
        base_url: API root, e.g. ``https://workspace.example.com/api/v1``.
        token: Bearer token (read from PAGEMIND_PROVIDER_TOKEN by the CLI).
        timeout: Per-request socket timeout in seconds.
    """

    def __init__(self, base_url: str, token: str | None = None, timeout: float = 30.0) -> None:
        parsed = urllib.parse.urlparse(base_url)
        if parsed.scheme not in _ALLOWED_SCHEMES or not parsed.hostname:
            raise ValueError(
                f"Invalid provider base_url '{base_url}'. Use an https:// URL."
            )
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout

    # ------------------------------------------------------------------
    # ContentProvider protocol
    # ------------------------------------------------------------------

    def list_changed(self, since: str | None, cursor: str | None = None) -> ChangePage:
        params = {k: v for k, v in (("since", since), ("cursor", cursor)) if v}
        data = self._get_json("/items", params)
        deleted = data.get("deleted")
        return ChangePage(
            items=[ItemSummary.from_dict(d) for d in data.get("items", [])],
            deleted_ids=[str(x) for x in deleted] if deleted is not None else None,
            next_cursor=data.get("next_cursor") or None,
        )

    def fetch(self, item_id: str) -> ContentItem:
        data = self._get_json(f"/items/{urllib.parse.quote(item_id, safe='')}")
        return ContentItem.from_dict(data)

    def list_all_ids(self) -> list[str]:
        data = self._get_json("/items/ids")
        return [str(x) for x in data.get("ids", [])]

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _get_json(self, path: str, params: dict[str, str] | None = None) -> dict:
        url = self.base_url + path
        if params:
            url += "?" + urllib.parse.urlencode(params)
        headers = {"User-Agent": _USER_AGENT, "Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        request = urllib.request.Request(url, headers=headers)

        try:
            response: HTTPResponse = urllib.request.urlopen(request, timeout=self._timeout)
            body = response.read(_MAX_BYTES + 1)
        except urllib.error.HTTPError as exc:
            raise _map_http_error(exc, url) from exc
        except (urllib.error.URLError, socket.timeout, ConnectionError) as exc:
            raise TransientFetchError(
                f"Network error fetching '{url}': {exc}", context={"url": url}
            ) from exc

        if len(body) > _MAX_BYTES:
            raise FetchError(f"Response from '{url}' exceeds {_MAX_BYTES // (1024 * 1024)} MB.")
        try:
            return json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise FetchError(f"Invalid JSON from '{url}': {exc}", context={"url": url}) from exc


def _map_http_error(exc: urllib.error.HTTPError, url: str) -> FetchError:
    context = {"url": url, "status": exc.code}
    if exc.code == 429:
        return ProviderRateLimited(
            f"Rate limited by provider on '{url}'",
            retry_after=_parse_retry_after(exc.headers.get("Retry-After") if exc.headers else None),
            context=context,
        )
    if exc.code in (401, 403):
        return ProviderAuthError(
            f"Provider rejected credentials ({exc.code}) for '{url}'", context=context
        )
    if exc.code == 404:
        return NotFoundError(f"Not found at provider: '{url}'", context=context)
    if exc.code >= 500:
        return TransientFetchError(f"Provider error {exc.code} on '{url}'", context=context)
    return FetchError(f"Unexpected HTTP {exc.code} on '{url}'", context=context)


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None
