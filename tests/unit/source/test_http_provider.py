"""Tests for the HTTP content provider (urlopen mocked)."""

from __future__ import annotations

import io
import json
import socket
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from pagemind.errors import (
    FetchError,
    NotFoundError,
    ProviderAuthError,
    ProviderRateLimited,
    TransientFetchError,
)
from pagemind.source.http import HttpContentProvider

BASE = "https://workspace.example.com/api/v1"


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _response(payload) -> MagicMock:
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
    response = MagicMock()
    response.read.side_effect = lambda n=-1: body[:n] if n >= 0 else body
    return response


def _mock_urlopen(payload=None, error: Exception | None = None):
    kwargs = {"side_effect": error} if error else {"return_value": _response(payload)}
    return patch("pagemind.source.http.urllib.request.urlopen", **kwargs)


def _http_error(code: int, headers: dict | None = None) -> urllib.error.HTTPError:
    return urllib.error.HTTPError(BASE, code, "error", headers or {}, io.BytesIO(b""))


# ------------------------------------------------------------------
# Construction
# ------------------------------------------------------------------


@pytest.mark.parametrize("url", ["ftp://example.com", "file:///etc/passwd", "not a url"])
def test_rejects_non_http_base_url(url):
    with pytest.raises(ValueError, match="base_url"):
        HttpContentProvider(url)


# ------------------------------------------------------------------
# Operations
# ------------------------------------------------------------------


def test_list_changed_parses_page():
    payload = {
        "items": [{"id": "p1", "revision": "2025-01-02T00:00:00Z"}, {"id": "p2", "revision": "r", "archived": True}],
        "deleted": ["p9"],
        "next_cursor": "abc",
    }
    with _mock_urlopen(payload) as urlopen:
        page = HttpContentProvider(BASE, token="tok").list_changed("2025-01-01", cursor="c1")

    assert [s.item_id for s in page.items] == ["p1", "p2"]
    assert page.items[1].archived is True
    assert page.deleted_ids == ["p9"]
    assert page.next_cursor == "abc"

    request = urlopen.call_args.args[0]
    assert request.full_url.startswith(f"{BASE}/items?")
    assert "since=2025-01-01" in request.full_url
    assert "cursor=c1" in request.full_url
    assert request.get_header("Authorization") == "Bearer tok"


def test_list_changed_without_deletion_feed():
    with _mock_urlopen({"items": []}):
        page = HttpContentProvider(BASE).list_changed(None)
    assert page.deleted_ids is None
    assert page.next_cursor is None


def test_fetch_parses_block_tree():
    payload = {
        "id": "p1",
        "revision": "r2",
        "title": "Book Recommendations",
        "blocks": [
            {"type": "paragraph", "text": "I loved Dune.", "children": [{"type": "paragraph", "text": "Nested"}]},
            {"type": "image", "caption": "Cover", "filename": "dune.jpg"},
        ],
        "links": ["p2"],
        "tags": ["books"],
        "url": "https://workspace.example.com/p1",
    }
    with _mock_urlopen(payload) as urlopen:
        item = HttpContentProvider(BASE).fetch("p1")

    assert item.title == "Book Recommendations"
    assert item.body_blocks[0].children[0].text == "Nested"
    assert item.body_blocks[1].filename == "dune.jpg"
    assert item.outbound_links == ["p2"]
    assert item.created_time == "r2"
    assert urlopen.call_args.args[0].full_url == f"{BASE}/items/p1"


def test_fetch_quotes_item_id():
    with _mock_urlopen({"id": "a/b", "revision": "r"}) as urlopen:
        HttpContentProvider(BASE).fetch("a/b")
    assert urlopen.call_args.args[0].full_url == f"{BASE}/items/a%2Fb"


def test_list_all_ids():
    with _mock_urlopen({"ids": ["p1", 2]}):
        assert HttpContentProvider(BASE).list_all_ids() == ["p1", "2"]


# ------------------------------------------------------------------
# Error mapping
# ------------------------------------------------------------------


def test_429_maps_to_rate_limited_with_retry_after():
    with _mock_urlopen(error=_http_error(429, {"Retry-After": "7"})):
        with pytest.raises(ProviderRateLimited) as excinfo:
            HttpContentProvider(BASE).fetch("p1")
    assert excinfo.value.retry_after == 7.0


@pytest.mark.parametrize(
    "code,expected",
    [(401, ProviderAuthError), (403, ProviderAuthError), (404, NotFoundError), (503, TransientFetchError)],
)
def test_http_status_mapping(code, expected):
    with _mock_urlopen(error=_http_error(code)):
        with pytest.raises(expected) as excinfo:
            HttpContentProvider(BASE).fetch("p1")
    assert excinfo.value.context["status"] == code


@pytest.mark.parametrize(
    "error",
    [urllib.error.URLError("dns failure"), socket.timeout("timed out"), ConnectionResetError()],
)
def test_network_errors_are_transient(error):
    with _mock_urlopen(error=error):
        with pytest.raises(TransientFetchError):
            HttpContentProvider(BASE).list_all_ids()


def test_invalid_json_raises_fetch_error():
    with _mock_urlopen(b"<html>oops</html>"):
        with pytest.raises(FetchError, match="Invalid JSON"):
            HttpContentProvider(BASE).list_all_ids()
