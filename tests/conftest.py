"""Shared fixtures and fakes for the harvest tests."""

import base64
import json
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest


NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

TOKEN_SOURCE = """// SPDX-License-Identifier: MIT
pragma solidity ^0.8.0;

contract Token {
    mapping(address => uint256) public balanceOf;
}
"""


class FakeResponse:
    """Minimal stand-in for an aiohttp response context manager."""

    def __init__(self, status: int = 200, payload: Any = None, text: str = "", headers: dict | None = None):
        self.status = status
        self._payload = payload
        self._text = text
        self.headers = headers or {}

    async def json(self, content_type=None):
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return False


class FakeSession:
    """Routes GET requests by URL to canned responses.

    A route may be a FakeResponse, an exception instance (raised), or a list
    of those consumed in order.
    """

    def __init__(self, routes: dict[str, Any] | None = None):
        self.routes = dict(routes or {})
        self.calls: list[dict] = []
        self.closed = False

    def get(self, url, headers=None, params=None, timeout=None):
        self.calls.append({"url": url, "headers": headers or {}, "params": params, "timeout": timeout})
        if url not in self.routes:
            return FakeResponse(status=404, payload={"message": "Not Found"})
        route = self.routes[url]
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if isinstance(route, BaseException):
            raise route
        return route

    def urls(self) -> list[str]:
        return [c["url"] for c in self.calls]

    async def close(self):
        self.closed = True


def wrap_base64(text: str, width: int = 60) -> str:
    """Base64-encode text and wrap it like the GitHub blob API does."""
    encoded = base64.b64encode(text.encode("utf-8")).decode("ascii")
    return "\n".join(encoded[i:i + width] for i in range(0, len(encoded), width)) + "\n"


def make_contest(**overrides) -> dict:
    """A listing entry for an open, public contest."""
    contest = {
        "contest_id": 301,
        "slug": "2026-03-token",
        "uid": "clx123",
        "title": "Token Protocol",
        "sponsor": "Token Co",
        "sponsor_data": {"name": "Token Co", "imageUrl": "https://example.com/logo.png"},
        "repo": "https://github.com/code-423n4/2026-03-token",
        "start_time": (NOW - timedelta(days=3)).isoformat().replace("+00:00", "Z"),
        "end_time": (NOW + timedelta(days=4)).isoformat().replace("+00:00", "Z"),
        "code_access": "public",
        "status": "active",
        "type": "Audit",
        "total_award_pool": 50000,
        "hm_award_pool": 40000,
        "award_coin": "USDC",
    }
    contest.update(overrides)
    return contest


def build_listing_document(contests: list) -> dict:
    """Nest a contest array the way the listing page does."""
    inner = {"children": [None, None, None, {"contests": contests}]}
    return {"className": "page", "children": [None, None, None, inner]}


def build_push_script(document: Any) -> str:
    body = json.dumps(document).replace('"', '\\"')
    return 'self.__next_f.push([1,"f:[\\"$\\",\\"div\\",null,' + body + ']\\n"])'


def build_listing_html(contests: list, extra_scripts: tuple[str, ...] = ()) -> str:
    """A captured-style listing page carrying the given contests."""
    scripts = [
        'self.__next_f.push([0])',
        'self.__next_f.push([1,"1:HL[\\"/_next/static/css/app.css\\",\\"style\\"]\\n"])',
        *extra_scripts,
        build_push_script(build_listing_document(contests)),
        'self.__next_f.push([1,"9:null\\n"])',
    ]
    body = "".join(f"<script>{s}</script>" for s in scripts)
    return (
        "<!DOCTYPE html><html><head><title>Audits</title>"
        '<script src="/_next/static/chunks/main.js" async=""></script>'
        f"</head><body><div id=\"root\">Loading audits</div>{body}</body></html>"
    )


@pytest.fixture
def now() -> datetime:
    return NOW
