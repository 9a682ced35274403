"""Tests for the contest listing extractor."""

import asyncio

import aiohttp
import pytest

from harvest.contests.listing import (
    ListingParse,
    ListingScraper,
    extract_contests,
    find_payload_block,
    locate_contest_array,
    parse_contests,
    parse_listing,
    unframe_payload,
)
from harvest.errors import (
    ListingJSONError,
    ListingMarkerNotFound,
    ListingParseError,
    ListingShapeError,
)

from conftest import (
    FakeResponse,
    FakeSession,
    build_listing_document,
    build_listing_html,
    build_push_script,
    make_contest,
)


class TestPayloadLocation:
    """Finding and unframing the payload script block."""

    def test_finds_marker_block_among_others(self):
        html = build_listing_html([make_contest()])
        block = find_payload_block(html)
        assert block is not None
        assert block.startswith('([1,"f:')

    def test_no_marker_returns_none(self):
        html = "<html><script>self.__next_f.push([0])</script><script>console.log(1)</script></html>"
        assert find_payload_block(html) is None

    def test_last_matching_block_wins(self):
        first = build_push_script(build_listing_document([make_contest(contest_id=1)]))
        html = build_listing_html([make_contest(contest_id=2)], extra_scripts=(first,))
        contests = extract_contests(html)
        assert [c.contest_id for c in contests] == [2]

    def test_unframe_strips_framing_and_unescapes(self):
        block = '([1,"f:[\\"$\\",\\"div\\",null,{\\"a\\":1}]\\n"])'
        assert unframe_payload(block) == '{"a":1}'


class TestLocateContestArray:
    """Walking the fixed nesting path."""

    def test_returns_array(self):
        document = build_listing_document([{"x": 1}])
        assert locate_contest_array(document) == [{"x": 1}]

    def test_missing_children_names_step(self):
        with pytest.raises(ListingShapeError, match="children"):
            locate_contest_array({"className": "page"})

    def test_short_children_array(self):
        with pytest.raises(ListingShapeError):
            locate_contest_array({"children": [None, None]})

    def test_missing_contests_key(self):
        document = {"children": [None, None, None, {"children": [None, None, None, {}]}]}
        with pytest.raises(ListingShapeError, match="contests"):
            locate_contest_array(document)

    def test_non_list_contests(self):
        document = build_listing_document({"not": "a list"})
        with pytest.raises(ListingShapeError, match="Expected a list"):
            locate_contest_array(document)


class TestParseContests:
    """Per-record validation."""

    def test_invalid_records_are_dropped(self):
        items = [
            make_contest(contest_id=1),
            {"contest_id": 2, "repo": "x"},           # no sponsor_data
            make_contest(contest_id=-5),              # negative id
            make_contest(contest_id=4),
        ]
        contests, dropped = parse_contests(items)
        assert [c.contest_id for c in contests] == [1, 4]
        assert dropped == 2

    def test_order_is_preserved(self):
        items = [make_contest(contest_id=i) for i in (9, 3, 7)]
        contests, dropped = parse_contests(items)
        assert [c.contest_id for c in contests] == [9, 3, 7]
        assert dropped == 0


class TestParseListing:
    """End-to-end extraction from page source."""

    def test_captured_page(self):
        html = build_listing_html([
            make_contest(),
            make_contest(contest_id=302, slug="2026-03-vault", code_access="private"),
        ])
        result = parse_listing(html)

        assert result.ok
        assert result.dropped == 0
        assert len(result.contests) == 2
        first = result.contests[0]
        assert first.contest_id == 301
        assert first.repo == "https://github.com/code-423n4/2026-03-token"
        assert first.sponsor_data.name == "Token Co"
        assert first.sponsor_data.image_url == "https://example.com/logo.png"
        assert result.contests[1].code_access == "private"

    def test_camel_case_keys(self):
        contest = make_contest()
        del contest["code_access"]
        del contest["contest_id"]
        contest["codeAccess"] = "public"
        contest["contestid"] = 77
        contest["findingsRepo"] = "https://github.com/code-423n4/2026-03-token-findings"

        [record] = extract_contests(build_listing_html([contest]))
        assert record.contest_id == 77
        assert record.is_public
        assert record.findings_repo.endswith("-findings")

    def test_empty_array(self):
        result = parse_listing(build_listing_html([]))
        assert result.ok
        assert result.contests == []

    def test_marker_missing_returns_empty_with_error(self):
        result = parse_listing("<html><body>No contests here</body></html>")
        assert not result.ok
        assert result.contests == []
        assert "marker" in result.error

    def test_bad_json(self):
        block = 'self.__next_f.push([1,"f:[\\"$\\",\\"div\\",null,{\\"children\\": [}]\\n"])'
        result = parse_listing(f"<script>{block}</script>")
        assert not result.ok
        assert "JSON" in result.error

    def test_strict_mode_raises(self):
        with pytest.raises(ListingMarkerNotFound):
            parse_listing("<html></html>", strict=True)

        block = 'self.__next_f.push([1,"f:[\\"$\\",\\"div\\",null,not json]\\n"])'
        with pytest.raises(ListingJSONError):
            parse_listing(f"<script>{block}</script>", strict=True)

        html = f"<script>{build_push_script({'children': []})}</script>"
        with pytest.raises(ListingShapeError):
            parse_listing(html, strict=True)

    def test_listing_errors_share_a_base(self):
        for exc in (ListingMarkerNotFound, ListingJSONError, ListingShapeError):
            assert issubclass(exc, ListingParseError)


class TestListingScraper:
    """Fetching the page over HTTP."""

    URL = "https://code4rena.com/audits"

    def test_fetch_listing(self):
        session = FakeSession({self.URL: FakeResponse(text=build_listing_html([make_contest()]))})

        async def run():
            async with ListingScraper(self.URL, session=session) as scraper:
                return await scraper.fetch_listing()

        result = asyncio.run(run())
        assert isinstance(result, ListingParse)
        assert [c.contest_id for c in result.contests] == [301]
        assert session.calls[0]["headers"]["User-Agent"] == "trawler/0.1"
        # Injected session is not ours to close
        assert not session.closed

    def test_http_error_status(self):
        session = FakeSession({self.URL: FakeResponse(status=503, text="busy")})
        scraper = ListingScraper(self.URL, session=session)
        result = asyncio.run(scraper.fetch_listing())
        assert not result.ok
        assert "503" in result.error

    def test_network_error(self):
        session = FakeSession({self.URL: aiohttp.ClientConnectionError("refused")})
        scraper = ListingScraper(self.URL, session=session)

        with pytest.raises(ListingParseError):
            asyncio.run(scraper.fetch_html())

        result = asyncio.run(scraper.fetch_listing())
        assert not result.ok

    def test_session_required(self):
        scraper = ListingScraper(self.URL)
        with pytest.raises(RuntimeError):
            scraper.session
