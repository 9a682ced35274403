"""
Contest listing extractor.

The listing page is server-rendered by Next.js. Contest data is not in the
markup; it rides inside one of the inline ``self.__next_f.push(...)`` script
blocks as an escaped JSON fragment. Extraction is:

    1. scan every <script> block, drop the push-function prefix
    2. keep the block that starts with the payload marker
    3. strip the fixed framing and unescape the quotes
    4. parse the JSON and walk children[3].children[3].contests

Step 4 depends on the current component tree of the page and breaks whenever
the page layout changes, so it lives in ``locate_contest_array`` alone and
fails loudly with the step that went missing.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterator

import aiohttp
from bs4 import BeautifulSoup
from pydantic import ValidationError

from ..errors import (
    ListingJSONError,
    ListingMarkerNotFound,
    ListingParseError,
    ListingShapeError,
)
from .contest import ContestRecord


logger = logging.getLogger(__name__)


PUSH_PREFIX = "self.__next_f.push"
PAYLOAD_MARKER = '([1,"f:'
FRAME_PREFIX = '([1,"f:[\\"$\\",\\"div\\",null,'
FRAME_SUFFIX = ']\\n"])'

# children[3].children[3].contests
CONTEST_ARRAY_PATH: tuple[str | int, ...] = ("children", 3, "children", 3, "contests")


@dataclass
class ListingParse:
    """Result of parsing one listing page."""

    contests: list[ContestRecord] = field(default_factory=list)
    dropped: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def iter_script_blocks(html: str) -> Iterator[str]:
    """Yield the raw text of every <script> element."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all("script"):
        # Script contents are never parsed as markup, so .string is the raw text
        yield tag.string or ""


def find_payload_block(html: str) -> str | None:
    """Return the script block carrying the contest payload.

    When several blocks match, the last one wins.
    """
    found = None
    for block in iter_script_blocks(html):
        candidate = block.strip().removeprefix(PUSH_PREFIX)
        if candidate.startswith(PAYLOAD_MARKER):
            found = candidate
    return found


def unframe_payload(block: str) -> str:
    """Strip the push framing from a payload block and unescape quotes."""
    body = block.removeprefix(FRAME_PREFIX).removesuffix(FRAME_SUFFIX)
    return body.replace('\\"', '"')


def locate_contest_array(document: Any) -> list:
    """Walk the fixed path down to the contest array.

    Raises:
        ListingShapeError: If any step of the path is missing
    """
    node = document
    walked = "$"
    for step in CONTEST_ARRAY_PATH:
        try:
            node = node[step]
        except (KeyError, IndexError, TypeError):
            raise ListingShapeError(
                f"Listing payload has no {step!r} under {walked}; the page layout has probably changed"
            ) from None
        walked += f"[{step}]" if isinstance(step, int) else f".{step}"

    if not isinstance(node, list):
        raise ListingShapeError(f"Expected a list at {walked}, found {type(node).__name__}")
    return node


def load_payload(html: str) -> list:
    """Locate, unframe and parse the contest array.

    Raises:
        ListingMarkerNotFound: No script block carried the marker
        ListingJSONError: The payload was not valid JSON
        ListingShapeError: The JSON did not have the expected nesting
    """
    block = find_payload_block(html)
    if block is None:
        raise ListingMarkerNotFound("No script block starts with the contest payload marker")

    try:
        document = json.loads(unframe_payload(block))
    except json.JSONDecodeError as e:
        raise ListingJSONError(f"Contest payload is not valid JSON: {e}") from e

    return locate_contest_array(document)


def parse_contests(items: list) -> tuple[list[ContestRecord], int]:
    """Validate each element independently, dropping the invalid ones."""
    contests = []
    dropped = 0
    for index, item in enumerate(items):
        try:
            contests.append(ContestRecord.model_validate(item))
        except ValidationError as e:
            dropped += 1
            logger.debug("Dropping contest #%d: %s", index, e.errors()[:1])
    if dropped:
        logger.warning("Dropped %d of %d contest records that failed validation", dropped, len(items))
    return contests, dropped


def parse_listing(html: str, strict: bool = False) -> ListingParse:
    """Extract contest records from a listing page.

    Args:
        html: Page source
        strict: Re-raise listing-level failures instead of returning an empty result

    Returns:
        ListingParse with records, dropped count and any listing-level error
    """
    try:
        items = load_payload(html)
    except ListingParseError as e:
        logger.error("Contest listing could not be parsed: %s", e)
        if strict:
            raise
        return ListingParse(error=str(e))

    contests, dropped = parse_contests(items)
    return ListingParse(contests=contests, dropped=dropped)


def extract_contests(html: str) -> list[ContestRecord]:
    """Convenience wrapper returning only the records."""
    return parse_listing(html).contests


class ListingScraper:
    """Fetches and parses the contest listing page."""

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        user_agent: str = "trawler/0.1",
        session: aiohttp.ClientSession | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self.user_agent = user_agent
        self._session = session
        self._owns_session = False

    async def __aenter__(self):
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self

    async def __aexit__(self, *args):
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None
            self._owns_session = False

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("Scraper not initialized. Use async with or call __aenter__")
        return self._session

    async def fetch_html(self) -> str:
        """Download the listing page.

        Raises:
            ListingParseError: On network failure or non-200 status
        """
        headers = {"User-Agent": self.user_agent}
        try:
            async with self.session.get(
                self.url,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                if resp.status != 200:
                    raise ListingParseError(f"Listing page returned HTTP {resp.status}")
                return await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ListingParseError(f"Listing page request failed: {e!r}") from e

    async def fetch_listing(self) -> ListingParse:
        """Fetch the page and parse it. Never raises for recoverable failures."""
        try:
            html = await self.fetch_html()
        except ListingParseError as e:
            logger.error("Could not fetch contest listing from %s: %s", self.url, e)
            return ListingParse(error=str(e))
        return parse_listing(html)
