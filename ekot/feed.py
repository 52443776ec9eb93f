"""Feed client — Sveriges Radio podfile JSON API and podcast RSS.

Everything upstream-specific stays in this module: HTTP caching headers,
the two date encodings (``/Date(1770620400000)/`` and textual RFC 2822 /
ISO 8601 dates) and the JSON/RSS payload shapes. Callers only ever see
``FeedItem`` objects with aware ``datetime`` timestamps.
"""
import logging
import re
import time
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional, Union

import httpx

from .config import API_URL, FEED_FORMAT, FEED_TIMEOUT, RSS_URL, USER_AGENT
from .errors import FetchError

logger = logging.getLogger(__name__)

_SR_DATE = re.compile(r"/Date\((-?\d+)\)/")


@dataclass(frozen=True)
class FeedItem:
    title: str
    published: datetime
    audio_url: str


@dataclass(frozen=True)
class FeedResult:
    items: list[FeedItem] = field(default_factory=list)


class NotModified:
    """Upstream answered 304 — nothing new since the last fetch."""

    def __repr__(self):
        return "NOT_MODIFIED"


NOT_MODIFIED = NotModified()

FetchOutcome = Union[FeedResult, NotModified]


def parse_feed_date(raw: str) -> datetime:
    """Normalize either upstream date encoding to an aware UTC datetime.

    Raises ValueError when the value is in neither form.
    """
    if not isinstance(raw, str):
        raise ValueError(f"date is not a string: {raw!r}")
    raw = raw.strip()
    match = _SR_DATE.search(raw)
    if match:
        try:
            return datetime.fromtimestamp(int(match.group(1)) / 1000, tz=timezone.utc)
        except (OverflowError, OSError) as e:
            raise ValueError(f"epoch out of range: {raw}") from e
    if not raw:
        raise ValueError("empty date")
    try:
        parsed = parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        # fromisoformat only accepts a trailing Z from Python 3.11 on
        parsed = datetime.fromisoformat(raw[:-1] + "+00:00" if raw.endswith("Z") else raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _make_item(title: str, raw_date: str, audio_url: str) -> Optional[FeedItem]:
    try:
        published = parse_feed_date(raw_date)
    except (TypeError, ValueError, OverflowError, OSError):
        logger.warning("Skipping feed item %r: unparseable date %r", title, raw_date)
        return None
    return FeedItem(title=title, published=published, audio_url=audio_url)


def _text(value) -> str:
    """JSON fields are expected to be strings; anything else is coerced."""
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def parse_json_payload(data) -> list[FeedItem]:
    """SR API v2 ``podfiles`` listing."""
    if not isinstance(data, dict):
        raise FetchError(f"unexpected JSON payload: {type(data).__name__}")
    podfiles = data.get("podfiles") or []
    if not isinstance(podfiles, list):
        raise FetchError("'podfiles' is not a list")

    items = []
    for podfile in podfiles:
        if not isinstance(podfile, dict):
            continue
        item = _make_item(
            _text(podfile.get("title")),
            _text(podfile.get("publishdateutc")),
            _text(podfile.get("url")),
        )
        if item:
            items.append(item)
    return items


def parse_rss_payload(text: str) -> list[FeedItem]:
    """SR podcast RSS — ``<item>`` with ``pubDate`` and an ``enclosure``."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise FetchError(f"malformed RSS: {e}") from e

    items = []
    for node in root.iter("item"):
        enclosure = node.find("enclosure")
        audio_url = enclosure.get("url", "") if enclosure is not None else ""
        item = _make_item(
            (node.findtext("title") or "").strip(),
            node.findtext("pubDate") or "",
            audio_url,
        )
        if item:
            items.append(item)
    return items


class FeedClient:
    def __init__(
        self,
        url: Optional[str] = None,
        fmt: str = FEED_FORMAT,
        timeout: float = FEED_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if fmt not in ("json", "rss"):
            raise ValueError(f"unknown feed format: {fmt}")
        self.fmt = fmt
        self.url = url or (RSS_URL if fmt == "rss" else API_URL)
        self.timeout = timeout
        self._transport = transport
        self._etag: Optional[str] = None
        self._last_modified: Optional[str] = None

    @property
    def cache_tokens(self) -> dict:
        return {"etag": self._etag, "last_modified": self._last_modified}

    def _request_args(self, force: bool) -> tuple[dict, dict]:
        headers = {"User-Agent": USER_AGENT}
        params = {}
        if force:
            headers["Cache-Control"] = "no-cache"
            params["_"] = str(int(time.time() * 1000))
        else:
            if self._etag:
                headers["If-None-Match"] = self._etag
            if self._last_modified:
                headers["If-Modified-Since"] = self._last_modified
        return headers, params

    async def fetch(self, force: bool = False) -> FetchOutcome:
        """GET the feed. Returns NOT_MODIFIED or a FeedResult; raises FetchError."""
        headers, params = self._request_args(force)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.get(self.url, headers=headers, params=params or None)
        except httpx.TimeoutException as e:
            raise FetchError(f"feed timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise FetchError(f"feed HTTP error: {e}") from e

        if r.status_code == 304:
            logger.debug("Feed not modified")
            return NOT_MODIFIED
        if r.status_code != 200:
            raise FetchError(f"HTTP {r.status_code}")

        if self.fmt == "rss":
            items = parse_rss_payload(r.text)
        else:
            try:
                data = r.json()
            except ValueError as e:
                raise FetchError(f"malformed JSON: {e}") from e
            items = parse_json_payload(data)

        self._etag = r.headers.get("etag") or self._etag
        self._last_modified = r.headers.get("last-modified") or self._last_modified
        logger.info("Fetched %d feed items", len(items))
        return FeedResult(items)

    async def check(self) -> bool:
        """Cheap reachability probe for the health endpoint."""
        try:
            async with httpx.AsyncClient(timeout=5, transport=self._transport) as client:
                r = await client.get(self.url, headers={"User-Agent": USER_AGENT})
                return r.status_code in (200, 304)
        except httpx.HTTPError:
            return False
