"""Proxy-side resolver that works around Reddit's bot blocking.

Header presets are tried in order. The first success wins; a non-403 failure
is propagated as-is; 403s and transport errors move on to the next preset.
When every preset is blocked, per-subreddit listings fall back to the RSS feed
re-encoded as listing JSON.
"""

from __future__ import annotations

import calendar
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

import feedparser
import requests

import config
from errors import ExhaustedError, ValidationError

logger = logging.getLogger(__name__)

EXHAUSTED_MESSAGE = "All upstream strategies exhausted"
EXHAUSTED_DETAILS = (
    "Reddit is blocking requests from this server. "
    "This is temporary and usually resolves itself; try again in a few minutes."
)

_LISTING_PATH_RE = re.compile(
    r"^/r/(?P<subreddit>[A-Za-z0-9_]+)(?:/(?P<sort>hot|new|top|rising|controversial|best))?/?(?:\.json)?$"
)


@dataclass(frozen=True)
class HeaderPreset:
    """One header/User-Agent configuration, optionally against another host."""

    name: str
    headers: dict[str, str] = field(default_factory=dict)
    host: Optional[str] = None

    def target_for(self, url: str) -> str:
        if not self.host:
            return url
        parts = urlsplit(url)
        if not parts.hostname or not parts.hostname.endswith("reddit.com"):
            return url
        return urlunsplit((parts.scheme, self.host, parts.path, parts.query, parts.fragment))


DEFAULT_PRESETS = (
    HeaderPreset(
        name="api-client",
        headers={
            "User-Agent": "reddit-clip-browser/1.0 (by /u/reddituser)",
            "Accept": "application/json",
            "Accept-Language": "en-US,en;q=0.9",
        },
    ),
    HeaderPreset(
        name="desktop-chrome",
        headers={
            "User-Agent": (
                "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
                "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
            ),
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
            "DNT": "1",
            "Sec-Fetch-Dest": "document",
            "Sec-Fetch-Mode": "navigate",
            "Sec-Fetch-Site": "none",
            "Upgrade-Insecure-Requests": "1",
            "Cache-Control": "max-age=0",
        },
    ),
    HeaderPreset(
        name="old-reddit-safari",
        headers={
            "User-Agent": (
                "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
                "(KHTML, like Gecko) Version/17.0 Safari/605.1.15"
            ),
            "Accept": "application/json",
            "Accept-Language": "en-US,en;q=0.5",
        },
        host="old.reddit.com",
    ),
)


@dataclass(frozen=True)
class UpstreamResponse:
    status: int
    body: bytes
    content_type: str = "application/json"
    strategy: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def is_allowed_target(url: str, allowed_hosts: Optional[list[str]] = None) -> bool:
    allowed = allowed_hosts if allowed_hosts is not None else config.PROXY_ALLOWED_HOSTS
    parts = urlsplit(url)
    return parts.scheme in ("http", "https") and (parts.hostname or "").lower() in allowed


def parse_listing_target(url: str) -> Optional[tuple[str, int]]:
    """Return ``(subreddit, limit)`` when ``url`` is a per-subreddit listing."""
    parts = urlsplit(url)
    match = _LISTING_PATH_RE.match(parts.path)
    if not match:
        return None
    limit = config.PROXY_RSS_LIMIT
    raw_limit = parse_qs(parts.query).get("limit")
    if raw_limit:
        try:
            limit = max(1, min(int(raw_limit[0]), config.MAX_POSTS_PER_REQUEST))
        except ValueError:
            pass
    return match.group("subreddit"), limit


def _entry_id(entry: Any) -> str:
    raw = entry.get("id") or ""
    if raw.startswith("t3_"):
        return raw[3:]
    match = re.search(r"/comments/([A-Za-z0-9]+)", entry.get("link") or "")
    return match.group(1) if match else raw


def _entry_author(entry: Any) -> str:
    author = entry.get("author") or ""
    return re.sub(r"^/?u/", "", author) or "[deleted]"


def _entry_created(entry: Any) -> float:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    return float(calendar.timegm(parsed)) if parsed else 0.0


def feed_to_listing(feed: Any, subreddit: str) -> dict:
    """Re-encode parsed feed entries as a Reddit listing payload.

    Score and comment counts are not in the feed and default to 0.
    """
    children = []
    for entry in feed.entries:
        link = entry.get("link") or ""
        children.append(
            {
                "kind": "t3",
                "data": {
                    "id": _entry_id(entry),
                    "title": entry.get("title") or "",
                    "author": _entry_author(entry),
                    "permalink": urlsplit(link).path if link else "",
                    "url": link,
                    "created_utc": _entry_created(entry),
                    "subreddit": subreddit,
                    "score": 0,
                    "num_comments": 0,
                    "is_video": False,
                    "thumbnail": "",
                },
            }
        )
    return {"kind": "Listing", "data": {"after": None, "before": None, "children": children}}


class UpstreamResolver:
    """Sequential fallback chain over header presets, then RSS."""

    def __init__(
        self,
        presets: tuple[HeaderPreset, ...] = DEFAULT_PRESETS,
        timeout: float = config.PROXY_ATTEMPT_TIMEOUT,
        session: Optional[requests.Session] = None,
        allowed_hosts: Optional[list[str]] = None,
        reddit_base_url: str = config.REDDIT_BASE_URL,
    ):
        self.presets = tuple(presets)
        self.timeout = timeout
        self.session = session or requests.Session()
        self.allowed_hosts = allowed_hosts if allowed_hosts is not None else config.PROXY_ALLOWED_HOSTS
        self.reddit_base_url = reddit_base_url.rstrip("/")

    def resolve(self, url: str) -> UpstreamResponse:
        """Fetch ``url`` with the preset chain.

        Raises:
            ValidationError: target host is not allowed
            ExhaustedError: every preset and the RSS fallback failed
        """
        if not is_allowed_target(url, self.allowed_hosts):
            raise ValidationError(f"Target URL is not an allowed Reddit address: {url}", status=400)

        for preset in self.presets:
            target = preset.target_for(url)
            try:
                response = self.session.get(target, headers=preset.headers, timeout=self.timeout)
            except requests.exceptions.RequestException as exc:
                logger.warning("Preset %s: transport error for %s: %s", preset.name, target, exc)
                continue

            if 200 <= response.status_code < 300:
                logger.info("Preset %s succeeded for %s", preset.name, target)
                return UpstreamResponse(
                    status=response.status_code,
                    body=response.content,
                    content_type=response.headers.get("Content-Type", "application/json"),
                    strategy=preset.name,
                )
            if response.status_code != 403:
                logger.info("Preset %s: upstream returned %s, not retrying", preset.name, response.status_code)
                return UpstreamResponse(
                    status=response.status_code,
                    body=response.content,
                    content_type=response.headers.get("Content-Type", "application/json"),
                    strategy=preset.name,
                )
            logger.info("Preset %s: forbidden for %s", preset.name, target)

        listing = parse_listing_target(url)
        if listing is not None:
            subreddit, limit = listing
            payload = self.fetch_rss_listing(subreddit, limit)
            if payload is not None:
                return UpstreamResponse(
                    status=200,
                    body=json.dumps(payload).encode("utf-8"),
                    content_type="application/json",
                    strategy="rss",
                )

        logger.error("All upstream strategies exhausted for %s", url)
        raise ExhaustedError(EXHAUSTED_MESSAGE, details=EXHAUSTED_DETAILS)

    def fetch_rss_listing(self, subreddit: str, limit: int) -> Optional[dict]:
        """Single RSS attempt; returns listing JSON or None on failure."""
        rss_url = f"{self.reddit_base_url}/r/{subreddit}/new.rss?{urlencode({'limit': limit})}"
        headers = self.presets[-1].headers if self.presets else {}
        try:
            response = self.session.get(rss_url, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            logger.warning("RSS fallback transport error for r/%s: %s", subreddit, exc)
            return None
        if not 200 <= response.status_code < 300:
            logger.warning("RSS fallback returned %s for r/%s", response.status_code, subreddit)
            return None

        feed = feedparser.parse(response.content)
        if feed.bozo and not feed.entries:
            logger.warning("RSS fallback could not parse feed for r/%s: %s", subreddit, feed.get("bozo_exception"))
            return None

        logger.info("RSS fallback produced %d entries for r/%s", len(feed.entries), subreddit)
        return feed_to_listing(feed, subreddit)
