"""
Reddit JSON API client: URL construction, transport and payload validation.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

import requests

import config
from errors import MalformedPayloadError, TransportError, UpstreamStatusError, ValidationError
from models import ListingPage, Post

logger = logging.getLogger(__name__)

INVALID_RESPONSE_MESSAGE = (
    "Received an invalid response from Reddit. "
    "The API might be temporarily unavailable or blocking requests."
)
UNEXPECTED_FORMAT_MESSAGE = "Received an unexpected data format from Reddit."
NOT_A_POST_MESSAGE = "The provided URL does not point to a valid Reddit post."
INVALID_POST_URL_MESSAGE = "This doesn't look like a valid Reddit post URL."
TRANSPORT_MESSAGE = "Could not reach Reddit. Check your connection and try again."

VIDEO_DOMAIN_MARKER = "site:v.redd.it"

_POST_URL_RE = re.compile(
    r"^(?:https?://)?(?:[a-z0-9-]+\.)?reddit\.com/r/[A-Za-z0-9_]+/comments/[A-Za-z0-9]+(?:/[^?#]*)?(?:[?#].*)?$",
    re.IGNORECASE,
)


class RedditClient:
    """Fetches Reddit listings and posts from the public JSON API"""

    def __init__(
        self,
        user_agent: str = config.USER_AGENT,
        base_url: str = config.REDDIT_BASE_URL,
        proxy_url: str = config.PROXY_FETCH_URL,
        timeout: float = config.REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the Reddit client

        Args:
            user_agent: User agent string for Reddit API requests
            base_url: Reddit origin used to build listing URLs
            proxy_url: Optional ``/api/fetch`` endpoint every request is routed through
            timeout: Per-request timeout in seconds
            session: Optional requests session (injected by tests)
        """
        self.user_agent = user_agent
        self.base_url = base_url.rstrip("/")
        self.proxy_url = proxy_url
        self.timeout = timeout
        self.headers = {"User-Agent": user_agent, "Accept": "application/json"}
        self.session = session or requests.Session()

    # ------------------------------------------------------------------
    # URL construction
    # ------------------------------------------------------------------

    def listing_url(
        self,
        subreddit: str,
        sort: str,
        limit: int = config.DEFAULT_POST_LIMIT,
        after: Optional[str] = None,
        t: Optional[str] = None,
    ) -> str:
        """``/r/{subreddit}/{sort}.json`` with an optional cursor and time filter."""
        params: Dict[str, Any] = {}
        if t:
            params["t"] = t
        params["limit"] = min(limit, config.MAX_POSTS_PER_REQUEST)
        params["raw_json"] = 1
        if after:
            params["after"] = after
        return f"{self.base_url}/r/{subreddit}/{sort}.json?{urlencode(params)}"

    def search_url(
        self,
        query: str,
        sort: str,
        limit: int = config.DEFAULT_POST_LIMIT,
        after: Optional[str] = None,
    ) -> str:
        params: Dict[str, Any] = {
            "q": query,
            "sort": sort,
            "limit": min(limit, config.MAX_POSTS_PER_REQUEST),
            "raw_json": 1,
        }
        if after:
            params["after"] = after
        return f"{self.base_url}/search.json?{urlencode(params)}"

    def subreddit_videos_url(self, subreddit: str, limit: int = config.DEFAULT_POST_LIMIT) -> str:
        """Newest posts in a subreddit whose URL points at Reddit's video host."""
        params = {
            "q": VIDEO_DOMAIN_MARKER,
            "restrict_sr": "on",
            "sort": "new",
            "limit": min(limit, config.MAX_POSTS_PER_REQUEST),
            "raw_json": 1,
        }
        return f"{self.base_url}/r/{subreddit}/search.json?{urlencode(params)}"

    def post_json_url(self, post_url: str) -> str:
        """Validate a post permalink and turn it into its JSON endpoint."""
        candidate = (post_url or "").strip()
        if not _POST_URL_RE.match(candidate):
            raise ValidationError(INVALID_POST_URL_MESSAGE)
        if not candidate.lower().startswith(("http://", "https://")):
            candidate = f"https://{candidate}"

        parts = urlsplit(candidate)
        path = parts.path.rstrip("/")
        return urlunsplit((parts.scheme, parts.netloc, f"{path}.json", "raw_json=1", ""))

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _via_proxy(self, url: str) -> str:
        if not self.proxy_url:
            return url
        return f"{self.proxy_url}?{urlencode({'url': url})}"

    def get_json(self, url: str) -> Any:
        """GET ``url`` and decode its JSON body.

        Raises TransportError, UpstreamStatusError or MalformedPayloadError.
        """
        target = self._via_proxy(url)
        logger.debug("Fetching %s", target)
        try:
            response = self.session.get(target, headers=self.headers, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            logger.warning("Transport error fetching %s: %s", url, exc)
            raise TransportError(TRANSPORT_MESSAGE) from exc

        if not 200 <= response.status_code < 300:
            reason = response.reason or ""
            logger.info("Reddit returned %s for %s", response.status_code, url)
            raise UpstreamStatusError(
                f"Failed to fetch from Reddit: {reason} ({response.status_code})",
                status=response.status_code,
                reason=reason,
            )

        try:
            return response.json()
        except ValueError as exc:
            logger.warning("Failed to parse JSON response from %s: %.200s", url, response.text)
            raise MalformedPayloadError(INVALID_RESPONSE_MESSAGE) from exc


# ----------------------------------------------------------------------
# Payload validation
# ----------------------------------------------------------------------

def _children(listing: Any) -> Optional[list]:
    if not isinstance(listing, dict):
        return None
    data = listing.get("data")
    if not isinstance(data, dict):
        return None
    children = data.get("children")
    if not isinstance(children, list):
        return None
    return children


def parse_listing(payload: Any) -> ListingPage:
    """
    Validate a listing payload and convert it into Posts

    Args:
        payload: Decoded JSON from a ``.json`` listing or search endpoint

    Returns:
        ListingPage with posts in response order and the ``after`` cursor

    Raises:
        MalformedPayloadError: when the payload lacks ``data.children``
    """
    children = _children(payload)
    if children is None:
        logger.error("Unexpected JSON structure from Reddit API: %.200r", payload)
        raise MalformedPayloadError(UNEXPECTED_FORMAT_MESSAGE)

    posts = []
    for child in children:
        if not isinstance(child, dict) or not isinstance(child.get("data"), dict):
            raise MalformedPayloadError(UNEXPECTED_FORMAT_MESSAGE)
        posts.append(Post.from_api(child["data"]))

    after = payload["data"].get("after")
    return ListingPage(posts=posts, after=after if isinstance(after, str) and after else None)


def parse_post_lookup(payload: Any) -> Post:
    """Extract the post from a permalink payload: ``[listing(post), listing(comments)]``."""
    if not isinstance(payload, list) or not payload:
        raise MalformedPayloadError(NOT_A_POST_MESSAGE)
    children = _children(payload[0])
    if not children or not isinstance(children[0], dict) or not isinstance(children[0].get("data"), dict):
        raise MalformedPayloadError(NOT_A_POST_MESSAGE)
    return Post.from_api(children[0]["data"])
