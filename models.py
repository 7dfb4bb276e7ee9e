"""
Domain models: browsing queries, posts and their media descriptors.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field, replace
from typing import Any, Optional

# -----------------------------------------------------------------------
# Sort modes
# -----------------------------------------------------------------------

SORT_HOT = "hot"
SORT_NEW = "new"
SORT_TOP = "top"
SORT_RISING = "rising"
SORT_RELEVANCE = "relevance"
SORT_COMMENTS = "comments"
# Synthetic modes, not understood by Reddit itself
SORT_VIDEOS = "videos"
SORT_ENGAGEMENT = "engagement"

ALL_SORTS = (
    SORT_HOT,
    SORT_NEW,
    SORT_TOP,
    SORT_RISING,
    SORT_RELEVANCE,
    SORT_COMMENTS,
    SORT_VIDEOS,
    SORT_ENGAGEMENT,
)
BROWSE_SORTS = (SORT_HOT, SORT_NEW, SORT_TOP, SORT_VIDEOS, SORT_ENGAGEMENT)
SEARCH_SORTS = (SORT_RELEVANCE, SORT_HOT, SORT_TOP, SORT_NEW, SORT_COMMENTS, SORT_VIDEOS, SORT_ENGAGEMENT)
SEARCH_ONLY_SORTS = (SORT_RELEVANCE, SORT_COMMENTS)
SUBREDDIT_SORTS = tuple(sort for sort in ALL_SORTS if sort not in SEARCH_ONLY_SORTS)

SOURCE_NONE = "none"
SOURCE_SUBREDDIT = "subreddit"
SOURCE_SEARCH = "search"
SOURCE_POST_URL = "post_url"

_SUBREDDIT_NAME_RE = re.compile(r"^[A-Za-z0-9_]{2,21}$")
_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp")


def normalize_subreddit_name(subreddit: str) -> str:
    """Trim whitespace and a leading ``r/`` or ``/r/`` prefix."""
    name = (subreddit or "").strip()
    return re.sub(r"^/?r/", "", name, flags=re.IGNORECASE).strip("/")


def is_valid_subreddit_name(subreddit: str) -> bool:
    return bool(_SUBREDDIT_NAME_RE.match(subreddit or ""))


# -----------------------------------------------------------------------
# Query
# -----------------------------------------------------------------------

@dataclass(frozen=True)
class Query:
    """The current browsing intent: one source kind plus a sort mode."""

    subreddit: str = ""
    search: str = ""
    post_url: str = ""
    sort: str = SORT_HOT

    def __post_init__(self):
        active = [value for value in (self.subreddit, self.search, self.post_url) if value]
        if len(active) > 1:
            raise ValueError("Query accepts only one of subreddit, search or post_url")
        if self.sort not in ALL_SORTS:
            raise ValueError(f"Unknown sort mode: {self.sort!r}")
        if self.sort not in self.available_sorts:
            raise ValueError(f"Sort mode {self.sort!r} is not available for a {self.source} query")

    @property
    def source(self) -> str:
        if self.post_url:
            return SOURCE_POST_URL
        if self.search:
            return SOURCE_SEARCH
        if self.subreddit:
            return SOURCE_SUBREDDIT
        return SOURCE_NONE

    @property
    def available_sorts(self) -> tuple[str, ...]:
        return sorts_for_source(self.source)

    def with_subreddit(self, subreddit: str) -> "Query":
        sort = self.sort if self.sort in SUBREDDIT_SORTS else SORT_HOT
        return Query(subreddit=normalize_subreddit_name(subreddit), sort=sort)

    def with_search(self, search: str) -> "Query":
        sort = self.sort if self.sort in SEARCH_SORTS else SORT_RELEVANCE
        return Query(search=search.strip(), sort=sort)

    def with_post_url(self, post_url: str) -> "Query":
        return Query(post_url=post_url.strip(), sort=self.sort)

    def with_sort(self, sort: str) -> "Query":
        """Same source with another sort; raises ValueError when the source does not offer it."""
        return replace(self, sort=sort)


def sorts_for_source(source: str) -> tuple[str, ...]:
    """Sort modes that make sense for a query source."""
    if source == SOURCE_SEARCH:
        return SEARCH_SORTS
    if source == SOURCE_SUBREDDIT:
        return SUBREDDIT_SORTS
    return ALL_SORTS


# -----------------------------------------------------------------------
# Posts
# -----------------------------------------------------------------------

@dataclass(frozen=True)
class ImageResolution:
    url: str
    width: int = 0
    height: int = 0


@dataclass(frozen=True)
class VideoInfo:
    fallback_url: str
    hls_url: str = ""
    dash_url: str = ""
    duration: int = 0
    width: int = 0
    height: int = 0
    is_gif: bool = False


@dataclass(frozen=True)
class MediaInfo:
    resolutions: tuple[ImageResolution, ...] = ()
    source_image: Optional[ImageResolution] = None
    video: Optional[VideoInfo] = None

    @property
    def image_url(self) -> str:
        if self.resolutions:
            return self.resolutions[-1].url
        if self.source_image:
            return self.source_image.url
        return ""


@dataclass(frozen=True)
class Post:
    id: str
    title: str
    author: str = "[deleted]"
    subreddit: str = ""
    score: int = 0
    num_comments: int = 0
    permalink: str = ""
    url: str = ""
    created_utc: float = 0
    post_hint: str = ""
    is_video: bool = False
    thumbnail: str = ""
    media: MediaInfo = field(default_factory=MediaInfo)

    @property
    def full_permalink(self) -> str:
        if self.permalink.startswith("http"):
            return self.permalink
        return f"https://www.reddit.com{self.permalink}"

    @property
    def video(self) -> Optional[VideoInfo]:
        return self.media.video if self.is_video else None

    @property
    def image_url(self) -> str:
        image_url = self.media.image_url
        if image_url:
            return image_url
        if self.url.lower().endswith(_IMAGE_EXTENSIONS):
            return self.url
        return ""

    @classmethod
    def from_api(cls, post_data: dict[str, Any]) -> "Post":
        """Build a Post from the ``data`` object of a Reddit ``t3`` child."""
        return cls(
            id=str(post_data.get("id") or ""),
            title=post_data.get("title") or "",
            author=post_data.get("author") or "[deleted]",
            subreddit=post_data.get("subreddit") or "",
            score=_as_int(post_data.get("score")),
            num_comments=_as_int(post_data.get("num_comments")),
            permalink=post_data.get("permalink") or "",
            url=post_data.get("url") or "",
            created_utc=_as_float(post_data.get("created_utc")),
            post_hint=post_data.get("post_hint") or "",
            is_video=bool(post_data.get("is_video", False)),
            thumbnail=_extract_thumbnail(post_data),
            media=_extract_media(post_data),
        )


@dataclass(frozen=True)
class ListingPage:
    posts: list[Post]
    after: Optional[str] = None


# -----------------------------------------------------------------------
# Payload helpers
# -----------------------------------------------------------------------

def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _as_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _preview_images(post_data: dict[str, Any]) -> list:
    preview = post_data.get("preview")
    if not isinstance(preview, dict):
        return []
    return preview.get("images") or []


def _resolution(raw: Any) -> Optional[ImageResolution]:
    if not isinstance(raw, dict) or not raw.get("url"):
        return None
    return ImageResolution(
        url=html.unescape(raw["url"]),
        width=_as_int(raw.get("width")),
        height=_as_int(raw.get("height")),
    )


def _extract_media(post_data: dict[str, Any]) -> MediaInfo:
    """Extract preview images and Reddit-hosted video from a post."""
    resolutions: list[ImageResolution] = []
    source_image = None
    video = None

    images = _preview_images(post_data)
    if images and isinstance(images[0], dict):
        for raw in images[0].get("resolutions") or []:
            resolution = _resolution(raw)
            if resolution:
                resolutions.append(resolution)
        source_image = _resolution(images[0].get("source"))

    # Reddit-hosted video
    media = post_data.get("secure_media") or post_data.get("media") or {}
    if isinstance(media, dict):
        reddit_video = media.get("reddit_video") or {}
        if isinstance(reddit_video, dict) and reddit_video.get("fallback_url"):
            video = VideoInfo(
                fallback_url=reddit_video["fallback_url"],
                hls_url=reddit_video.get("hls_url") or "",
                dash_url=reddit_video.get("dash_url") or "",
                duration=_as_int(reddit_video.get("duration")),
                width=_as_int(reddit_video.get("width")),
                height=_as_int(reddit_video.get("height")),
                is_gif=bool(reddit_video.get("is_gif", False)),
            )

    return MediaInfo(resolutions=tuple(resolutions), source_image=source_image, video=video)


def _extract_thumbnail(post_data: dict[str, Any]) -> str:
    """Get the best available thumbnail for a post."""
    thumbnail = post_data.get("thumbnail") or ""
    if isinstance(thumbnail, str) and thumbnail.startswith("http"):
        return html.unescape(thumbnail)

    # Preview images work for videos too
    images = _preview_images(post_data)
    if images and isinstance(images[0], dict):
        resolutions = images[0].get("resolutions") or []
        for res in resolutions:
            if isinstance(res, dict) and _as_int(res.get("width")) >= 320:
                return html.unescape(res.get("url", ""))
        if resolutions and isinstance(resolutions[-1], dict):
            return html.unescape(resolutions[-1].get("url", ""))
        source = images[0].get("source") or {}
        if isinstance(source, dict) and source.get("url"):
            return html.unescape(source["url"])

    return ""
