"""Download planning for post media: direct images, DASH merge, fallback downloader."""

from __future__ import annotations

import logging
import posixpath
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode, urlsplit

import requests

import config
from models import Post
from services.upstream_resolver import is_allowed_target

logger = logging.getLogger(__name__)

KIND_DIRECT = "direct"
KIND_MERGE = "merge"
KIND_REDIRECT = "redirect"


@dataclass(frozen=True)
class DashStreams:
    video_url: str
    audio_url: str


@dataclass(frozen=True)
class DownloadPlan:
    kind: str
    url: str
    filename: str = ""

    def to_dict(self) -> dict:
        return {"kind": self.kind, "url": self.url, "filename": self.filename}


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _children(element: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in element.iter() if _local_name(child.tag) == name]


def _media_type(element: ET.Element) -> str:
    return (element.get("contentType") or element.get("mimeType") or "").lower()


def _base_url(element: ET.Element) -> Optional[str]:
    """First BaseURL that is a file name relative to the manifest."""
    for node in _children(element, "BaseURL"):
        text = (node.text or "").strip()
        if text and "://" not in text and not text.startswith("/"):
            return text
    return None


def _bandwidth(element: ET.Element) -> int:
    try:
        return int(element.get("bandwidth") or 0)
    except ValueError:
        return 0


def parse_dash_manifest(manifest: str, dash_url: str) -> Optional[DashStreams]:
    """Pick the highest-bandwidth video and the audio stream from an MPD.

    Stream URLs are resolved against the directory of ``dash_url``. Returns
    None when the manifest lacks either stream.
    """
    try:
        root = ET.fromstring(manifest)
    except ET.ParseError as exc:
        logger.warning("Failed to parse DASH manifest %s: %s", dash_url, exc)
        return None

    video_base = None
    audio_base = None
    for adaptation in _children(root, "AdaptationSet"):
        media_type = _media_type(adaptation)
        representations = _children(adaptation, "Representation")
        if not media_type and representations:
            media_type = _media_type(representations[0])

        if media_type.startswith("video") and video_base is None:
            ranked = sorted(representations, key=_bandwidth, reverse=True)
            for representation in ranked:
                video_base = _base_url(representation)
                if video_base:
                    break
        elif media_type.startswith("audio") and audio_base is None:
            audio_base = _base_url(adaptation)

    if not video_base or not audio_base:
        return None

    prefix = dash_url[: dash_url.rfind("/") + 1]
    return DashStreams(video_url=prefix + video_base, audio_url=prefix + audio_base)


def image_filename(post: Post, image_url: str) -> str:
    extension = posixpath.splitext(urlsplit(image_url).path)[1]
    return f"{post.id}{extension or '.jpg'}"


def fallback_plan(post: Post) -> DownloadPlan:
    url = f"{config.FALLBACK_DOWNLOADER_URL}?{urlencode({'url': post.full_permalink})}"
    return DownloadPlan(kind=KIND_REDIRECT, url=url)


def merge_plan(post: Post, streams: DashStreams) -> DownloadPlan:
    params = {
        "permalink": post.full_permalink,
        "video_url": streams.video_url,
        "audio_url": streams.audio_url,
    }
    return DownloadPlan(kind=KIND_MERGE, url=f"{config.MERGE_SERVICE_URL}?{urlencode(params)}")


class MediaDownloader:
    """Decides how a post's media should be downloaded."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = config.REQUEST_TIMEOUT,
        allowed_hosts: Optional[list[str]] = None,
    ):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.allowed_hosts = allowed_hosts if allowed_hosts is not None else config.PROXY_ALLOWED_HOSTS

    def plan(self, post: Post) -> Optional[DownloadPlan]:
        """Return a DownloadPlan, or None when the post has no downloadable media."""
        video = post.video
        if video is not None:
            streams = self.resolve_dash(video.dash_url) if video.dash_url else None
            if streams is not None:
                return merge_plan(post, streams)
            return fallback_plan(post)

        image_url = post.image_url
        if image_url:
            return DownloadPlan(kind=KIND_DIRECT, url=image_url, filename=image_filename(post, image_url))
        return None

    def resolve_dash(self, dash_url: str) -> Optional[DashStreams]:
        """Fetch and parse a manifest; only allowed Reddit hosts are contacted."""
        if not is_allowed_target(dash_url, self.allowed_hosts):
            logger.warning("Refusing to fetch DASH manifest from %s", dash_url)
            return None
        try:
            response = self.session.get(dash_url, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            logger.warning("Failed to fetch DASH manifest %s: %s", dash_url, exc)
            return None
        if not 200 <= response.status_code < 300:
            logger.warning("DASH manifest %s returned %s", dash_url, response.status_code)
            return None
        return parse_dash_manifest(response.text, dash_url)
