"""Helpers for building API/terminal view models from posts and controller state."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Optional

from models import Post


def format_number(num: int) -> str:
    """Compact counter: 1234 -> ``1.2k``."""
    if num >= 1000:
        return f"{num / 1000:.1f}k"
    return str(num)


def build_media_view_model(post: Post) -> Optional[dict[str, Any]]:
    video = post.video
    if video is not None:
        return {
            "type": "gif" if video.is_gif else "video",
            "fallback_url": video.fallback_url,
            "hls_url": video.hls_url,
            "dash_url": video.dash_url,
            "duration": video.duration,
            "width": video.width,
            "height": video.height,
            # Looping silent clips play muted without controls
            "autoplay": video.is_gif,
        }
    image_url = post.image_url
    if image_url:
        return {
            "type": "image",
            "url": image_url,
            "resolutions": [asdict(resolution) for resolution in post.media.resolutions],
        }
    return None


def build_post_view_model(post: Post) -> dict[str, Any]:
    """Normalize a Post into template/API friendly fields."""
    return {
        "id": post.id,
        "title": post.title,
        "author": post.author,
        "subreddit": post.subreddit,
        "score": post.score,
        "score_display": format_number(post.score),
        "num_comments": post.num_comments,
        "comments_display": format_number(post.num_comments),
        "url": post.url,
        "permalink": post.full_permalink,
        "created_utc": post.created_utc,
        "post_hint": post.post_hint,
        "is_video": post.is_video,
        "thumbnail": post.thumbnail,
        "media": build_media_view_model(post),
    }


def build_view_state(view) -> dict[str, Any]:
    """Serialize a controller ViewState for the JSON API."""
    return {
        "status": view.status,
        "subreddit": view.subreddit,
        "query": {
            "subreddit": view.query.subreddit,
            "search": view.query.search,
            "post_url": view.query.post_url,
            "sort": view.query.sort,
        },
        "posts": [build_post_view_model(post) for post in view.posts],
        "error": view.error,
        "error_kind": view.error_kind,
        "empty_message": view.empty_message,
    }
