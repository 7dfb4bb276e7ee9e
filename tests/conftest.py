"""
Shared fixtures: Reddit payload builders and a scripted Reddit client.
"""

import threading
from unittest.mock import Mock

import pytest

from reddit_client import RedditClient


def build_post_data(post_id, score=10, num_comments=2, is_video=False, subreddit="aww", **extra):
    data = {
        "id": post_id,
        "title": f"Post {post_id}",
        "author": "alice",
        "subreddit": subreddit,
        "score": score,
        "num_comments": num_comments,
        "permalink": f"/r/{subreddit}/comments/{post_id}/post_{post_id}/",
        "url": f"https://v.redd.it/{post_id}" if is_video else f"https://i.redd.it/{post_id}.jpg",
        "created_utc": 1700000000,
        "is_video": is_video,
        "thumbnail": "self",
    }
    if is_video:
        data["media"] = {
            "reddit_video": {
                "fallback_url": f"https://v.redd.it/{post_id}/DASH_720.mp4?source=fallback",
                "hls_url": f"https://v.redd.it/{post_id}/HLSPlaylist.m3u8",
                "dash_url": f"https://v.redd.it/{post_id}/DASHPlaylist.mpd",
                "duration": 31,
                "width": 1280,
                "height": 720,
                "is_gif": False,
            }
        }
    data.update(extra)
    return data


def build_listing(posts, after=None):
    return {
        "kind": "Listing",
        "data": {
            "after": after,
            "children": [{"kind": "t3", "data": post} for post in posts],
        },
    }


def build_response(status=200, json_data=None, text="", reason="OK", content=b"", headers=None):
    response = Mock()
    response.status_code = status
    response.reason = reason
    response.text = text
    response.content = content
    response.headers = headers or {"Content-Type": "application/json"}
    if json_data is None:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = json_data
    return response


class ScriptedRedditClient(RedditClient):
    """RedditClient whose transport replays scripted payloads or exceptions."""

    def __init__(self, responses=None, default=None, gate=None, on_call=None):
        super().__init__(base_url="https://www.reddit.com", proxy_url="", session=Mock())
        self.responses = list(responses or [])
        self.default = default
        self.gate = gate
        self.on_call = on_call
        self.calls = []
        self._calls_lock = threading.Lock()

    def get_json(self, url):
        with self._calls_lock:
            self.calls.append(url)
            number = len(self.calls)
            item = self.responses.pop(0) if self.responses else self.default
        if self.on_call is not None:
            self.on_call(number, url)
        if self.gate is not None:
            self.gate.wait(5)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def post_data():
    return build_post_data


@pytest.fixture
def listing():
    return build_listing


@pytest.fixture
def response():
    return build_response


@pytest.fixture
def scripted_client():
    return ScriptedRedditClient
