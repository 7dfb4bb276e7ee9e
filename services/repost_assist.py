"""AI-assisted metadata for reposting a Reddit clip to YouTube.

Three kits are generated from a post's title and subreddit:

* ``youtube``   - title, description and tags for the upload
* ``copyright`` - risk level, reasoning and a recommendation
* ``seo``       - a Shorts title, an 8-word search question and hashtags

The text model is an opaque collaborator: any failure (no API key, API error,
unparsable or invalid JSON) degrades to a locally synthesized default that is
flagged with ``fallback: True``.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Optional

from cachetools import TTLCache
from openai import OpenAI, OpenAIError

import config
from models import Post

logger = logging.getLogger(__name__)

KIND_YOUTUBE = "youtube"
KIND_COPYRIGHT = "copyright"
KIND_SEO = "seo"
KINDS = (KIND_YOUTUBE, KIND_COPYRIGHT, KIND_SEO)

RISK_LEVELS = ("Low", "Medium", "High")

YOUTUBE_TITLE_MAX = 100
YOUTUBE_DESCRIPTION_MAX = 3000
SHORTS_TITLE_MAX = 40


class InvalidAssistResponse(ValueError):
    """The model answered with JSON that does not match the kit's schema."""


def _credit_lines(post: Post) -> str:
    return f"Original post: {post.full_permalink}\nPosted by: u/{post.author}"


def _clean_tags(raw: Any, limit: int) -> list[str]:
    if not isinstance(raw, list):
        raise InvalidAssistResponse("tags must be a list")
    tags = []
    for tag in raw:
        if not isinstance(tag, str):
            continue
        cleaned = tag.strip().lstrip("#").strip().lower()
        if cleaned and cleaned not in tags:
            tags.append(cleaned)
    return tags[:limit]


def _required_text(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InvalidAssistResponse(f"missing field: {key}")
    return value.strip()


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

def youtube_prompt(post: Post) -> str:
    return (
        f"Based on this Reddit post title from the subreddit 'r/{post.subreddit}', generate a catchy "
        "YouTube video title, a compelling description, and 5 relevant hashtags.\n"
        f'Reddit Title: "{post.title}"\n\n'
        "Respond with a JSON object with the keys:\n"
        f'- "title": a catchy, SEO-friendly title under {YOUTUBE_TITLE_MAX} characters\n'
        f'- "description": an engaging description strictly under {YOUTUBE_DESCRIPTION_MAX} characters. '
        "Start with a strong hook, explain the context of the video, and end by crediting the "
        f"original poster and the subreddit.\n{_credit_lines(post)}\n"
        "- \"tags\": an array of 5 relevant, lowercase hashtags without the '#' symbol"
    )


def copyright_prompt(post: Post) -> str:
    return (
        "Analyze the following Reddit post for potential copyright issues if it were uploaded "
        "as a YouTube video.\n"
        f"- Subreddit: r/{post.subreddit}\n"
        f'- Title: "{post.title}"\n\n'
        "Consider common copyright triggers like background music, logos, or content from other platforms.\n"
        "Respond with a JSON object with the keys:\n"
        '- "copyright_risk": one of "Low", "Medium" or "High"\n'
        '- "reasoning": why this risk level applies and which parts of the content may cause issues\n'
        '- "recommendation": how to make the content safe for upload'
    )


def seo_prompt(post: Post) -> str:
    return (
        "Create a YouTube growth kit for a short video.\n"
        f"- Subreddit: r/{post.subreddit}\n"
        f'- Original title: "{post.title}"\n\n'
        "Respond with a JSON object with the keys:\n"
        f'- "shorts_title": a punchy, curiosity-driven title strictly under {SHORTS_TITLE_MAX} characters\n'
        '- "search_question": a long-tail search question of exactly 8 words starting with '
        'an interrogative word such as "Why", "How" or "What"\n'
        '- "suggested_hashtags": 3 to 5 lowercase hashtags without "#", the first one must be "shorts"'
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_youtube(data: dict) -> dict:
    tags = _clean_tags(data.get("tags"), 5)
    if not tags:
        raise InvalidAssistResponse("tags must not be empty")
    return {
        "title": _required_text(data, "title")[:YOUTUBE_TITLE_MAX],
        "description": _required_text(data, "description")[:YOUTUBE_DESCRIPTION_MAX],
        "tags": tags,
    }


def validate_copyright(data: dict) -> dict:
    risk = _required_text(data, "copyright_risk").capitalize()
    if risk not in RISK_LEVELS:
        raise InvalidAssistResponse(f"unknown risk level: {risk}")
    return {
        "copyright_risk": risk,
        "reasoning": _required_text(data, "reasoning"),
        "recommendation": _required_text(data, "recommendation"),
    }


def validate_seo(data: dict) -> dict:
    hashtags = [tag for tag in _clean_tags(data.get("suggested_hashtags"), 5) if tag != "shorts"]
    hashtags = (["shorts"] + hashtags)[:5]
    if len(hashtags) < 3:
        raise InvalidAssistResponse("expected at least 3 hashtags")
    return {
        "shorts_title": _required_text(data, "shorts_title")[:SHORTS_TITLE_MAX],
        "search_question": _required_text(data, "search_question"),
        "suggested_hashtags": hashtags,
    }


# ---------------------------------------------------------------------------
# Local defaults
# ---------------------------------------------------------------------------

def default_youtube(post: Post) -> dict:
    return {
        "title": post.title[:YOUTUBE_TITLE_MAX],
        "description": _credit_lines(post),
        "tags": _clean_tags(["reddit", post.subreddit], 5),
    }


def default_copyright(post: Post) -> dict:
    return {
        "copyright_risk": "Medium",
        "reasoning": "AI analysis failed. The risk is marked as Medium as a precaution.",
        "recommendation": (
            "Manually review the video for any copyrighted music, logos, or watermarks before uploading. "
            "It is often safest to mute the original audio and add your own commentary or royalty-free music."
        ),
    }


def default_seo(post: Post) -> dict:
    subreddit = post.subreddit or "reddit"
    return {
        "shorts_title": post.title[:SHORTS_TITLE_MAX],
        "search_question": f"What is really happening in this r/{subreddit} video?",
        "suggested_hashtags": _clean_tags(["shorts", subreddit, "reddit"], 5),
    }


_KITS: dict[str, tuple[Callable[[Post], str], Callable[[dict], dict], Callable[[Post], dict], str]] = {
    KIND_YOUTUBE: (
        youtube_prompt,
        validate_youtube,
        default_youtube,
        "Failed to generate AI content. You can still proceed manually.",
    ),
    KIND_COPYRIGHT: (
        copyright_prompt,
        validate_copyright,
        default_copyright,
        "Failed to analyze copyright risk. Please review the content manually before proceeding.",
    ),
    KIND_SEO: (
        seo_prompt,
        validate_seo,
        default_seo,
        "Failed to generate the YouTube Growth Kit. Please try again later.",
    ),
}


class RepostAssistant:
    """Generates repost metadata through an OpenAI chat model in JSON mode."""

    def __init__(
        self,
        client: Optional[OpenAI] = None,
        model: str = config.AI_MODEL,
        api_key: str = config.OPENAI_API_KEY,
        cache_ttl: int = config.AI_CACHE_TTL,
        cache_maxsize: int = config.AI_CACHE_MAXSIZE,
    ):
        if client is None and api_key:
            client = OpenAI(api_key=api_key, base_url=config.OPENAI_BASE_URL, timeout=config.AI_TIMEOUT)
        self.client = client
        self.model = model
        self._cache: TTLCache = TTLCache(maxsize=cache_maxsize, ttl=cache_ttl)
        self._cache_lock = threading.RLock()

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def generate(self, kind: str, post: Post) -> dict:
        """Return the kit for ``kind``; never raises for model failures."""
        if kind not in _KITS:
            raise ValueError(f"Unknown assist kind: {kind!r}")
        build_prompt, validate, build_default, failure_message = _KITS[kind]

        cache_key = (kind, post.id or post.title, post.subreddit, self.model)
        with self._cache_lock:
            cached = self._cache.get(cache_key)
        if cached is not None:
            return dict(cached)

        if not self.enabled:
            logger.info("AI assist disabled; returning default %s kit", kind)
            return {**build_default(post), "fallback": True, "error": "AI assistance is not configured."}

        try:
            result = validate(self._complete_json(build_prompt(post)))
        except (OpenAIError, json.JSONDecodeError, InvalidAssistResponse) as exc:
            logger.warning("AI %s kit failed for post %s: %s", kind, post.id, exc)
            return {**build_default(post), "fallback": True, "error": failure_message}

        result["fallback"] = False
        with self._cache_lock:
            self._cache[cache_key] = result
        return dict(result)

    def _complete_json(self, prompt: str) -> dict:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": "You are a YouTube content assistant. Reply with JSON only."},
                {"role": "user", "content": prompt},
            ],
            response_format={"type": "json_object"},
            temperature=0.7,
        )
        content = response.choices[0].message.content or ""
        data = json.loads(content)
        if not isinstance(data, dict):
            raise InvalidAssistResponse("expected a JSON object")
        return data
