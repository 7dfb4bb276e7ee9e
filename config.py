"""
Configuration file for Reddit Clip Browser
Supports environment variable overrides for Docker/production deployment
"""

import os

# Default browsing context
DEFAULT_SUBREDDIT = os.getenv("DEFAULT_SUBREDDIT", "newsokur")
DEFAULT_SORT = os.getenv("DEFAULT_SORT", "hot")
DEFAULT_POST_LIMIT = int(os.getenv("DEFAULT_POST_LIMIT", "50"))

# Reddit endpoints
REDDIT_BASE_URL = os.getenv("REDDIT_BASE_URL", "https://www.reddit.com")
# When set, client requests go through the proxy's /api/fetch endpoint
PROXY_FETCH_URL = os.getenv("PROXY_FETCH_URL", "")

# User agent for direct Reddit API requests
USER_AGENT = os.getenv("USER_AGENT", "reddit-clip-browser/1.0 (by /u/reddituser)")

# API settings
REQUEST_TIMEOUT = int(os.getenv("REQUEST_TIMEOUT", "10"))  # seconds
MAX_POSTS_PER_REQUEST = int(os.getenv("MAX_POSTS_PER_REQUEST", "100"))  # Reddit's max

# "engagement" sort: multi-page aggregation of popular videos
ENGAGEMENT_TARGET_COUNT = int(os.getenv("ENGAGEMENT_TARGET_COUNT", "50"))
ENGAGEMENT_MIN_SCORE = int(os.getenv("ENGAGEMENT_MIN_SCORE", "1500"))
ENGAGEMENT_MIN_COMMENTS = int(os.getenv("ENGAGEMENT_MIN_COMMENTS", "50"))
ENGAGEMENT_MAX_PAGES = int(os.getenv("ENGAGEMENT_MAX_PAGES", "5"))
ENGAGEMENT_PAGE_SIZE = int(os.getenv("ENGAGEMENT_PAGE_SIZE", "100"))

# Proxy / upstream resolver
PROXY_ATTEMPT_TIMEOUT = float(os.getenv("PROXY_ATTEMPT_TIMEOUT", "8.0"))  # seconds per attempt
PROXY_RSS_LIMIT = int(os.getenv("PROXY_RSS_LIMIT", "50"))
PROXY_ALLOWED_HOSTS = [
    host.strip().lower()
    for host in os.getenv(
        "PROXY_ALLOWED_HOSTS", "reddit.com,www.reddit.com,old.reddit.com,v.redd.it"
    ).split(",")
    if host.strip()
]

# Display settings
SHOW_POST_DETAILS = os.getenv("SHOW_POST_DETAILS", "True").lower() == "true"

# Media download helpers
MERGE_SERVICE_URL = os.getenv("MERGE_SERVICE_URL", "https://sd.redditsave.com/download.php")
FALLBACK_DOWNLOADER_URL = os.getenv("FALLBACK_DOWNLOADER_URL", "https://rapidsave.com/")

# AI repost assist
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL") or None
AI_MODEL = os.getenv("AI_MODEL", "gpt-4o-mini")
AI_TIMEOUT = float(os.getenv("AI_TIMEOUT", "30"))
AI_CACHE_TTL = int(os.getenv("AI_CACHE_TTL", "3600"))  # seconds
AI_CACHE_MAXSIZE = int(os.getenv("AI_CACHE_MAXSIZE", "256"))

# Server
SECRET_KEY = os.getenv("SECRET_KEY", "change-this-to-a-random-secret-key-in-production")
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "5175"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Preset subreddit groups shown in the channel picker
SUBREDDIT_GROUPS = [
    {
        "title": "Japanese Culture & Life",
        "channels": ["newsokur", "japanlife", "japanpics", "anime", "manga", "JapaneseFood", "ramen", "ghibli", "tokyo"],
    },
    {
        "title": "Travel",
        "channels": ["roadtrip", "hiking", "backpacking", "camping", "travel", "Survival", "pics"],
    },
    {
        "title": "Animals",
        "channels": ["cats", "aww", "Catswhoyell", "pandas", "AnimalsBeingAnimals", "NatureIsFuckingLit"],
    },
    {
        "title": "Food",
        "channels": ["StupidFood", "KoreanFood", "chinesefood"],
    },
    {
        "title": "Gaming",
        "channels": ["gaming", "Games", "pcgaming", "playstation", "xbox", "nintendo"],
    },
    {
        "title": "Creative & Amazing",
        "channels": ["BeAmazed", "nextfuckinglevel", "SipsTea"],
    },
    {
        "title": "Automotive",
        "channels": ["carspotting", "spotted", "supercars", "Justrolledintotheshop", "motorcycles"],
    },
    {
        "title": "AI",
        "channels": ["aivideo", "ChatGPT", "SoraAi"],
    },
]
