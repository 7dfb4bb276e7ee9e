"""
Reddit Clip Browser - interactive terminal front end for the fetch controller
"""

import logging
from datetime import datetime
from typing import List

import config
from controller import STATUS_FAILED, STATUS_SUCCEEDED, FetchController, ViewState
from models import ALL_SORTS, Post
from reddit_client import RedditClient
from services.media_download import MediaDownloader
from services.post_builder import format_number
from services.repost_assist import KINDS, RepostAssistant

HELP = """Commands:
  r <subreddit>      browse a subreddit (e.g. r aww)
  s <text>           search all of Reddit
  u <post url>       open a single post by URL
  sort <mode>        one of: {sorts}
  retry              fetch the current query again
  dl <n>             show how to download post n
  ai <kind> <n>      repost kit for post n ({kinds})
  q                  quit
""".format(sorts=", ".join(ALL_SORTS), kinds=", ".join(KINDS))


def format_timestamp(timestamp: float) -> str:
    """Convert Unix timestamp to readable format"""
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


def display_posts(posts: List[Post], show_details: bool = True):
    """
    Display posts in a formatted way

    Args:
        posts: Posts to print
        show_details: Whether to show full details or just titles
    """
    print(f"\n{'=' * 80}")
    print(f"Found {len(posts)} posts")
    print(f"{'=' * 80}\n")

    for i, post in enumerate(posts, 1):
        marker = ""
        if post.video is not None:
            marker = " [GIF]" if post.video.is_gif else f" [VIDEO {post.video.duration}s]"
        print(f"[{i}] {post.title}{marker}")

        if show_details:
            print(f"    Author: u/{post.author} | Subreddit: r/{post.subreddit}")
            print(f"    Score: {format_number(post.score)} | Comments: {format_number(post.num_comments)}")
            if post.created_utc:
                print(f"    Posted: {format_timestamp(post.created_utc)}")
            print(f"    URL: {post.full_permalink}")
            print()


def render(view: ViewState):
    """Print the controller view whenever it changes."""
    if view.loading:
        print(f"\nLoading ({_describe(view)})...")
    elif view.status == STATUS_FAILED:
        print(f"\nOops! Something went wrong.\n{view.error}\nType 'retry' to try again.")
    elif view.status == STATUS_SUCCEEDED:
        if view.posts:
            display_posts(list(view.posts), show_details=config.SHOW_POST_DETAILS)
        else:
            print(f"\n{view.empty_message}")


def _describe(view: ViewState) -> str:
    query = view.query
    if query.post_url:
        return query.post_url
    if query.search:
        return f'search "{query.search}", sort {query.sort}'
    return f"r/{query.subreddit}, sort {query.sort}"


def _post_at(controller: FetchController, raw_index: str) -> Post:
    posts = controller.view().posts
    index = int(raw_index)
    if not 1 <= index <= len(posts):
        raise ValueError(f"Enter a post number between 1 and {len(posts)}")
    return posts[index - 1]


def handle_command(line: str, controller: FetchController, downloader: MediaDownloader, assistant: RepostAssistant) -> bool:
    """Run one command; returns False when the user wants to quit."""
    command, _, argument = line.strip().partition(" ")
    command = command.lower()
    argument = argument.strip()

    if command in ("q", "quit", "exit"):
        return False
    if command.startswith("r/") and not argument:
        command, argument = "r", command
    if command == "r" and argument:
        controller.select_subreddit(argument)
    elif command == "s" and argument:
        controller.search(argument)
    elif command == "u" and argument:
        controller.open_post_url(argument)
    elif command == "sort" and argument in ALL_SORTS:
        available = controller.query.available_sorts
        if argument in available:
            controller.set_sort(argument)
        else:
            print(f"Sort '{argument}' is not available here. Choose one of: {', '.join(available)}")
    elif command == "retry":
        controller.retry()
    elif command == "dl" and argument:
        plan = downloader.plan(_post_at(controller, argument))
        if plan is None:
            print("This post has no downloadable media.")
        else:
            print(f"{plan.kind}: {plan.url}" + (f" -> {plan.filename}" if plan.filename else ""))
    elif command == "ai" and argument:
        kind, _, raw_index = argument.partition(" ")
        if kind not in KINDS:
            print(f"Unknown kit: {kind}")
        else:
            result = assistant.generate(kind, _post_at(controller, raw_index.strip()))
            for key, value in result.items():
                print(f"  {key}: {value}")
    else:
        print(HELP)
    return True


def main():
    """Interactive browsing loop"""
    logging.basicConfig(level=config.LOG_LEVEL, format="%(levelname)s %(name)s: %(message)s")

    print("Reddit Clip Browser")
    print("=" * 50)
    print(HELP)

    controller = FetchController(client=RedditClient(), background=True, on_change=render)
    downloader = MediaDownloader()
    assistant = RepostAssistant()

    controller.select_subreddit(config.DEFAULT_SUBREDDIT)
    try:
        while True:
            try:
                line = input("\n> ")
            except EOFError:
                break
            if not line.strip():
                continue
            try:
                if not handle_command(line, controller, downloader, assistant):
                    break
            except ValueError as exc:
                print(f"Invalid input: {exc}")
    except KeyboardInterrupt:
        pass
    finally:
        controller.close()


if __name__ == "__main__":
    main()
