"""
Fetch controller: turns browsing query changes into cancellable fetch sessions
and exposes a single consistent view (loading / error / posts) to renderers.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

import config
from errors import (
    FetchCancelled,
    FetchError,
    NotFoundError,
    UpstreamStatusError,
    ValidationError,
)
from models import (
    SORT_ENGAGEMENT,
    SORT_RELEVANCE,
    SORT_TOP,
    SORT_VIDEOS,
    SOURCE_NONE,
    SOURCE_POST_URL,
    SOURCE_SUBREDDIT,
    Post,
    Query,
    is_valid_subreddit_name,
    normalize_subreddit_name,
)
from reddit_client import VIDEO_DOMAIN_MARKER, RedditClient, parse_listing, parse_post_lookup

logger = logging.getLogger(__name__)

# Session states
PENDING = "pending"
SUCCEEDED = "succeeded"
FAILED = "failed"
CANCELLED = "cancelled"

# Controller view states
STATUS_IDLE = "idle"
STATUS_LOADING = "loading"
STATUS_SUCCEEDED = SUCCEEDED
STATUS_FAILED = FAILED
STATUS_CANCELLED = CANCELLED

POST_FETCH_FAILED_MESSAGE = (
    "Could not fetch the post from the URL. "
    "Please check if it's a valid and public Reddit post URL."
)
NO_SOURCE_MESSAGE = "Pick a subreddit, search Reddit or paste a post URL."
UNKNOWN_ERROR_MESSAGE = "An unknown error occurred."


@dataclass(frozen=True)
class EngagementSettings:
    """Thresholds for the multi-page "engagement" aggregation."""

    target_count: int = config.ENGAGEMENT_TARGET_COUNT
    min_score: int = config.ENGAGEMENT_MIN_SCORE
    min_comments: int = config.ENGAGEMENT_MIN_COMMENTS
    max_pages: int = config.ENGAGEMENT_MAX_PAGES
    page_size: int = config.ENGAGEMENT_PAGE_SIZE

    def qualifies(self, post: Post) -> bool:
        return post.is_video and post.score > self.min_score and post.num_comments > self.min_comments


class FetchSession:
    """One cancellable logical fetch bound to a Query snapshot.

    ``pending`` moves to exactly one of ``succeeded``, ``failed`` or
    ``cancelled``; terminal states never change again.
    """

    def __init__(self, query: Query, number: int):
        self.query = query
        self.number = number
        self.state = PENDING
        self.posts: list[Post] = []
        self.error: Optional[FetchError] = None
        self.done = threading.Event()
        self._cancel_event = threading.Event()
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"<FetchSession #{self.number} {self.state} {self.query!r}>"

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def terminal(self) -> bool:
        return self.state != PENDING

    def raise_if_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise FetchCancelled()

    def cancel(self) -> bool:
        """Signal cancellation; returns True when this call ended the session."""
        self._cancel_event.set()
        return self._finish(CANCELLED)

    def succeed(self, posts: list[Post]) -> bool:
        return self._finish(SUCCEEDED, posts=posts)

    def fail(self, error: FetchError) -> bool:
        return self._finish(FAILED, error=error)

    def _finish(self, state: str, posts: Optional[list[Post]] = None, error: Optional[FetchError] = None) -> bool:
        with self._lock:
            if self.state != PENDING:
                return False
            self.state = state
            self.posts = list(posts or [])
            self.error = error
        self.done.set()
        return True


@dataclass(frozen=True)
class ViewState:
    """Render-ready snapshot of the controller."""

    status: str
    query: Query
    subreddit: str
    posts: tuple[Post, ...] = ()
    error: Optional[str] = None
    error_kind: Optional[str] = None
    empty_message: Optional[str] = None

    @property
    def loading(self) -> bool:
        return self.status == STATUS_LOADING


class FetchController:
    """Owns the current query and at most one in-flight FetchSession."""

    def __init__(
        self,
        client: Optional[RedditClient] = None,
        subreddit: str = config.DEFAULT_SUBREDDIT,
        sort: str = config.DEFAULT_SORT,
        engagement: Optional[EngagementSettings] = None,
        background: bool = False,
        on_change: Optional[Callable[[ViewState], None]] = None,
    ):
        """
        Args:
            client: Reddit client used for every upstream call
            subreddit: Initial subreddit context
            sort: Initial sort mode
            engagement: Thresholds for the "engagement" sort
            background: Run each session on its own worker thread
            on_change: Called with a fresh ViewState whenever the view changes
        """
        self.client = client or RedditClient()
        self.engagement = engagement or EngagementSettings()
        self.background = background
        self.on_change = on_change

        self._lock = threading.RLock()
        self._query = Query(subreddit=normalize_subreddit_name(subreddit), sort=sort)
        self._context_subreddit = self._query.subreddit
        self._session: Optional[FetchSession] = None
        self._session_count = 0
        self._status = STATUS_IDLE
        self._posts: tuple[Post, ...] = ()
        self._error: Optional[FetchError] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Public state
    # ------------------------------------------------------------------

    @property
    def query(self) -> Query:
        return self._query

    @property
    def subreddit(self) -> str:
        """Ambient subreddit context."""
        return self._context_subreddit

    @property
    def session(self) -> Optional[FetchSession]:
        return self._session

    def view(self) -> ViewState:
        with self._lock:
            empty_message = None
            if self._status == STATUS_SUCCEEDED and not self._posts:
                empty_message = self.empty_message(self._query, self._context_subreddit)
            return ViewState(
                status=self._status,
                query=self._query,
                subreddit=self._context_subreddit,
                posts=self._posts,
                error=self._error.message if self._error else None,
                error_kind=self._error.kind if self._error else None,
                empty_message=empty_message,
            )

    def empty_message(self, query: Query, subreddit: str) -> str:
        if query.source == SOURCE_POST_URL:
            return "Could not load the post from the provided URL."
        if query.sort == SORT_ENGAGEMENT:
            criteria = (
                f"with over {self.engagement.min_score:,} upvotes "
                f"and {self.engagement.min_comments:,} comments"
            )
            if query.search:
                return f'Could not find enough videos matching "{query.search}" {criteria}.'
            return f"Could not find enough videos in r/{subreddit} {criteria}. Try another subreddit."
        if query.search:
            return f'No posts found for your search: "{query.search}"'
        return f"No posts found in r/{subreddit}."

    # ------------------------------------------------------------------
    # Query changes
    # ------------------------------------------------------------------

    def load(self, query: Query) -> FetchSession:
        """Start a session for an explicit query."""
        return self._start(query, query.subreddit)

    def select_subreddit(self, subreddit: str) -> FetchSession:
        with self._lock:
            query = self._query.with_subreddit(subreddit)
        return self._start(query, query.subreddit)

    def search(self, text: str) -> FetchSession:
        if not text or not text.strip():
            raise ValueError("Search text must not be empty")
        with self._lock:
            query = self._query.with_search(text)
        return self._start(query, "")

    def open_post_url(self, post_url: str) -> FetchSession:
        if not post_url or not post_url.strip():
            raise ValueError("Post URL must not be empty")
        with self._lock:
            query = self._query.with_post_url(post_url)
        return self._start(query, "")

    def set_sort(self, sort: str) -> FetchSession:
        with self._lock:
            query, context = self._query.with_sort(sort), self._context_subreddit
        return self._start(query, context)

    def retry(self) -> FetchSession:
        """Re-run the current query."""
        with self._lock:
            query, context = self._query, self._context_subreddit
        return self._start(query, context)

    def close(self) -> None:
        """Cancel any in-flight session; the controller accepts no more queries."""
        with self._lock:
            self._closed = True
            session = self._session
            if session is not None and session.cancel():
                self._status = STATUS_CANCELLED
                logger.debug("Session #%s cancelled on close", session.number)
            view = self.view()
        self._notify(view)

    def wait(self, timeout: Optional[float] = None) -> Optional[FetchSession]:
        """Block until the current session reaches a terminal state."""
        session = self._session
        if session is not None:
            session.done.wait(timeout)
        return session

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def _start(self, query: Query, context_subreddit: str) -> FetchSession:
        with self._lock:
            if self._closed:
                raise RuntimeError("FetchController is closed")
            # Cancel first, then replace: never two live sessions
            previous = self._session
            if previous is not None and previous.cancel():
                logger.debug("Session #%s superseded", previous.number)
            self._session_count += 1
            session = FetchSession(query, self._session_count)
            self._session = session
            self._query = query
            self._context_subreddit = context_subreddit
            self._status = STATUS_LOADING
            self._posts = ()
            self._error = None
            view = self.view()

        self._notify(view)
        if self.background:
            worker = threading.Thread(
                target=self._run,
                args=(session,),
                name=f"fetch-session-{session.number}",
                daemon=True,
            )
            worker.start()
        else:
            self._run(session)
        return session

    def _run(self, session: FetchSession) -> None:
        context = None
        try:
            posts, context = self._execute(session)
        except FetchCancelled:
            self._finish_cancelled(session)
            return
        except FetchError as exc:
            logger.info("Session #%s failed (%s): %s", session.number, exc.kind, exc.message)
            self._publish(session, error=exc)
            return
        except Exception:
            logger.exception("Session #%s crashed", session.number)
            self._publish(session, error=FetchError(UNKNOWN_ERROR_MESSAGE))
            return
        self._publish(session, posts=posts, context=context)

    def _finish_cancelled(self, session: FetchSession) -> None:
        with self._lock:
            session.cancel()
            if session is not self._session:
                return
            self._status = STATUS_CANCELLED
            view = self.view()
        logger.debug("Session #%s cancelled", session.number)
        self._notify(view)

    def _publish(
        self,
        session: FetchSession,
        posts: Optional[list[Post]] = None,
        error: Optional[FetchError] = None,
        context: Optional[str] = None,
    ) -> None:
        with self._lock:
            # A session superseded or closed meanwhile publishes nothing
            if session.cancelled or session is not self._session:
                session.cancel()
                return
            if error is not None:
                session.fail(error)
                self._status = STATUS_FAILED
                self._error = error
            else:
                session.succeed(posts or [])
                self._status = STATUS_SUCCEEDED
                self._posts = tuple(session.posts)
                if context:
                    self._context_subreddit = context
            view = self.view()
        self._notify(view)

    def _notify(self, view: ViewState) -> None:
        if self.on_change is not None:
            self.on_change(view)

    # ------------------------------------------------------------------
    # Request construction
    # ------------------------------------------------------------------

    def _execute(self, session: FetchSession) -> tuple[list[Post], Optional[str]]:
        query = session.query
        session.raise_if_cancelled()

        if query.source == SOURCE_POST_URL:
            post = self._lookup_post(session)
            return [post], post.subreddit or None
        if query.source == SOURCE_NONE:
            raise ValidationError(NO_SOURCE_MESSAGE)
        if query.source == SOURCE_SUBREDDIT and not is_valid_subreddit_name(query.subreddit):
            raise ValidationError(f"'{query.subreddit}' is not a valid subreddit name.")

        if query.sort == SORT_ENGAGEMENT:
            return self._collect_engagement(session), None

        payload = self._get(session, self._listing_url(query))
        return parse_listing(payload).posts, None

    def _listing_url(self, query: Query) -> str:
        if query.search:
            if query.sort == SORT_VIDEOS:
                return self.client.search_url(f"{query.search} {VIDEO_DOMAIN_MARKER}", SORT_RELEVANCE)
            return self.client.search_url(query.search, query.sort)
        if query.sort == SORT_VIDEOS:
            return self.client.subreddit_videos_url(query.subreddit)
        return self.client.listing_url(query.subreddit, query.sort)

    def _lookup_post(self, session: FetchSession) -> Post:
        # Raises ValidationError before any network call
        url = self.client.post_json_url(session.query.post_url)
        try:
            payload = self._get(session, url)
        except UpstreamStatusError as exc:
            raise UpstreamStatusError(POST_FETCH_FAILED_MESSAGE, status=exc.status, reason=exc.reason) from exc
        return parse_post_lookup(payload)

    def _collect_engagement(self, session: FetchSession) -> list[Post]:
        """Page through top-of-all-time, keeping popular videos only."""
        settings = self.engagement
        query = session.query
        collected: list[Post] = []
        after = None
        pages_fetched = 0

        while len(collected) < settings.target_count and pages_fetched < settings.max_pages:
            session.raise_if_cancelled()
            pages_fetched += 1
            if query.search:
                url = self.client.search_url(query.search, SORT_TOP, limit=settings.page_size, after=after)
            else:
                url = self.client.listing_url(
                    query.subreddit, SORT_TOP, limit=settings.page_size, after=after, t="all"
                )

            page = parse_listing(self._get(session, url, page=pages_fetched))
            if not page.posts:
                break
            collected.extend(post for post in page.posts if settings.qualifies(post))
            if not page.after:
                break
            after = page.after

        session.raise_if_cancelled()
        logger.debug(
            "Engagement session #%s collected %d posts over %d pages",
            session.number,
            len(collected),
            pages_fetched,
        )
        return collected[: settings.target_count]

    def _get(self, session: FetchSession, url: str, page: Optional[int] = None):
        session.raise_if_cancelled()
        try:
            payload = self.client.get_json(url)
        except FetchError as exc:
            # A late failure of a superseded session is a cancellation
            session.raise_if_cancelled()
            if isinstance(exc, UpstreamStatusError):
                raise self._classify_status(session.query, exc, page) from exc
            raise
        session.raise_if_cancelled()
        return payload

    @staticmethod
    def _classify_status(query: Query, exc: UpstreamStatusError, page: Optional[int]) -> FetchError:
        if exc.status == 404 and query.source == SOURCE_SUBREDDIT:
            return NotFoundError(f"Subreddit 'r/{query.subreddit}' not found or is private.", status=404)
        if page is not None:
            return UpstreamStatusError(
                f"Failed to fetch from Reddit (page {page}): {exc.reason} ({exc.status})",
                status=exc.status,
                reason=exc.reason,
            )
        return exc
