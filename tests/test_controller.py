"""
Tests for FetchController and FetchSession
"""

import threading

import pytest

from controller import (
    CANCELLED,
    FAILED,
    NO_SOURCE_MESSAGE,
    PENDING,
    POST_FETCH_FAILED_MESSAGE,
    STATUS_CANCELLED,
    STATUS_FAILED,
    STATUS_IDLE,
    STATUS_LOADING,
    STATUS_SUCCEEDED,
    SUCCEEDED,
    UNKNOWN_ERROR_MESSAGE,
    EngagementSettings,
    FetchController,
    FetchSession,
)
from errors import FetchCancelled, FetchError, MalformedPayloadError, TransportError, UpstreamStatusError
from models import Query
from reddit_client import INVALID_POST_URL_MESSAGE, UNEXPECTED_FORMAT_MESSAGE


ENGAGEMENT = EngagementSettings(target_count=50, min_score=1500, min_comments=50, max_pages=5, page_size=100)


def popular_video(post_data, post_id):
    return post_data(post_id, score=2000, num_comments=120, is_video=True)


class TestFetchSession:
    """Session state machine"""

    def setup_method(self):
        self.session = FetchSession(Query(subreddit="aww"), 1)

    def test_starts_pending(self):
        assert self.session.state == PENDING
        assert not self.session.terminal
        assert not self.session.done.is_set()

    def test_cancel_is_terminal_immediately(self):
        assert self.session.cancel() is True
        assert self.session.state == CANCELLED
        assert self.session.done.is_set()

    def test_terminal_state_never_changes(self):
        self.session.succeed([])
        assert self.session.cancel() is False
        assert self.session.fail(TransportError("boom")) is False
        assert self.session.state == SUCCEEDED

    def test_raise_if_cancelled(self):
        self.session.raise_if_cancelled()
        self.session.cancel()
        with pytest.raises(FetchCancelled):
            self.session.raise_if_cancelled()

    def test_cancelled_is_not_a_fetch_error(self):
        assert not issubclass(FetchCancelled, FetchError)


class TestBrowsing:
    """Plain listings, searches and their URLs"""

    def test_initial_view_is_idle(self, scripted_client):
        controller = FetchController(client=scripted_client(), subreddit="aww")
        view = controller.view()
        assert view.status == STATUS_IDLE
        assert view.subreddit == "aww"
        assert view.posts == ()

    def test_select_subreddit_loads_posts(self, scripted_client, listing, post_data):
        client = scripted_client([listing([post_data("a1"), post_data("a2")])])
        controller = FetchController(client=client, subreddit="aww", sort="new")

        session = controller.select_subreddit("r/cats")

        assert session.state == SUCCEEDED
        view = controller.view()
        assert view.status == STATUS_SUCCEEDED
        assert [post.id for post in view.posts] == ["a1", "a2"]
        assert view.subreddit == "cats"
        assert client.calls[0].startswith("https://www.reddit.com/r/cats/new.json?")
        assert "raw_json=1" in client.calls[0]

    def test_subreddit_change_coerces_search_only_sort(self, scripted_client, listing):
        client = scripted_client(default=listing([]))
        controller = FetchController(client=client, subreddit="aww")
        controller.search("kittens")
        controller.set_sort("relevance")

        controller.select_subreddit("cats")

        assert controller.query.sort == "hot"
        assert "/r/cats/hot.json" in client.calls[-1]

    def test_search_only_sort_rejected_while_browsing_subreddit(self, scripted_client):
        client = scripted_client()
        controller = FetchController(client=client, subreddit="aww")

        with pytest.raises(ValueError):
            controller.set_sort("relevance")

        assert controller.query.sort == "hot"
        assert controller.session is None
        assert client.calls == []

    def test_search_from_rising_falls_back_to_relevance(self, scripted_client, listing):
        client = scripted_client(default=listing([]))
        controller = FetchController(client=client, subreddit="aww", sort="rising")

        controller.search("otters")

        assert controller.query.sort == "relevance"
        assert "sort=relevance" in client.calls[-1]

    def test_search_clears_subreddit_context(self, scripted_client, listing, post_data):
        client = scripted_client([listing([post_data("s1", subreddit="pics")])])
        controller = FetchController(client=client, subreddit="aww")

        controller.search("  cute dogs ")

        assert controller.subreddit == ""
        assert controller.query.search == "cute dogs"
        assert "/search.json?q=cute+dogs" in client.calls[0]

    def test_empty_search_is_rejected(self, scripted_client):
        controller = FetchController(client=scripted_client())
        with pytest.raises(ValueError):
            controller.search("   ")

    def test_videos_sort_on_search_adds_domain_restriction(self, scripted_client, listing):
        client = scripted_client(default=listing([]))
        controller = FetchController(client=client, subreddit="aww")
        controller.search("cats")

        controller.set_sort("videos")

        url = client.calls[-1]
        assert "site%3Av.redd.it" in url
        assert "sort=relevance" in url

    def test_videos_sort_on_subreddit_uses_restricted_search(self, scripted_client, listing):
        client = scripted_client(default=listing([]))
        controller = FetchController(client=client, subreddit="aww")

        controller.set_sort("videos")

        url = client.calls[-1]
        assert url.startswith("https://www.reddit.com/r/aww/search.json?")
        assert "restrict_sr=on" in url
        assert "sort=new" in url

    def test_invalid_subreddit_name_fails_without_network(self, scripted_client):
        client = scripted_client()
        controller = FetchController(client=client)

        controller.select_subreddit("not a sub!")

        view = controller.view()
        assert view.status == STATUS_FAILED
        assert view.error_kind == "validation"
        assert client.calls == []

    def test_query_without_source_fails_validation(self, scripted_client):
        client = scripted_client()
        controller = FetchController(client=client)

        controller.load(Query(sort="hot"))

        view = controller.view()
        assert view.error == NO_SOURCE_MESSAGE
        assert client.calls == []

    def test_notifies_loading_then_result(self, scripted_client, listing):
        seen = []
        controller = FetchController(
            client=scripted_client([listing([])]),
            subreddit="aww",
            on_change=lambda view: seen.append(view.status),
        )

        controller.retry()

        assert seen == [STATUS_LOADING, STATUS_SUCCEEDED]


class TestEmptyStates:
    """Messages shown for successful sessions without posts"""

    def test_subreddit_empty_message(self, scripted_client, listing):
        controller = FetchController(client=scripted_client([listing([])]), subreddit="aww")
        controller.retry()
        assert controller.view().empty_message == "No posts found in r/aww."

    def test_search_empty_message(self, scripted_client, listing):
        controller = FetchController(client=scripted_client([listing([])]), subreddit="aww")
        controller.search("zebra")
        assert controller.view().empty_message == 'No posts found for your search: "zebra"'

    def test_engagement_empty_message(self, scripted_client, listing):
        controller = FetchController(
            client=scripted_client([listing([])]), subreddit="aww", sort="engagement", engagement=ENGAGEMENT
        )
        controller.retry()
        message = controller.view().empty_message
        assert message.startswith("Could not find enough videos in r/aww")
        assert "1,500 upvotes" in message

    def test_no_empty_message_when_posts_exist(self, scripted_client, listing, post_data):
        controller = FetchController(client=scripted_client([listing([post_data("x")])]), subreddit="aww")
        controller.retry()
        assert controller.view().empty_message is None


class TestErrors:
    """Error classification and messages"""

    def test_404_on_subreddit_names_the_subreddit(self, scripted_client):
        client = scripted_client([UpstreamStatusError("Failed", status=404, reason="Not Found")])
        controller = FetchController(client=client, subreddit="nosuchsub")

        controller.retry()

        view = controller.view()
        assert view.status == STATUS_FAILED
        assert view.error_kind == "not_found"
        assert view.error == "Subreddit 'r/nosuchsub' not found or is private."

    def test_404_on_search_stays_upstream_status(self, scripted_client):
        error = UpstreamStatusError("Failed to fetch from Reddit: Not Found (404)", status=404, reason="Not Found")
        controller = FetchController(client=scripted_client([error]))

        controller.search("cats")

        view = controller.view()
        assert view.error_kind == "upstream_status"
        assert view.error == "Failed to fetch from Reddit: Not Found (404)"

    def test_malformed_listing(self, scripted_client):
        controller = FetchController(client=scripted_client([{"unexpected": True}]), subreddit="aww")

        controller.retry()

        view = controller.view()
        assert view.error_kind == "malformed_payload"
        assert view.error == UNEXPECTED_FORMAT_MESSAGE

    def test_transport_error(self, scripted_client):
        controller = FetchController(client=scripted_client([TransportError("offline")]), subreddit="aww")
        controller.retry()
        assert controller.view().error_kind == "transport"

    def test_unexpected_exception_becomes_unknown_error(self, scripted_client):
        controller = FetchController(client=scripted_client([RuntimeError("bug")]), subreddit="aww")

        session = controller.retry()

        assert session.state == FAILED
        assert controller.view().error == UNKNOWN_ERROR_MESSAGE

    def test_retry_after_failure_clears_error(self, scripted_client, listing, post_data):
        client = scripted_client([TransportError("offline"), listing([post_data("ok")])])
        controller = FetchController(client=client, subreddit="aww")
        controller.retry()
        assert controller.view().status == STATUS_FAILED

        controller.retry()

        view = controller.view()
        assert view.status == STATUS_SUCCEEDED
        assert view.error is None
        assert len(view.posts) == 1


class TestPostUrl:
    """Single post lookup by permalink"""

    def test_invalid_url_fails_without_network(self, scripted_client):
        client = scripted_client()
        controller = FetchController(client=client, subreddit="aww")

        controller.open_post_url("https://example.com/not/reddit")

        view = controller.view()
        assert view.error_kind == "validation"
        assert view.error == INVALID_POST_URL_MESSAGE
        assert client.calls == []

    def test_lookup_sets_subreddit_context(self, scripted_client, listing, post_data):
        payload = [listing([post_data("abc123", subreddit="cats")]), listing([])]
        client = scripted_client([payload])
        controller = FetchController(client=client, subreddit="aww")

        controller.open_post_url("https://www.reddit.com/r/cats/comments/abc123/a_cat/?utm_source=share")

        view = controller.view()
        assert [post.id for post in view.posts] == ["abc123"]
        assert view.subreddit == "cats"
        assert client.calls == ["https://www.reddit.com/r/cats/comments/abc123/a_cat.json?raw_json=1"]

    def test_upstream_failure_uses_post_message(self, scripted_client):
        error = UpstreamStatusError("Failed", status=403, reason="Forbidden")
        controller = FetchController(client=scripted_client([error]), subreddit="aww")

        controller.open_post_url("https://www.reddit.com/r/cats/comments/abc123/")

        view = controller.view()
        assert view.error == POST_FETCH_FAILED_MESSAGE
        assert view.error_kind == "upstream_status"

    def test_non_post_payload_is_malformed(self, scripted_client, listing):
        controller = FetchController(client=scripted_client([listing([])]), subreddit="aww")

        controller.open_post_url("https://www.reddit.com/r/cats/comments/abc123/")

        assert controller.view().error_kind == "malformed_payload"


class TestEngagement:
    """Multi-page aggregation of popular videos"""

    def test_stops_when_cursor_runs_out(self, scripted_client, listing, post_data):
        pages = [
            listing([popular_video(post_data, f"p{page}_{i}") for i in range(10)] + [post_data(f"n{page}")], after=after)
            for page, after in ((1, "t3_p1"), (2, "t3_p2"), (3, None), (4, "t3_p4"), (5, "t3_p5"))
        ]
        client = scripted_client(pages)
        controller = FetchController(client=client, subreddit="aww", sort="engagement", engagement=ENGAGEMENT)

        controller.retry()

        view = controller.view()
        assert len(client.calls) == 3
        assert len(view.posts) == 30
        assert all(post.is_video for post in view.posts)

    def test_truncates_to_target(self, scripted_client, listing, post_data):
        page = listing([popular_video(post_data, f"v{i}") for i in range(60)], after="t3_next")
        client = scripted_client([page])
        controller = FetchController(client=client, subreddit="aww", sort="engagement", engagement=ENGAGEMENT)

        controller.retry()

        assert len(controller.view().posts) == 50
        assert len(client.calls) == 1

    def test_respects_page_limit(self, scripted_client, listing, post_data):
        client = scripted_client(default=listing([popular_video(post_data, "only")], after="t3_more"))
        controller = FetchController(client=client, subreddit="aww", sort="engagement", engagement=ENGAGEMENT)

        controller.retry()

        assert len(client.calls) == 5
        assert len(controller.view().posts) == 5

    def test_thresholds_are_strict(self, scripted_client, listing, post_data):
        posts = [
            post_data("at_score", score=1500, num_comments=100, is_video=True),
            post_data("at_comments", score=2000, num_comments=50, is_video=True),
            post_data("image", score=9000, num_comments=900),
            post_data("good", score=1501, num_comments=51, is_video=True),
        ]
        controller = FetchController(
            client=scripted_client([listing(posts)]), subreddit="aww", sort="engagement", engagement=ENGAGEMENT
        )

        controller.retry()

        assert [post.id for post in controller.view().posts] == ["good"]

    def test_page_urls_carry_cursor(self, scripted_client, listing, post_data):
        client = scripted_client(
            [listing([post_data("a")], after="t3_first"), listing([post_data("b")])]
        )
        controller = FetchController(client=client, subreddit="aww", sort="engagement", engagement=ENGAGEMENT)

        controller.retry()

        first, second = client.calls
        assert "/r/aww/top.json?t=all&limit=100" in first
        assert "after" not in first
        assert "after=t3_first" in second

    def test_search_engagement_pages_search_results(self, scripted_client, listing):
        client = scripted_client([listing([])])
        controller = FetchController(client=client, subreddit="aww", sort="engagement", engagement=ENGAGEMENT)

        controller.search("drift")

        assert "/search.json?q=drift&sort=top" in client.calls[0]
        assert controller.view().empty_message.startswith('Could not find enough videos matching "drift"')

    def test_error_names_the_page(self, scripted_client, listing, post_data):
        client = scripted_client(
            [
                listing([post_data("a")], after="t3_a"),
                UpstreamStatusError("Failed", status=500, reason="Internal Server Error"),
            ]
        )
        controller = FetchController(client=client, subreddit="aww", sort="engagement", engagement=ENGAGEMENT)

        controller.retry()

        view = controller.view()
        assert view.error == "Failed to fetch from Reddit (page 2): Internal Server Error (500)"
        assert view.posts == ()

    def test_malformed_page_fails_session(self, scripted_client, listing, post_data):
        client = scripted_client([listing([post_data("a")], after="t3_a"), {"data": {}}])
        controller = FetchController(client=client, subreddit="aww", sort="engagement", engagement=ENGAGEMENT)

        controller.retry()

        assert controller.view().error_kind == MalformedPayloadError.kind

    def test_cancel_during_third_page_publishes_nothing(self, scripted_client, listing, post_data):
        client = scripted_client(
            default=listing([popular_video(post_data, "v")], after="t3_more")
        )
        controller = FetchController(client=client, subreddit="aww", sort="engagement", engagement=ENGAGEMENT)

        def cancel_on_third_page(number, url):
            if number == 3:
                controller.session.cancel()

        client.on_call = cancel_on_third_page

        session = controller.retry()

        assert session.state == CANCELLED
        assert len(client.calls) == 3
        view = controller.view()
        assert view.status == STATUS_CANCELLED
        assert view.posts == ()
        assert view.error is None


class TestSupersession:
    """Background sessions replaced by newer queries"""

    def setup_method(self):
        self.gate = threading.Event()
        self.started = threading.Event()

    def teardown_method(self):
        self.gate.set()

    def _controller(self, client, **kwargs):
        client.gate = self.gate
        client.on_call = lambda number, url: self.started.set()
        return FetchController(client=client, subreddit="aww", background=True, **kwargs)

    def test_new_query_cancels_exactly_the_previous_session(self, scripted_client, listing):
        controller = self._controller(scripted_client(default=listing([])))

        sessions = [controller.select_subreddit(name) for name in ("aww", "cats", "dogs")]

        assert [session.state for session in sessions] == [CANCELLED, CANCELLED, PENDING]
        assert controller.session is sessions[-1]

        self.gate.set()
        controller.wait(5)
        assert sessions[-1].state == SUCCEEDED
        assert [session.state for session in sessions[:2]] == [CANCELLED, CANCELLED]

    def test_late_error_of_superseded_session_is_hidden(self, scripted_client, listing, post_data):
        seen = []
        client = scripted_client([TransportError("late failure")], default=listing([post_data("c1", subreddit="cats")]))
        controller = self._controller(client, on_change=seen.append)

        first = controller.select_subreddit("aww")
        assert self.started.wait(5)
        second = controller.select_subreddit("cats")
        self.gate.set()
        controller.wait(5)
        first.done.wait(5)

        assert first.state == CANCELLED
        assert second.state == SUCCEEDED
        view = controller.view()
        assert view.error is None
        assert view.subreddit == "cats"
        assert all(state.error is None for state in seen)

    def test_close_cancels_in_flight_session(self, scripted_client, listing):
        controller = self._controller(scripted_client(default=listing([])))

        session = controller.select_subreddit("aww")
        assert self.started.wait(5)
        controller.close()

        assert session.state == CANCELLED
        assert controller.view().status == STATUS_CANCELLED
        self.gate.set()
        assert controller.view().status == STATUS_CANCELLED
        with pytest.raises(RuntimeError):
            controller.select_subreddit("cats")
