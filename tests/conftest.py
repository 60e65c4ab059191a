import pytest

from campus_feed.storage.memory_store import InMemoryFeedStore
from tests.stubs.feed_stubs import make_comment, make_post


@pytest.fixture
def feed_store():
    """An in-memory store with three posts and a short thread on p1."""
    return InMemoryFeedStore(
        posts=[
            make_post("p1", minutes=0, up=3, author_id="alice"),
            make_post("p2", minutes=10, down=1, author_id="bob"),
            make_post("p3", minutes=20, up=1, down=4, author_id="alice"),
        ],
        comments=[
            make_comment("c1", None, minutes=1, up=2, author_id="bob"),
            make_comment("c2", "c1", minutes=2, author_id="alice"),
            make_comment("c3", None, minutes=3, down=1, author_id="alice"),
            make_comment("c4", "gone", minutes=4, author_id="bob"),
            make_comment("x1", None, minutes=5, post_id="p2", author_id="alice"),
        ],
    )
