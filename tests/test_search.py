# tests/test_search.py
"""Tests for the global search cache and in-view filtering."""

from search import MIN_QUERY_LENGTH, GlobalSearch, filter_cards


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class CountingClient:
    """Wraps a client and counts table() calls."""

    def __init__(self, inner):
        self._inner = inner
        self.calls = 0

    def table(self, name):
        self.calls += 1
        return self._inner.table(name)


class TestGlobalSearch:
    def test_short_query_skips_backend(self, populated):
        client = CountingClient(populated.sb)
        results = GlobalSearch(client).search("ab")

        assert MIN_QUERY_LENGTH == 3
        assert results == {"sections": [], "folders": [], "cards": []}
        assert client.calls == 0

    def test_results_cached_until_stale(self, populated):
        client = CountingClient(populated.sb)
        clock = Clock()
        search = GlobalSearch(client, ttl=30, clock=clock)

        first = search.search("python")
        calls = client.calls
        assert [c["title"] for c in first["cards"]] == ["Python docs"]

        clock.now = 29
        assert search.search("  PYTHON ") == first
        assert client.calls == calls

        clock.now = 31
        search.search("python")
        assert client.calls > calls

    def test_invalidate(self, populated):
        client = CountingClient(populated.sb)
        search = GlobalSearch(client, clock=Clock())
        search.search("python")
        calls = client.calls

        search.invalidate()
        search.search("python")
        assert client.calls > calls

    def test_stale_entries_evicted_on_write(self, populated):
        clock = Clock()
        search = GlobalSearch(populated.sb, ttl=30, clock=clock)
        for i in range(500):
            search.search(f"query {i}")
            clock.now += 100

        assert list(search._cache) == ["query 499"]

    def test_cache_size_capped(self, populated):
        search = GlobalSearch(populated.sb, clock=Clock(), max_entries=5)
        for i in range(20):
            search.search(f"query {i}")

        assert len(search._cache) == 5
        assert "query 19" in search._cache


CARDS = [
    {"id": "1", "title": "Python docs", "description": None, "tags": ["ref"]},
    {"id": "2", "title": "Tracker", "description": "Team bugs", "tags": []},
    {"card_id": "3", "title": "Recipes", "tags": ["Food"]},
]


class TestFilterCards:
    def test_no_filters_returns_all(self):
        assert filter_cards(CARDS) == CARDS

    def test_text_matches_title_description_tags(self):
        assert [c["title"] for c in filter_cards(CARDS, "PYTHON")] == ["Python docs"]
        assert [c["title"] for c in filter_cards(CARDS, "bugs")] == ["Tracker"]
        assert [c["title"] for c in filter_cards(CARDS, "food")] == ["Recipes"]

    def test_favorites_only(self):
        assert [c["title"] for c in filter_cards(CARDS, favorite_ids=["3", "1"])] == ["Python docs", "Recipes"]
        assert filter_cards(CARDS, favorite_ids=[]) == []

    def test_combined(self):
        assert filter_cards(CARDS, "docs", favorite_ids=["3"]) == []
