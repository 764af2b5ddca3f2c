"""
Tests for the data model: resource parsing, cursor ordering, page invariants.
"""

import pytest

from conftest import REPO, make_item
from models import FeedCursor, NewData, WatchedResource, parse_resource


# ──────────────────────────────────────────────
# Resource parsing
# ──────────────────────────────────────────────

class TestParseResource:
    def test_owner_and_name(self):
        r = parse_resource("mirage/ocaml-github")
        assert r == WatchedResource("mirage", "ocaml-github")
        assert str(r) == "mirage/ocaml-github"

    def test_surrounding_whitespace_is_ignored(self):
        assert parse_resource("  a/b ") == WatchedResource("a", "b")

    @pytest.mark.parametrize("bad", ["", "justone", "a/b/c", "/b", "a/", "a b/c", "a/b?x=1"])
    def test_rejects_malformed(self, bad):
        with pytest.raises(ValueError, match="username/repo"):
            parse_resource(bad)


# ──────────────────────────────────────────────
# Cursor
# ──────────────────────────────────────────────

class TestFeedCursor:
    def test_empty_covers_nothing(self):
        c = FeedCursor.empty()
        assert c.is_empty
        assert not c.covers(make_item(1))

    def test_covers_up_to_and_including_boundary(self):
        c = FeedCursor(position=10)
        assert c.covers(make_item(9))
        assert c.covers(make_item(10))
        assert not c.covers(make_item(11))

    def test_is_after(self):
        assert FeedCursor(position=5).is_after(FeedCursor.empty())
        assert FeedCursor(position=6).is_after(FeedCursor(position=5))
        assert not FeedCursor(position=5).is_after(FeedCursor(position=5))
        assert not FeedCursor.empty().is_after(FeedCursor(position=1))

    def test_equality_includes_etag(self):
        assert FeedCursor(5, '"abc"') == FeedCursor(5, '"abc"')
        assert FeedCursor(5, '"abc"') != FeedCursor(5, '"def"')

    def test_dict_form(self):
        c = FeedCursor(position=42, etag='W/"x"')
        assert FeedCursor.from_dict(c.to_dict()) == c
        assert FeedCursor.from_dict({"position": None, "etag": ""}) == FeedCursor.empty()


# ──────────────────────────────────────────────
# Pages
# ──────────────────────────────────────────────

class TestNewData:
    def test_empty_items_rejected(self):
        with pytest.raises(ValueError):
            NewData(items=(), cursor=FeedCursor(position=1))

    def test_item_position_from_id(self):
        item = make_item(123456789012)
        assert item.position == 123456789012
        assert item.resource == REPO
