"""Tests for the keyed entity cache."""

from dataclasses import dataclass

import pytest

from chatgate.cache import Cache


@dataclass
class Item:
    id: str
    name: str = ""


class TestAdd:
    def test_add_returns_value(self):
        cache = Cache()
        item = Item("1", "a")
        assert cache.add(item) is item
        assert len(cache) == 1

    def test_add_is_idempotent(self):
        cache = Cache()
        first = cache.add(Item("1", "a"))
        second = cache.add(Item("1", "b"))
        assert second is first
        assert len(cache) == 1
        assert cache.get("id", "1").name == "a"

    def test_limit_evicts_oldest(self):
        cache = Cache(limit=2)
        for i in range(3):
            cache.add(Item(str(i)))
        assert [i.id for i in cache] == ["1", "2"]

    def test_custom_discriminator(self):
        cache = Cache(discriminator="name")
        cache.add(Item("1", "a"))
        assert cache.get("name", "a").id == "1"
        assert Item("other", "a") in cache


class TestUpdate:
    def test_update_keeps_position(self):
        cache = Cache()
        for i in range(3):
            cache.add(Item(str(i)))
        new = Item("1", "changed")
        assert cache.update(cache.get("id", "1"), new) is new
        assert [i.name for i in cache] == ["", "changed", ""]
        assert cache.index(new) == 1

    def test_update_absent_is_noop(self):
        cache = Cache()
        cache.add(Item("1"))
        assert cache.update(Item("9"), Item("9", "x")) is None
        assert len(cache) == 1
        assert cache.get("id", "9") is None

    def test_update_with_new_key(self):
        cache = Cache()
        cache.add(Item("1"))
        cache.add(Item("2"))
        cache.update(Item("1"), Item("7"))
        assert [i.id for i in cache] == ["7", "2"]
        assert cache.get("id", "1") is None

    def test_update_onto_taken_key_is_noop(self):
        cache = Cache()
        first = cache.add(Item("1", "a"))
        second = cache.add(Item("2", "b"))
        assert cache.update(first, Item("2", "clash")) is None
        assert list(cache) == [first, second]


class TestLookup:
    def test_get_by_secondary_field(self):
        cache = Cache()
        cache.add(Item("1", "a"))
        cache.add(Item("2", "b"))
        assert cache.get("name", "b").id == "2"
        assert cache.get("name", "zzz") is None
        assert cache.get("missing_attr", "a") is None

    def test_remove(self):
        cache = Cache()
        cache.add(Item("1"))
        cache.remove(Item("1", "different name"))
        assert len(cache) == 0
        cache.remove(Item("1"))

    def test_find_and_filter(self):
        cache = Cache()
        for i in range(4):
            cache.add(Item(str(i), "even" if i % 2 == 0 else "odd"))
        assert cache.find(lambda i: i.name == "odd").id == "1"
        assert [i.id for i in cache.filter(lambda i: i.name == "even")] == ["0", "2"]
        assert cache.find(lambda i: False) is None

    def test_index_absent_raises(self):
        with pytest.raises(ValueError):
            Cache().index(Item("1"))

    def test_iteration_is_snapshot(self):
        cache = Cache()
        cache.add(Item("1"))
        cache.add(Item("2"))
        for item in cache:
            cache.remove(item)
        assert len(cache) == 0

    def test_getitem_and_clear(self):
        cache = Cache()
        cache.add(Item("1"))
        cache.add(Item("2"))
        assert cache[-1].id == "2"
        cache.clear()
        assert list(cache) == []
