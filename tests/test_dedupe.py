"""Tests for the run-scoped dedupe filter."""
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from bookimport.dedupe import DedupeFilter
from bookimport.models import Genre


def make_filter(stored=()):
    stored = {name: Genre(name, id=str(i)) for i, name in enumerate(stored)}
    lookups = []

    def lookup(genre):
        lookups.append(genre.name)
        return stored.get(genre.name)

    dedupe = DedupeFilter(lookup=lookup, name="genres")
    return dedupe, lookups


def test_admit_new_key_once():
    dedupe, _ = make_filter()
    dedupe.open()

    assert dedupe.admit(Genre("Fantasy")) is True
    assert dedupe.admit(Genre("Fantasy")) is False
    assert dedupe.admit(Genre("Horror")) is True
    assert dedupe.seen == {"Fantasy", "Horror"}


def test_admit_rejects_stored_without_growing_seen_set():
    """Test that a genre already in the store is rejected and not remembered."""
    dedupe, lookups = make_filter(stored=["Fantasy"])
    dedupe.open()

    assert dedupe.admit(Genre("Fantasy")) is False
    assert dedupe.seen == set()
    assert lookups == ["Fantasy"]


def test_store_is_consulted_before_seen_set():
    dedupe, lookups = make_filter()
    dedupe.open()

    dedupe.admit(Genre("Fantasy"))
    dedupe.admit(Genre("Fantasy"))

    assert lookups == ["Fantasy", "Fantasy"]


def test_seen_set_resets_between_steps():
    dedupe, _ = make_filter()
    dedupe.open()
    dedupe.admit(Genre("Fantasy"))
    dedupe.close()

    dedupe.open()
    assert dedupe.seen == set()
    assert dedupe.admit(Genre("Fantasy")) is True


def test_admit_outside_step_raises():
    dedupe, _ = make_filter()

    with pytest.raises(RuntimeError):
        dedupe.admit(Genre("Fantasy"))

    dedupe.open()
    dedupe.close()
    with pytest.raises(RuntimeError):
        dedupe.admit(Genre("Fantasy"))


def test_concurrent_admit_same_key_admits_once():
    """Test that racing callers with the same key see exactly one admission."""
    barrier = threading.Barrier(8)

    def slow_lookup(genre):
        time.sleep(0.01)
        return None

    dedupe = DedupeFilter(lookup=slow_lookup)
    dedupe.open()

    def admit(_):
        barrier.wait()
        return dedupe.admit(Genre("Fantasy"))

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(admit, range(8)))

    assert results.count(True) == 1
