from scavenger.services.scan_cache import ScanCache

PAYLOAD = {"parent_object": "radio", "items": [{"component_name": "Speaker"}]}


def test_put_then_get_counts_hits():
    cache = ScanCache(ttl_seconds=60, max_entries=10)
    assert cache.put("abc", PAYLOAD) is True
    assert cache.get("abc") == PAYLOAD
    assert cache.get("abc") == PAYLOAD
    assert cache.hit_count("abc") == 2
    assert cache.get("missing") is None


def test_results_without_items_are_not_cached():
    cache = ScanCache()
    assert cache.put("abc", {"items": []}) is False
    assert cache.put("", PAYLOAD) is False
    assert len(cache) == 0


def test_entries_expire(monkeypatch):
    t = {"now": 1000.0}
    monkeypatch.setattr("scavenger.services.scan_cache.time.monotonic", lambda: t["now"])

    cache = ScanCache(ttl_seconds=60)
    cache.put("abc", PAYLOAD)
    t["now"] += 59
    assert cache.get("abc") is not None
    t["now"] += 2
    assert cache.get("abc") is None
    assert len(cache) == 0


def test_oldest_entries_evicted_over_cap():
    cache = ScanCache(ttl_seconds=60, max_entries=2)
    for key in ("a", "b", "c"):
        cache.put(key, PAYLOAD)
    assert cache.get("a") is None
    assert cache.get("b") is not None
    assert cache.get("c") is not None


def test_returned_payload_is_a_copy():
    cache = ScanCache()
    cache.put("abc", PAYLOAD)
    got = cache.get("abc")
    got["parent_object"] = "changed"
    assert cache.get("abc")["parent_object"] == "radio"
