"""Tests for the media URL cache."""

from taleforge.services import MediaUrlCache, MediaUrls


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_get_returns_stored_urls() -> None:
    cache = MediaUrlCache()
    cache.put("seg-1", MediaUrls(image_url="https://img/1.png"))
    assert cache.get("seg-1").image_url == "https://img/1.png"
    assert cache.get("seg-2") is None


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    cache = MediaUrlCache(ttl_seconds=10, clock=clock)
    cache.put("seg-1", MediaUrls(audio_url="https://audio/1.mp3"))

    clock.now = 10
    assert cache.get("seg-1") is not None
    clock.now = 10.5
    assert cache.get("seg-1") is None
    assert len(cache) == 0


def test_least_recently_used_entry_is_evicted() -> None:
    cache = MediaUrlCache(max_entries=2)
    cache.put("a", MediaUrls())
    cache.put("b", MediaUrls())
    cache.get("a")
    cache.put("c", MediaUrls())

    assert cache.get("b") is None
    assert cache.get("a") is not None
    assert cache.get("c") is not None


def test_invalidate_and_clear() -> None:
    cache = MediaUrlCache()
    cache.put("a", MediaUrls())
    cache.put("b", MediaUrls())
    cache.invalidate("a")
    assert cache.get("a") is None
    cache.clear()
    assert len(cache) == 0
