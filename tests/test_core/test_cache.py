"""Unit tests for depresolve.core.cache.

Test Coverage:
- Cache key construction and the default cache location
- Memory and disk tiers, including promotion from disk
- TTL expiry with an injected clock
- Negative ("not found") entries
- Corrupt and mismatched files degrading to a miss
- Invalidation and clearing
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import List

import pytest

from depresolve.constants import CACHE_SCHEMA_DIR
from depresolve.core.cache import CacheEntry, MetadataCache, cache_key, default_cache_dir


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def releases(release_factory) -> List:
    return [
        release_factory("flask", "3.0.0", ["click>=8.1", "werkzeug>=3"]),
        release_factory("flask", "2.3.3", None),
    ]


# ============================================================================
# Keys and locations
# ============================================================================


@pytest.mark.unit
class TestCacheKey:
    """Tests for cache_key."""

    def test_normalizes_name(self) -> None:
        assert cache_key("Flask_Login") == "flask-login"

    def test_with_version(self) -> None:
        assert cache_key("Flask", "3.0.0") == "flask==3.0.0"

    def test_pin_string(self) -> None:
        assert cache_key("Flask==3.0.0") == "flask==3.0.0"


@pytest.mark.unit
class TestDefaultCacheDir:
    """Tests for default_cache_dir."""

    def test_explicit_override(self, monkeypatch, tmp_path: Path) -> None:
        monkeypatch.setenv("DEPRESOLVE_CACHE_DIR", str(tmp_path))

        assert default_cache_dir() == tmp_path / CACHE_SCHEMA_DIR

    def test_xdg_cache_home(self, monkeypatch, tmp_path: Path) -> None:
        monkeypatch.delenv("DEPRESOLVE_CACHE_DIR", raising=False)
        monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path))

        assert default_cache_dir() == tmp_path / "depresolve" / CACHE_SCHEMA_DIR

    def test_home_fallback(self, monkeypatch, tmp_path: Path) -> None:
        monkeypatch.delenv("DEPRESOLVE_CACHE_DIR", raising=False)
        monkeypatch.delenv("XDG_CACHE_HOME", raising=False)
        monkeypatch.setattr(Path, "home", lambda: tmp_path)

        assert default_cache_dir() == tmp_path / ".cache" / "depresolve" / CACHE_SCHEMA_DIR


# ============================================================================
# Entries
# ============================================================================


@pytest.mark.unit
class TestCacheEntry:
    """Tests for CacheEntry."""

    def test_expiry_boundary(self) -> None:
        entry = CacheEntry(key="flask", fetched_at=100.0, ttl=10.0)

        assert not entry.is_expired(109.9)
        assert entry.is_expired(110.0)

    def test_json_round_trip(self, releases) -> None:
        entry = CacheEntry(key="flask", releases=tuple(releases), fetched_at=5.0, ttl=60.0)

        restored = CacheEntry.from_json(json.loads(json.dumps(entry.to_json())))

        assert restored == entry
        assert restored.releases[1].dependencies is None

    def test_rejects_other_schema(self) -> None:
        data = CacheEntry(key="flask").to_json()
        data["schema"] = 99

        with pytest.raises(ValueError, match="schema"):
            CacheEntry.from_json(data)


# ============================================================================
# Cache behaviour
# ============================================================================


@pytest.mark.unit
class TestMetadataCache:
    """Tests for MetadataCache reads and writes."""

    def test_put_then_get(self, tmp_path: Path, releases, clock) -> None:
        cache = MetadataCache(tmp_path, clock=clock)

        cache.put("Flask", releases)

        assert cache.get("flask") == releases
        assert cache.stats().hits == 1
        assert cache.stats().entries == 1

    def test_miss(self, tmp_path: Path) -> None:
        cache = MetadataCache(tmp_path)

        assert cache.get("flask") is None
        assert cache.stats().misses == 1

    def test_persists_across_instances(self, tmp_path: Path, releases, clock) -> None:
        MetadataCache(tmp_path, clock=clock).put("flask", releases)

        fresh = MetadataCache(tmp_path, clock=clock)

        assert fresh.get("flask") == releases
        assert fresh.stats().disk_hits == 1
        assert fresh.stats().entries == 1
        assert fresh.disk_entries() == 1

    def test_expired_entry_is_a_miss(self, tmp_path: Path, releases, clock) -> None:
        cache = MetadataCache(tmp_path, ttl=60, clock=clock)
        cache.put("flask", releases)

        clock.now += 61

        assert cache.get("flask") is None
        stats = cache.stats()
        assert stats.expired == 2  # memory copy and disk copy
        assert stats.entries == 0

    def test_replacing_entry_resets_freshness(self, tmp_path: Path, releases, clock) -> None:
        cache = MetadataCache(tmp_path, ttl=60, clock=clock)
        cache.put("flask", releases[:1])
        clock.now += 50
        cache.put("flask", releases)
        clock.now += 50

        assert cache.get("flask") == releases

    def test_memory_only(self, tmp_path: Path, releases) -> None:
        cache = MetadataCache(tmp_path, persist=False)

        cache.put("flask", releases)

        assert cache.get("flask") == releases
        assert list(tmp_path.iterdir()) == []
        assert cache.disk_entries() == 0

    def test_release_keys_are_separate(self, tmp_path: Path, releases) -> None:
        cache = MetadataCache(tmp_path)

        cache.put("flask==3.0.0", releases[:1])

        assert cache.get("flask") is None
        assert cache.get("Flask==3.0.0") == releases[:1]
        assert (tmp_path / "flask%3D%3D3.0.0.json").is_file()


@pytest.mark.unit
class TestNegativeEntries:
    """Tests for remembered "not found" answers."""

    def test_missing_entry(self, tmp_path: Path, clock) -> None:
        cache = MetadataCache(tmp_path, negative_ttl=30, clock=clock)

        cache.put_missing("ghost")

        assert cache.get("ghost") is None
        entry = cache.lookup("ghost")
        assert entry is not None and entry.missing
        assert entry.ttl == 30

    def test_missing_entry_expires_sooner(self, tmp_path: Path, clock) -> None:
        cache = MetadataCache(tmp_path, ttl=3600, negative_ttl=30, clock=clock)
        cache.put_missing("ghost")

        clock.now += 31

        assert cache.lookup("ghost") is None


@pytest.mark.unit
class TestCorruption:
    """Tests for unreadable disk entries."""

    def test_corrupt_file_is_a_miss(self, tmp_path: Path, caplog) -> None:
        (tmp_path / "flask.json").write_text("{not json", encoding="utf-8")
        cache = MetadataCache(tmp_path)

        assert cache.get("flask") is None
        assert cache.stats().errors == 1
        assert cache.stats().misses == 1
        assert "Ignoring unreadable cache entry" in caplog.text

    def test_non_object_document_is_a_miss(self, tmp_path: Path) -> None:
        (tmp_path / "flask.json").write_text("[]", encoding="utf-8")
        cache = MetadataCache(tmp_path)

        assert cache.get("flask") is None
        assert cache.stats().errors == 1

    def test_non_object_release_is_a_miss(self, tmp_path: Path, releases) -> None:
        MetadataCache(tmp_path).put("flask", releases)
        path = tmp_path / "flask.json"
        document = json.loads(path.read_text(encoding="utf-8"))
        document["releases"] = [1]
        path.write_text(json.dumps(document), encoding="utf-8")

        cache = MetadataCache(tmp_path)

        assert cache.get("flask") is None
        assert cache.stats().errors == 1

    def test_overlong_key_is_a_miss(self, tmp_path: Path, releases) -> None:
        """A key too long for the filesystem degrades to the memory tier."""
        cache = MetadataCache(tmp_path)
        key = "a" * 300

        assert cache.get(key) is None

        cache.put(key, releases)

        assert cache.get(key) == releases

    def test_mismatched_key_is_a_miss(self, tmp_path: Path, releases) -> None:
        writer = MetadataCache(tmp_path)
        writer.put("flask", releases)
        (tmp_path / "flask.json").rename(tmp_path / "django.json")

        reader = MetadataCache(tmp_path)

        assert reader.get("django") is None
        assert reader.stats().errors == 1

    def test_corrupt_file_replaced_on_put(self, tmp_path: Path, releases) -> None:
        (tmp_path / "flask.json").write_text("garbage", encoding="utf-8")
        cache = MetadataCache(tmp_path)

        cache.put("flask", releases)

        assert MetadataCache(tmp_path).get("flask") == releases

    def test_unwritable_directory_degrades_to_memory(
        self, tmp_path: Path, releases
    ) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("", encoding="utf-8")
        cache = MetadataCache(blocker / "cache")

        cache.put("flask", releases)

        assert cache.get("flask") == releases
        assert cache.stats().errors == 1


@pytest.mark.unit
class TestInvalidation:
    """Tests for invalidate and clear."""

    def test_invalidate_removes_both_tiers(self, tmp_path: Path, releases) -> None:
        cache = MetadataCache(tmp_path)
        cache.put("flask", releases)

        assert cache.invalidate("Flask") is True
        assert cache.get("flask") is None
        assert MetadataCache(tmp_path).get("flask") is None

    def test_invalidate_unknown_key(self, tmp_path: Path) -> None:
        assert MetadataCache(tmp_path).invalidate("flask") is False

    def test_invalidate_name_removes_release_entries(
        self, tmp_path: Path, releases
    ) -> None:
        cache = MetadataCache(tmp_path)
        cache.put("flask", releases)
        cache.put("flask==3.0.0", releases[:1])
        cache.put("flask-login", releases[:1])

        cache.invalidate("flask")

        assert cache.get("flask==3.0.0") is None
        assert cache.get("flask-login") is not None
        assert cache.disk_entries() == 1

    def test_clear(self, tmp_path: Path, releases) -> None:
        cache = MetadataCache(tmp_path)
        cache.put("flask", releases)
        cache.put("click", releases[:1])
        cache.put_missing("ghost")

        assert cache.clear() == 3
        assert cache.get("flask") is None
        assert cache.disk_entries() == 0
