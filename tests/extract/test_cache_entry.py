"""Tests for staged cache entries."""

import pytest

from extract.cache_entry import MANIFEST_NAME, CacheEntry, EntryState, has_content


class TestState:
    def test_missing_when_absent(self, tmp_path):
        assert CacheEntry(tmp_path / "arm64e").state() == EntryState.MISSING

    def test_empty_directory_is_missing(self, tmp_path):
        (tmp_path / "arm64e").mkdir()
        assert CacheEntry(tmp_path / "arm64e").state() == EntryState.MISSING

    def test_manifest_alone_is_not_content(self, tmp_path):
        entry_dir = tmp_path / "arm64e"
        entry_dir.mkdir()
        (entry_dir / MANIFEST_NAME).write_text("{}")
        assert not has_content(entry_dir)

    def test_leftover_staging_is_in_progress(self, tmp_path):
        entry = CacheEntry(tmp_path / "arm64e")
        entry.path.mkdir()
        (entry.path / "file").write_text("x")
        entry.staging_path.mkdir()
        assert entry.state() == EntryState.IN_PROGRESS
        assert not entry.is_complete()

    def test_content_pattern_must_match(self, tmp_path):
        entry = CacheEntry(tmp_path / "dylibs_all_arm64e", content_pattern="*.dylib")
        entry.path.mkdir()
        (entry.path / "notes.txt").write_text("x")
        assert entry.state() == EntryState.MISSING
        (entry.path / "libA.dylib").write_text("x")
        assert entry.is_complete()


class TestBuilding:
    def test_success_promotes_staging(self, tmp_path):
        entry = CacheEntry(tmp_path / "arm64e")
        with entry.building() as staging:
            assert staging.name == "arm64e.partial"
            (staging / "kernelcache.release.Mac14,3").write_text("kc")

        assert entry.is_complete()
        assert not entry.staging_path.exists()
        assert (entry.path / "kernelcache.release.Mac14,3").read_text() == "kc"

    @pytest.mark.parametrize("exc", [RuntimeError, KeyboardInterrupt])
    def test_failure_leaves_no_trace(self, tmp_path, exc):
        entry = CacheEntry(tmp_path / "arm64e")
        with pytest.raises(exc):
            with entry.building() as staging:
                (staging / "half-written").write_text("x")
                raise exc()

        assert entry.state() == EntryState.MISSING
        assert not entry.staging_path.exists()
        assert not entry.path.exists()

    def test_failure_keeps_previous_output(self, tmp_path):
        entry = CacheEntry(tmp_path / "arm64e")
        with entry.building() as staging:
            (staging / "old").write_text("v1")

        with pytest.raises(RuntimeError):
            with entry.building() as staging:
                raise RuntimeError("boom")

        assert (entry.path / "old").read_text() == "v1"

    def test_interrupted_staging_is_discarded(self, tmp_path):
        entry = CacheEntry(tmp_path / "arm64e")
        entry.staging_path.mkdir()
        (entry.staging_path / "stale").write_text("x")

        with entry.building() as staging:
            assert not (staging / "stale").exists()
            (staging / "fresh").write_text("x")

        assert sorted(p.name for p in entry.path.iterdir()) == ["fresh"]

    def test_manifest_round_trip(self, tmp_path):
        entry = CacheEntry(tmp_path / "arm64e")
        with entry.building(manifest={"arch": "arm64e", "kernel": True}) as staging:
            (staging / "f").write_text("x")

        assert entry.manifest() == {"arch": "arm64e", "kernel": True}

    def test_single_file_entry(self, tmp_path):
        entry = CacheEntry(tmp_path / "diff.json")
        with entry.building(as_file=True) as staging:
            staging.write_text('{"machos": {}}')

        assert entry.path.is_file()
        assert entry.is_complete()
        assert entry.manifest() is None

    def test_rebuild_replaces_output(self, tmp_path):
        entry = CacheEntry(tmp_path / "arm64e")
        with entry.building() as staging:
            (staging / "a").write_text("x")
        with entry.building() as staging:
            (staging / "b").write_text("x")

        assert sorted(p.name for p in entry.path.iterdir()) == ["b"]


def test_invalidate_removes_everything(tmp_path):
    entry = CacheEntry(tmp_path / "arm64e")
    with entry.building() as staging:
        (staging / "a").write_text("x")
    entry.staging_path.mkdir()

    entry.invalidate()

    assert not entry.path.exists()
    assert not entry.staging_path.exists()
