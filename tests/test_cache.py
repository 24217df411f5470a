"""
Tests for the file-backed projection cache.
"""

from backend import FileCache


class TestFileCache:
    def test_round_trip_survives_new_instance(self, temp_dir):
        FileCache(temp_dir).set("user_projects_u1", {"data": [{"project_id": 1}], "timestamp": 12.0})

        assert FileCache(temp_dir).get("user_projects_u1") == {"data": [{"project_id": 1}], "timestamp": 12.0}

    def test_missing_key(self, temp_dir):
        assert FileCache(temp_dir).get("nothing") is None

    def test_unsafe_characters_stay_inside_directory(self, temp_dir):
        cache = FileCache(temp_dir)
        path = cache.path_for("../escape/key")
        assert path.parent == temp_dir
        cache.set("../escape/key", [])
        assert cache.get("../escape/key") == []

    def test_corrupt_entry_reads_as_missing(self, temp_dir, caplog):
        cache = FileCache(temp_dir)
        cache.path_for("all_users").write_text("{not json")

        assert cache.get("all_users") is None
        assert "unreadable cache entry" in caplog.text

    def test_delete_and_keys(self, temp_dir):
        cache = FileCache(temp_dir)
        cache.set("b", 1)
        cache.set("a", 2)
        cache.delete("b")
        cache.delete("missing")

        assert cache.keys() == ["a"]

    def test_creates_directory(self, temp_dir):
        target = temp_dir / "nested" / "cache"
        FileCache(target).set("k", True)
        assert (target / "k.json").exists()
