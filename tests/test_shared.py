"""
Tests for Shared Module.
========================

Tests for:
- Settings: YAML defaults, environment overrides, secrets
- Utilities: Hashing, ids, atomic JSON files
"""

import pytest


class TestSettings:
    """Tests for settings loading."""

    def test_yaml_defaults(self, config_path):
        from studysync.shared.config import _create_settings

        settings = _create_settings(config_path)

        assert settings.crawler.max_pages == 25
        assert settings.retrieval.strong_threshold == 0.70
        assert settings.retrieval.partial_threshold == 0.40
        assert settings.sync.staleness_minutes == 30

    def test_environment_overrides_yaml(self, config_path, monkeypatch):
        from studysync.shared.config import _create_settings

        monkeypatch.setenv("CRAWLER__MAX_PAGES", "7")
        monkeypatch.setenv("RETRIEVAL__STRONG_THRESHOLD", "0.8")

        settings = _create_settings(config_path)

        assert settings.crawler.max_pages == 7
        assert settings.retrieval.strong_threshold == 0.8
        assert settings.crawler.max_depth == 2

    def test_missing_yaml_uses_model_defaults(self, temp_dir):
        from studysync.shared.config import _create_settings

        settings = _create_settings(temp_dir / "absent.yaml")

        assert settings.embeddings.batch_size == 32
        assert settings.paths.collection_name == "course_materials"

    def test_secret_aliases(self, monkeypatch):
        from studysync.shared.config import reload_settings

        monkeypatch.delenv("EMBEDDING_API_KEY", raising=False)
        monkeypatch.setenv("LITELLM_API_KEY", "  proxy-key  ")
        monkeypatch.setenv("CANVAS_BASE_URL", "https://canvas.example.edu/")

        settings = reload_settings()

        assert settings.embedding_api_key == "proxy-key"
        assert settings.get_effective_lms_base_url() == "https://canvas.example.edu"

    def test_settings_cached(self):
        from studysync.shared.config import get_settings

        assert get_settings() is get_settings()


class TestUtils:
    """Tests for utility functions."""

    def test_compute_hash(self):
        from studysync.shared.utils import compute_hash

        assert compute_hash("hello world") == (
            "b94d27b9934d3e08a52e52d7da7dabfac484efe37a5380ee9088f7ace2efcde9"
        )

    def test_link_item_id_stable(self):
        from studysync.shared.utils import generate_link_item_id

        first = generate_link_item_id("42", "https://example.com/notes")
        assert first == generate_link_item_id("42", "https://example.com/notes")
        assert first != generate_link_item_id("43", "https://example.com/notes")
        assert first.startswith("link-42-") and len(first) == len("link-42-") + 16

    @pytest.mark.parametrize(
        "value, expected",
        [("tenant-1", "tenant-1"), ("a/b c", "a_b_c"), ("  ", "_")],
    )
    def test_safe_file_stem(self, value, expected):
        from studysync.shared.utils import safe_file_stem

        assert safe_file_stem(value) == expected

    def test_json_round_trip_leaves_no_temp_files(self, temp_dir):
        from studysync.shared.utils import load_json, save_json

        path = temp_dir / "nested" / "state.json"
        save_json(path, {"status": "running", "count": 3})

        assert load_json(path) == {"status": "running", "count": 3}
        assert [p.name for p in path.parent.iterdir()] == ["state.json"]

    def test_collapse_and_truncate(self):
        from studysync.shared.utils import collapse_whitespace, truncate_text

        assert collapse_whitespace("  a \n\t b  ") == "a b"
        assert truncate_text("abcdef", 3) == "abc"
        assert truncate_text("abc", 0) == "abc"
