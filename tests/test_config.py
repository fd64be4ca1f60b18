import pytest

from blogstate.config import ConfigError, config_to_dict, load_config, parse_config_dict, save_config_dict

BACKEND = {"url": "https://example.supabase.co/", "anon_key": "anon"}


@pytest.fixture(autouse=True)
def _no_env_secrets(monkeypatch):
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)


class TestConfig:
    def test_defaults(self):
        config = parse_config_dict({"backend": BACKEND})
        assert config.cache.posts_ttl == 300
        assert config.cache.comments_ttl == 300
        assert config.cache.media_files_ttl == 600
        assert config.cache.media_categories_ttl == 600
        assert config.backend.url == "https://example.supabase.co"
        assert config.backend.bucket == "media"
        assert config.likes.timeout == 10
        assert config.storage.path == "data/local_storage.json"

    def test_backend_required(self):
        with pytest.raises(ConfigError):
            parse_config_dict({})

    def test_backend_optional(self):
        config = parse_config_dict({}, require_backend=False)
        assert config.backend.url == ""

    def test_env_overrides_file(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "https://env.supabase.co")
        monkeypatch.setenv("SUPABASE_ANON_KEY", "env-key")
        config = parse_config_dict({"backend": BACKEND})
        assert config.backend.url == "https://env.supabase.co"
        assert config.backend.anon_key == "env-key"

    def test_invalid_cron(self):
        with pytest.raises(ConfigError):
            parse_config_dict({"general": {"cron": "every minute"}, "backend": BACKEND})

    def test_non_positive_ttl(self):
        with pytest.raises(ConfigError):
            parse_config_dict({"cache": {"posts_ttl": 0}, "backend": BACKEND})

    def test_like_timeout_can_be_disabled(self):
        config = parse_config_dict({"likes": {"timeout": None}, "storage": {"max_bytes": None}, "backend": BACKEND})
        assert config.likes.timeout is None
        assert config.storage.max_bytes is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(tmp_path / "missing.yaml")
        config = load_config(tmp_path / "missing.yaml", require_backend=False, allow_missing=True)
        assert config.general.log_level == "INFO"

    def test_save_and_reload(self, tmp_path):
        config = parse_config_dict({"cache": {"media_files_ttl": 120}, "backend": BACKEND})
        path = tmp_path / "config" / "config.yaml"
        save_config_dict(config_to_dict(config), path)
        reloaded = load_config(path)
        assert reloaded == config

    def test_example_config_parses(self):
        from pathlib import Path

        example = Path(__file__).resolve().parent.parent / "config" / "config.example.yaml"
        config = load_config(example, require_backend=False)
        assert config.cache.posts_ttl == 300
