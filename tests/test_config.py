"""Tests for configuration loading."""

import pytest
from pathlib import Path

import memosync.config as config_module
from memosync.config import load_config

ENV_KEYS = [
    "MEMOSYNC_PRIMARY",
    "MEMOSYNC_DB_PATH",
    "MEMOSYNC_PRIMARY_TIMEOUT",
    "MEMOSYNC_CACHE",
    "REDIS_URL",
    "MEMOSYNC_CACHE_TTL",
    "MEMOSYNC_CACHE_TIMEOUT",
    "MEMOSYNC_INDEX",
    "OPENSEARCH_URL",
    "MEMOSYNC_INDEX_TIMEOUT",
    "MEMOSYNC_RECONCILE_INTERVAL",
    "MEMOSYNC_QUEUE_DIR",
    "MEMOSYNC_PID_FILE",
    "MEMOSYNC_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "_HOME_DIR", tmp_path / "home")
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class TestConfig:
    def test_defaults(self, tmp_path: Path):
        config = load_config()
        assert config.primary.backend == "sqlite"
        assert config.primary.path.name == "memos.db"
        assert config.cache.backend == "redis"
        assert config.cache.ttl == 3600
        assert config.cache.key_prefix == "memo:"
        assert config.index.backend == "opensearch"
        assert config.index.url == "http://localhost:9200"
        assert config.index.max_results == 100
        assert config.log_level == "INFO"
        assert config.reconcile.queue_dir == tmp_path / "home" / "queue"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("MEMOSYNC_PRIMARY", "memory")
        monkeypatch.setenv("REDIS_URL", "redis://cache:6380/2")
        monkeypatch.setenv("OPENSEARCH_URL", "http://search:9200")
        monkeypatch.setenv("MEMOSYNC_PRIMARY_TIMEOUT", "5")

        config = load_config()
        assert config.primary.backend == "memory"
        assert config.primary.timeout == 5.0
        assert config.cache.url == "redis://cache:6380/2"
        assert config.index.url == "http://search:9200"

    def test_queue_dir(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("MEMOSYNC_QUEUE_DIR", str(tmp_path / "shared-queue"))
        assert load_config().reconcile.queue_dir == tmp_path / "shared-queue"

    def test_toml_file(self, tmp_path: Path):
        toml_path = tmp_path / "custom.toml"
        toml_path.write_text("""
log_level = "DEBUG"

[primary]
backend = "sqlite"
path = "/var/lib/memosync/memos.db"

[cache]
ttl = 120
key_prefix = "test:memo:"

[index]
index_name = "memos-test"
max_results = 25

[reconcile]
poll_interval = 5
""")
        config = load_config(toml_path)
        assert config.primary.path == Path("/var/lib/memosync/memos.db")
        assert config.cache.ttl == 120
        assert config.cache.key_prefix == "test:memo:"
        assert config.index.index_name == "memos-test"
        assert config.index.max_results == 25
        assert config.reconcile.poll_interval == 5.0
        assert config.log_level == "DEBUG"

    def test_toml_in_cwd_is_found(self, tmp_path: Path):
        (tmp_path / "memosync.toml").write_text('[cache]\nbackend = "memory"\n')
        assert load_config().cache.backend == "memory"

    def test_env_overrides_toml(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("MEMOSYNC_INDEX", "memory")

        toml_path = tmp_path / "memosync.toml"
        toml_path.write_text("""
[index]
backend = "opensearch"
""")
        config = load_config(toml_path)
        assert config.index.backend == "memory"  # env wins

    @pytest.mark.parametrize("value", ["0", ""])
    def test_zero_ttl_disables_expiry(self, monkeypatch, value):
        monkeypatch.setenv("MEMOSYNC_CACHE_TTL", value)
        assert load_config().cache.ttl is None
