"""Unit tests for docvault.engine.config — PlatformConfig and docvault.yaml loading."""

import pytest

from docvault.engine.config import (
    LockingConfig,
    PlatformConfig,
    get_config,
    load_config,
    reset_config,
)
from docvault.engine.errors import DocVaultConfigError


class TestPlatformConfig:
    """Test PlatformConfig Pydantic model."""

    def test_defaults(self):
        cfg = PlatformConfig()
        assert cfg.name == "DocVault"
        assert cfg.environment == "dev"
        assert cfg.database.url == "sqlite:///docvault.db"
        assert cfg.redis.url == "redis://localhost:6379/0"
        assert cfg.locking.enabled is True
        assert cfg.locking.backend == "memory"
        assert cfg.documents.max_upload_size_mb == 50
        assert cfg.documents.allowed_mime_families == ["application", "text", "image", "audio", "video"]
        assert cfg.notifications.enabled is False

    def test_valid_environments(self):
        for env in ("dev", "staging", "prod"):
            assert PlatformConfig(environment=env).environment == env

    def test_invalid_environment(self):
        with pytest.raises(ValueError, match="dev/staging/prod"):
            PlatformConfig(environment="test")

    def test_invalid_lock_backend(self):
        with pytest.raises(ValueError, match="memory/redis"):
            LockingConfig(backend="zookeeper")


class TestLoadConfig:

    def test_missing_file_gives_defaults(self, tmp_path):
        cfg = load_config(str(tmp_path / "nope.yaml"))
        assert cfg == PlatformConfig()

    def test_loads_yaml(self, tmp_path):
        path = tmp_path / "docvault.yaml"
        path.write_text(
            "platform:\n"
            "  name: Acme Vault\n"
            "  environment: staging\n"
            "database:\n"
            "  url: sqlite:///acme.db\n"
            "locking:\n"
            "  backend: redis\n"
            "  timeout_seconds: 30\n"
            "documents:\n"
            "  max_upload_size_mb: 10\n",
            encoding="utf-8",
        )
        cfg = load_config(str(path))
        assert cfg.name == "Acme Vault"
        assert cfg.environment == "staging"
        assert cfg.database.url == "sqlite:///acme.db"
        assert cfg.locking.backend == "redis"
        assert cfg.locking.timeout_seconds == 30
        assert cfg.documents.max_upload_size_mb == 10

    def test_auto_discovers_in_cwd(self, tmp_path):
        (tmp_path / "docvault.yaml").write_text("environment: prod\n", encoding="utf-8")
        assert load_config().environment == "prod"

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "docvault.yaml"
        path.write_text("database: [unclosed\n", encoding="utf-8")
        with pytest.raises(DocVaultConfigError, match="Cannot parse"):
            load_config(str(path))

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "docvault.yaml"
        path.write_text("environment: qa\n", encoding="utf-8")
        with pytest.raises(DocVaultConfigError) as exc_info:
            load_config(str(path))
        assert exc_info.value.context["validation_errors"]

    def test_get_config_caches(self, tmp_path):
        first = get_config()
        assert get_config() is first
        reset_config()
        assert get_config() is not first
