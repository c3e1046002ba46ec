"""
Tests for YAML config loading, env overrides and backend factories.
"""
import pytest
import yaml

from pkg.projecthub.auth import LocalAuthProvider, RestAuthProvider
from pkg.projecthub.client import RestDataService
from pkg.projecthub.config import (
    ConfigError,
    HubConfig,
    build_auth_provider,
    build_data_service,
)
from pkg.projecthub.store import SqliteDataService


def _write(tmp_path, data) -> str:
    path = tmp_path / "projecthub.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestHubConfig:

    def test_defaults_when_default_file_missing(self, monkeypatch, tmp_path):
        monkeypatch.setattr("pkg.projecthub.config.CONFIG_PATH", tmp_path / "absent.yaml")
        cfg = HubConfig.load(env={})
        assert cfg.backend == "sqlite"
        assert cfg.db_path.endswith("projecthub.db")
        assert "~" not in cfg.db_path
        assert cfg.server_port == 54321

    def test_explicit_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            HubConfig.load(str(tmp_path / "nope.yaml"), env={})

    def test_yaml_values(self, tmp_path):
        path = _write(tmp_path, {
            "db_path": str(tmp_path / "hub.db"),
            "timeout": "2.5",
            "server": {"host": "0.0.0.0", "port": "8080"},
            "bot": {"token_env": "HUB_TOKEN", "allowed_users": [123, "456"]},
            "unknown_key": True,
        })
        cfg = HubConfig.load(path, env={})
        assert cfg.db_path == str(tmp_path / "hub.db")
        assert cfg.timeout == 2.5
        assert (cfg.server_host, cfg.server_port) == ("0.0.0.0", 8080)
        assert cfg.allowed_users == ["123", "456"]

    def test_env_overrides(self, tmp_path):
        path = _write(tmp_path, {"backend": "rest", "url": "http://file", "api_key": "file-key"})
        cfg = HubConfig.load(path, env={
            "PROJECTHUB_URL": "http://env",
            "PROJECTHUB_API_KEY": "",
        })
        assert cfg.url == "http://env"
        assert cfg.api_key == "file-key"

    def test_rest_needs_url_and_key(self, tmp_path):
        path = _write(tmp_path, {"backend": "rest"})
        with pytest.raises(ConfigError, match="url"):
            HubConfig.load(path, env={})
        with pytest.raises(ConfigError, match="api_key"):
            HubConfig.load(path, env={"PROJECTHUB_URL": "http://x"})

    def test_unknown_backend(self, tmp_path):
        with pytest.raises(ConfigError, match="Unknown backend"):
            HubConfig.load(_write(tmp_path, {"backend": "mongo"}), env={})

    def test_bad_number(self, tmp_path):
        with pytest.raises(ConfigError, match="Invalid number"):
            HubConfig.load(_write(tmp_path, {"timeout": "soon"}), env={})

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            HubConfig.load(str(path), env={})

    def test_bad_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("backend: [unclosed\n")
        with pytest.raises(ConfigError, match="Cannot parse"):
            HubConfig.load(str(path), env={})


class TestFactories:

    def test_sqlite_backend(self, db_path, alice_session):
        cfg = HubConfig(db_path=db_path)
        assert isinstance(build_auth_provider(cfg), LocalAuthProvider)
        service = build_data_service(cfg, alice_session)
        assert isinstance(service, SqliteDataService)
        assert service.owner_id == "alice"

    def test_rest_backend(self, alice_session):
        cfg = HubConfig(backend="rest", url="http://hub", api_key="k", timeout=3.0)
        provider = build_auth_provider(cfg)
        assert isinstance(provider, RestAuthProvider)
        assert provider.base_url == "http://hub/auth/v1"
        service = build_data_service(cfg, alice_session)
        assert isinstance(service, RestDataService)
        assert service.access_token == "tok-alice"
        assert service.timeout == 3.0
