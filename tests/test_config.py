"""Tests for configuration loading."""

import pytest
from pydantic import ValidationError

import buildergraph.config as config_module
from buildergraph.config import BuilderGraphConfig, get_config, reload_config


@pytest.fixture(autouse=True)
def _reset_global_config():
    saved = config_module._config
    config_module._config = None
    yield
    config_module._config = saved


class TestDefaults:
    def test_ledger_defaults(self):
        config = BuilderGraphConfig(_env_file=None)
        assert config.ledger_api_url == "http://localhost:9200/api/dkg"
        assert config.ledger_explorer_base == "https://dkg.origintrail.io"
        assert config.confirmation_timeout == 300.0
        assert config.api_port == 3001

    def test_publish_options(self):
        config = BuilderGraphConfig(_env_file=None, publish_priority=80, ledger_max_attempts=5)
        assert config.publish_options == {"privacy": "public", "priority": 80, "maxAttempts": 5}

    def test_epochs_by_entity(self):
        config = BuilderGraphConfig(_env_file=None, endorsement_epochs=4)
        assert config.epochs_by_entity == {"profile": 6, "project": 6, "endorsement": 4}

    def test_cors_origins_list(self):
        config = BuilderGraphConfig(_env_file=None, cors_origins="http://a.test, http://b.test ,")
        assert config.cors_origins_list == ["http://a.test", "http://b.test"]

    def test_rejects_invalid_values(self):
        with pytest.raises(ValidationError):
            BuilderGraphConfig(_env_file=None, confirmation_timeout=0)
        with pytest.raises(ValidationError):
            BuilderGraphConfig(_env_file=None, llm_provider="anthropic-direct")


class TestSources:
    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("BUILDERGRAPH_LEDGER_API_URL", "http://node.test/api/dkg")
        monkeypatch.setenv("BUILDERGRAPH_POLL_MAX_ATTEMPTS", "12")
        config = BuilderGraphConfig(_env_file=None)
        assert config.ledger_api_url == "http://node.test/api/dkg"
        assert config.poll_max_attempts == 12

    def test_yaml_overlay(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("ledger_api_url: http://yaml.test/api\nprofile_epochs: 9\n")
        config = BuilderGraphConfig.from_yaml(path)
        assert config.ledger_api_url == "http://yaml.test/api"
        assert config.profile_epochs == 9

    def test_missing_yaml_falls_back(self, tmp_path):
        config = BuilderGraphConfig.from_yaml(tmp_path / "absent.yaml")
        assert isinstance(config, BuilderGraphConfig)

    def test_get_config_is_cached_and_reloadable(self, tmp_path):
        first = get_config()
        assert get_config() is first
        path = tmp_path / "config.yaml"
        path.write_text("api_port: 4000\n")
        reloaded = reload_config(path)
        assert reloaded.api_port == 4000
        assert get_config() is reloaded
