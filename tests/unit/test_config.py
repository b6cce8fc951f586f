"""Unit tests for configuration loading."""

from __future__ import annotations

import pytest
import yaml

from webrtc_gateway_runtime.config import (
    DEFAULT_BASE_URL,
    GatewaySettings,
    MediaSettings,
    RuntimeConfig,
    load_config,
)
from webrtc_gateway_runtime.errors import ConfigurationError
from webrtc_gateway_runtime.gateway.formats import SocketInfo


@pytest.fixture
def config_file(tmp_path, config_data):
    path = tmp_path / "gateway.yaml"
    path.write_text(yaml.safe_dump(config_data))
    return path


# =============================================================================
# Loading
# =============================================================================


class TestLoadConfig:
    """YAML file plus environment overrides."""

    def test_load_file(self, config_file):
        config = load_config(config_file, env={})

        assert config.gateway.url == "http://gateway.test"
        assert config.peer.peer_id == "peer-a"
        assert config.api_key == "secret"
        assert config.runtime.shutdown_grace == 0.5
        assert config.data_redirects() == (SocketInfo(ip_v4="127.0.0.1", port=10001),)
        assert config.media[0].video
        assert not config.media[0].audio

    def test_env_overrides_file(self, config_file):
        config = load_config(
            config_file,
            env={
                "GATEWAY_API_KEY": "from-env",
                "GATEWAY_PEER_ID": "peer-env",
                "GATEWAY_BASE_URL": "http://other:9000",
                "GATEWAY_DOMAIN": "example.com",
            },
        )

        assert config.api_key == "from-env"
        assert config.peer.peer_id == "peer-env"
        assert config.peer.domain == "example.com"
        assert config.gateway.url == "http://other:9000"

    def test_api_key_fallback_variable(self, config_file):
        config = load_config(config_file, env={"API_KEY": "plain"})
        assert config.api_key == "plain"

    def test_env_only(self):
        config = load_config(env={"GATEWAY_PEER_ID": "peer-a", "GATEWAY_API_KEY": "k"})

        assert config.gateway.url == DEFAULT_BASE_URL
        assert config.data_redirects() == ()
        assert config.media == []

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        config = load_config(path, env={"GATEWAY_PEER_ID": "peer-a", "GATEWAY_API_KEY": "k"})
        assert config.peer.peer_id == "peer-a"

    def test_missing_api_key(self, config_file, config_data):
        del config_data["peer"]["api_key"]
        config_file.write_text(yaml.safe_dump(config_data))

        with pytest.raises(ConfigurationError, match="no API key"):
            load_config(config_file, env={})

        config = load_config(config_file, env={}, require_api_key=False)
        assert config.api_key is None


class TestConfigErrors:
    """Every loading failure is a ConfigurationError."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="cannot read"):
            load_config(tmp_path / "absent.yaml", env={})

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("peer: [unclosed")

        with pytest.raises(ConfigurationError, match="invalid YAML"):
            load_config(path, env={})

    def test_top_level_not_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(path, env={})

    def test_missing_peer_id(self, tmp_path):
        path = tmp_path / "nopeer.yaml"
        path.write_text("gateway: {base_url: http://x}\n")

        with pytest.raises(ConfigurationError, match="invalid configuration"):
            load_config(path, env={"GATEWAY_API_KEY": "k"})

    def test_unknown_key(self, config_file, config_data):
        config_data["peer"]["colour"] = "blue"
        config_file.write_text(yaml.safe_dump(config_data))

        with pytest.raises(ConfigurationError):
            load_config(config_file, env={})

    def test_bad_redirect_address(self, config_file, config_data):
        config_data["data"]["redirects"] = [{"ip": "not-an-ip", "port": 1}]
        config_file.write_text(yaml.safe_dump(config_data))

        with pytest.raises(ConfigurationError):
            load_config(config_file, env={})


# =============================================================================
# Models
# =============================================================================


class TestSettingsModels:
    """Validation and derived values."""

    def test_gateway_url_from_ip(self):
        assert GatewaySettings(ip="10.0.0.5").url == "http://10.0.0.5:8000"
        assert GatewaySettings(ip="10.0.0.5", port=9000).url == "http://10.0.0.5:9000"

    def test_enabled_kind_requires_params(self):
        with pytest.raises(ValueError, match="audio_params"):
            MediaSettings(audio=True)

    def test_ipv6_redirect(self, config_data):
        config_data["data"]["redirects"] = [{"ip": "::1", "port": 10001}]
        config = RuntimeConfig.model_validate(config_data)

        assert config.data_redirects() == (SocketInfo(ip_v6="::1", port=10001),)

    def test_to_display_masks_api_key(self, runtime_config):
        shown = runtime_config.to_display()

        assert shown["peer"]["api_key"] == "****"
        assert shown["gateway"]["url"] == "http://gateway.test"
        assert runtime_config.api_key == "secret"
