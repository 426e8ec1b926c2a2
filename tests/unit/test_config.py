"""Tests for settings loading."""

import pytest
from pydantic import ValidationError

from kube_exec_controller.config import Settings


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.port == 8443
        assert settings.ttl_seconds == 600
        assert settings.channels.interact_chan_size == 500
        assert settings.channels.extend_chan_size == 500
        assert settings.retry.max_elapsed_seconds == 900
        assert settings.retry.max_attempts is None
        assert settings.exempt_namespaces == frozenset()

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("KEC_TTL_SECONDS", "30")
        monkeypatch.setenv("KEC_NAMESPACE_ALLOWLIST", "kube-system,monitoring")
        monkeypatch.setenv("KEC_CHANNELS__INTERACT_CHAN_SIZE", "7")
        settings = Settings()
        assert settings.ttl_seconds == 30
        assert settings.exempt_namespaces == frozenset({"kube-system", "monitoring"})
        assert settings.channels.interact_chan_size == 7

    def test_yaml_file_is_merged(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "ttl_seconds: 120\n"
            "tls:\n"
            "  cert_path: /certs/tls.crt\n"
            "  key_path: /certs/tls.key\n"
            "retry:\n"
            "  max_attempts: 5\n",
            encoding="utf-8",
        )
        settings = Settings(_config_file=str(config_file), port=9443)
        assert settings.ttl_seconds == 120
        assert settings.port == 9443
        assert settings.tls.cert_path == "/certs/tls.crt"
        assert settings.retry.max_attempts == 5

    def test_missing_yaml_file_is_ignored(self, tmp_path):
        settings = Settings(_config_file=str(tmp_path / "absent.yaml"))
        assert settings.ttl_seconds == 600

    @pytest.mark.parametrize(
        "values",
        [
            {"ttl_seconds": -1},
            {"port": 0},
            {"channels": {"interact_chan_size": 0}},
            {"logging": {"format": "xml"}},
        ],
    )
    def test_invalid_values(self, values):
        with pytest.raises(ValidationError):
            Settings(**values)
