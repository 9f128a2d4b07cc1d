"""Unit tests for configuration loading."""

import pytest

from imdsnat.core.config import (
    AppConfig,
    ImdsNatConfig,
    RedirectConfig,
    get_example_config,
    init_config,
)
from imdsnat.core.exceptions import ConfigurationError


class TestRedirectConfig:
    """Tests for RedirectConfig validation."""

    def test_defaults(self):
        """Defaults should match a typical docker0 deployment."""
        config = RedirectConfig()
        assert config.app_port == "8181"
        assert config.metadata_address == "169.254.169.254"
        assert config.host_interface == "docker0"
        assert config.host_ip == ""
        assert config.nft_timeout is None

    def test_int_port_coerced_to_string(self):
        assert RedirectConfig(app_port=8080).app_port == "8080"

    def test_invalid_port(self):
        with pytest.raises(Exception) as exc:
            RedirectConfig(app_port="99999")
        assert "Invalid port" in str(exc.value)

    def test_non_numeric_port(self):
        with pytest.raises(Exception):
            RedirectConfig(app_port="http")

    def test_invalid_metadata_address(self):
        with pytest.raises(Exception):
            RedirectConfig(metadata_address="metadata.internal")

    def test_cidr_metadata_address(self):
        assert RedirectConfig(metadata_address="169.254.0.0/16").metadata_address == "169.254.0.0/16"

    def test_wildcard_interface_allowed(self):
        assert RedirectConfig(host_interface="cali+").host_interface == "cali+"

    def test_malformed_interface(self):
        with pytest.raises(Exception):
            RedirectConfig(host_interface="eth 0")

    def test_empty_host_ip_allowed(self):
        """Empty host IP is reported later as missing, not as invalid."""
        assert RedirectConfig(host_ip="  ").host_ip == ""

    def test_invalid_host_ip(self):
        with pytest.raises(Exception):
            RedirectConfig(host_ip="10.0.0.300")

    def test_nonpositive_timeout(self):
        with pytest.raises(Exception):
            RedirectConfig(nft_timeout=0)


class TestImdsNatConfigLoad:
    """Tests for YAML loading."""

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc:
            ImdsNatConfig.load(tmp_path / "missing.yaml")
        assert "not found" in str(exc.value)

    def test_load_or_default_missing_file(self, tmp_path):
        config = ImdsNatConfig.load_or_default(tmp_path / "missing.yaml")
        assert config.redirect.host_interface == "docker0"

    def test_load_valid_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "redirect:\n"
            "  app_port: 8080\n"
            "  host_interface: cali+\n"
            "  host_ip: 10.0.0.5\n"
            "audit:\n"
            "  enabled: false\n"
        )
        config = ImdsNatConfig.load(path)
        assert config.redirect.app_port == "8080"
        assert config.redirect.host_interface == "cali+"
        assert config.redirect.host_ip == "10.0.0.5"
        assert config.audit.enabled is False

    def test_load_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("redirect: [unclosed\n")
        with pytest.raises(ConfigurationError) as exc:
            ImdsNatConfig.load(path)
        assert "Invalid YAML" in str(exc.value)

    def test_load_invalid_value(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("redirect:\n  app_port: 0\n")
        with pytest.raises(ConfigurationError) as exc:
            ImdsNatConfig.load(path)
        assert exc.value.details

    def test_load_non_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationError):
            ImdsNatConfig.load(path)

    def test_example_config_is_loadable(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(get_example_config())
        config = ImdsNatConfig.load(path)
        assert config.redirect.app_port == "8181"

    def test_to_yaml(self):
        text = ImdsNatConfig().to_yaml()
        assert "redirect:" in text
        assert "169.254.169.254" in text


class TestAppConfigRedirect:
    """Tests for override precedence."""

    @pytest.fixture
    def app_config(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("redirect:\n  app_port: 8080\n  host_ip: 10.0.0.5\n")
        return AppConfig(config_path=path)

    def test_file_values(self, app_config):
        redirect = app_config.redirect()
        assert redirect.app_port == "8080"
        assert redirect.host_ip == "10.0.0.5"

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("IMDSNAT_APP_PORT", "9090")
        monkeypatch.setenv("IMDSNAT_HOST_INTERFACE", "cali+")
        path = tmp_path / "config.yaml"
        path.write_text("redirect:\n  app_port: 8080\n")

        redirect = AppConfig(config_path=path).redirect()

        assert redirect.app_port == "9090"
        assert redirect.host_interface == "cali+"

    def test_overrides_win_over_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("IMDSNAT_HOST_IP", "10.0.0.6")
        redirect = AppConfig(config_path=tmp_path / "none.yaml").redirect(host_ip="10.0.0.7")
        assert redirect.host_ip == "10.0.0.7"

    def test_none_overrides_ignored(self, app_config):
        redirect = app_config.redirect(app_port=None, host_ip=None)
        assert redirect.app_port == "8080"
        assert redirect.host_ip == "10.0.0.5"

    def test_invalid_override(self, app_config):
        with pytest.raises(ConfigurationError):
            app_config.redirect(app_port="70000")


class TestInitConfig:
    """Tests for config file initialization."""

    def test_creates_file(self, tmp_path):
        path = tmp_path / "etc" / "config.yaml"
        init_config(path)
        assert path.exists()
        assert (path.stat().st_mode & 0o777) == 0o600

    def test_refuses_overwrite(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("redirect: {}\n")
        with pytest.raises(ConfigurationError) as exc:
            init_config(path)
        assert "--force" in exc.value.hint

    def test_force_overwrites(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("old")
        init_config(path, force=True)
        assert "redirect:" in path.read_text()
