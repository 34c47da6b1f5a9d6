import pytest

from secure_cookie_proxy.config import ProxyTargetConfig, Settings
from secure_cookie_proxy.exceptions import ConfigurationError


def test_account_defaults_to_target_without_scheme():
    config = ProxyTargetConfig(target="https://api.example.com:8443")
    assert config.account == "api.example.com:8443"


def test_account_override():
    config = ProxyTargetConfig(target="https://api.example.com", keychain_account="work")
    assert config.account == "work"


def test_unauthorized_status_defaults_to_401():
    assert ProxyTargetConfig(target="https://x.test").unauthorized_status_code == {401}


def test_unauthorized_status_single_and_list():
    assert ProxyTargetConfig(target="https://x.test", unauthorized_status_code=403).unauthorized_status_code == {403}
    assert ProxyTargetConfig(
        target="https://x.test", unauthorized_status_code=[401, 403]
    ).unauthorized_status_code == {401, 403}


def test_unauthorized_status_from_string():
    config = ProxyTargetConfig(target="https://x.test", unauthorized_status_code="401")
    assert config.unauthorized_status_code == {401}


def test_unauthorized_status_rejects_non_numeric_string():
    with pytest.raises(ConfigurationError):
        ProxyTargetConfig.from_value({"target": "https://x.test", "unauthorized_status_code": "nope"})


def test_trailing_slash_shares_account():
    assert ProxyTargetConfig(target="https://x.test/").account == ProxyTargetConfig(target="https://x.test").account == "x.test"


def test_ws_is_derived_from_scheme():
    assert ProxyTargetConfig(target="wss://x.test").ws
    assert not ProxyTargetConfig(target="https://x.test").ws


def test_cookie_path_default_and_override():
    assert ProxyTargetConfig(target="https://x.test").cookie_path == "/"
    assert ProxyTargetConfig(target="https://x.test", cookie_path_rewrite="/app").cookie_path == "/app"


def test_from_value_accepts_string():
    config = ProxyTargetConfig.from_value("https://x.test/")
    assert config.target == "https://x.test"


def test_from_value_rejects_missing_scheme():
    with pytest.raises(ConfigurationError):
        ProxyTargetConfig.from_value("x.test")


def test_from_value_rejects_unknown_option():
    with pytest.raises(ConfigurationError):
        ProxyTargetConfig.from_value({"target": "https://x.test", "bogus": 1})


def test_config_is_immutable():
    config = ProxyTargetConfig(target="https://x.test")
    with pytest.raises(Exception):
        config.keychain_account = "other"


def test_settings_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("SECURE_COOKIE_PROXY_COOKIE_DIR", str(tmp_path))
    monkeypatch.setenv("SECURE_COOKIE_PROXY_PORT", "9000")
    monkeypatch.setenv("SECURE_COOKIE_PROXY_ROUTES", '{"/api": "https://x.test"}')

    settings = Settings(_env_file=None)

    assert settings.cookie_dir == tmp_path
    assert settings.port == 9000
    assert settings.routes == {"/api": "https://x.test"}
