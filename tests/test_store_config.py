"""Tests for store_config."""

import pytest

from release_errors import ConfigError
from store_config import (
    DEFAULT_API_TIMEOUT,
    DEFAULT_APP_STORE_API_BASE,
    AppStoreSettings,
    GooglePlaySettings,
)

ISSUER_ID = "69a6de70-03db-47e3-e053-5b8c7c11a4d1"

_ENV_VARS = (
    "APP_STORE_PRIVATE_KEY_PATH",
    "APP_STORE_ISSUER_ID",
    "APP_STORE_APP_ID",
    "APP_STORE_API_BASE_URL",
    "APPLE_API_TIMEOUT",
    "GOOGLE_APPLICATION_CREDENTIALS",
    "PACKAGE_NAME",
    "GOOGLE_PLAY_TRACK",
    "GOOGLE_PLAY_API_TIMEOUT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestAppStoreSettings:
    """Tests for resolving App Store settings."""

    def test_explicit_values(self):
        settings = AppStoreSettings.resolve(
            key_path="AuthKey_ABC.p8", issuer_id=ISSUER_ID, app_id="123"
        )
        assert settings.key_path == "AuthKey_ABC.p8"
        assert settings.issuer_id == ISSUER_ID
        assert settings.app_id == "123"
        assert settings.api_base_url == DEFAULT_APP_STORE_API_BASE
        assert settings.timeout == DEFAULT_API_TIMEOUT

    def test_environment_fallback(self, monkeypatch):
        """Missing options are read from the environment."""
        monkeypatch.setenv("APP_STORE_PRIVATE_KEY_PATH", "/keys/AuthKey_XYZ.p8")
        monkeypatch.setenv("APP_STORE_ISSUER_ID", ISSUER_ID)
        monkeypatch.setenv("APP_STORE_APP_ID", " 987 ")
        monkeypatch.setenv("APPLE_API_TIMEOUT", "15")

        settings = AppStoreSettings.resolve()

        assert settings.key_path == "/keys/AuthKey_XYZ.p8"
        assert settings.app_id == "987"
        assert settings.timeout == 15

    def test_option_wins_over_environment(self, monkeypatch):
        monkeypatch.setenv("APP_STORE_APP_ID", "from-env")
        settings = AppStoreSettings.resolve(
            key_path="AuthKey_ABC.p8", issuer_id=ISSUER_ID, app_id="from-cli"
        )
        assert settings.app_id == "from-cli"

    def test_invalid_issuer_id(self):
        with pytest.raises(ConfigError):
            AppStoreSettings.resolve(key_path="AuthKey_ABC.p8", issuer_id="issuer", app_id="1")

    def test_missing_value(self):
        with pytest.raises(ConfigError):
            AppStoreSettings.resolve(key_path="AuthKey_ABC.p8", issuer_id=ISSUER_ID)

    def test_blank_value(self):
        with pytest.raises(ConfigError):
            AppStoreSettings.resolve(key_path="  ", issuer_id=ISSUER_ID, app_id="1")

    @pytest.mark.parametrize("raw", ["soon", "0", "-5"])
    def test_invalid_timeout(self, monkeypatch, raw):
        monkeypatch.setenv("APPLE_API_TIMEOUT", raw)
        with pytest.raises(ConfigError):
            AppStoreSettings.resolve(key_path="AuthKey_ABC.p8", issuer_id=ISSUER_ID, app_id="1")


class TestGooglePlaySettings:
    """Tests for resolving Google Play settings."""

    def test_explicit_values(self):
        settings = GooglePlaySettings.resolve(
            key_path="sa.json", package_name="com.example.app", track="Beta"
        )
        assert settings.track == "beta"
        assert settings.package_name == "com.example.app"

    def test_environment_fallback(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", "/keys/sa.json")
        monkeypatch.setenv("PACKAGE_NAME", "com.example.app")
        monkeypatch.setenv("GOOGLE_PLAY_TRACK", "internal")
        settings = GooglePlaySettings.resolve()
        assert settings.key_path == "/keys/sa.json"
        assert settings.track == "internal"

    def test_unknown_track(self):
        with pytest.raises(ConfigError):
            GooglePlaySettings.resolve(
                key_path="sa.json", package_name="com.example.app", track="canary"
            )
