"""Tests for the store factory and shared repository helpers."""

import pytest

from apple_store import AppStoreRepository
from google_play import GooglePlayRepository
from release_errors import ApiError, AuthError, ConfigError
from release_models import Credential
from store import Store, api_step, create_store, obtain_credential
from store_config import AppStoreSettings, GooglePlaySettings

ISSUER_ID = "69a6de70-03db-47e3-e053-5b8c7c11a4d1"


class RecordingTokens:
    def __init__(self, error=None):
        self.error = error
        self.invalidated = 0

    def obtain(self):
        if self.error:
            raise self.error
        return Credential(token="t", expires_at=2_000_000_000.0)

    def invalidate(self):
        self.invalidated += 1


class TestCreateStore:
    """Tests for picking a repository from settings."""

    def test_app_store_settings(self):
        settings = AppStoreSettings(key_path="AuthKey_ABC.p8", issuer_id=ISSUER_ID, app_id="123")
        store = create_store(settings)
        assert isinstance(store, AppStoreRepository)
        assert isinstance(store, Store)
        assert store.app_id == "123"

    def test_google_play_settings(self):
        settings = GooglePlaySettings(
            key_path="sa.json", package_name="com.example.app", track="beta"
        )
        store = create_store(settings)
        assert isinstance(store, GooglePlayRepository)
        assert store.package_name == "com.example.app"
        assert store.track == "beta"

    def test_unknown_settings(self):
        with pytest.raises(ConfigError):
            create_store(object())


class TestRepositoryHelpers:
    """Tests for obtain_credential and api_step."""

    def test_obtain_credential_tags_step(self):
        tokens = RecordingTokens(error=AuthError("bad key"))
        with pytest.raises(AuthError) as excinfo:
            obtain_credential(tokens)
        assert excinfo.value.step == "obtain_credential"

    def test_unauthorized_invalidates_credential(self):
        tokens = RecordingTokens()
        with pytest.raises(ApiError) as excinfo:
            with api_step("list_versions", tokens):
                raise ApiError(401, "")
        assert excinfo.value.step == "list_versions"
        assert tokens.invalidated == 1

    def test_other_api_errors_keep_credential(self):
        tokens = RecordingTokens()
        with pytest.raises(ApiError):
            with api_step("list_versions", tokens):
                raise ApiError(500, "boom")
        assert tokens.invalidated == 0
