"""Platform-neutral release store contract and the factory that picks one."""

from __future__ import annotations

import abc
import logging
from contextlib import contextmanager
from typing import Iterator, Protocol, Union

from release_errors import ApiError, ConfigError, step_context
from release_models import Credential
from store_config import AppStoreSettings, GooglePlaySettings

logger = logging.getLogger(__name__)

StoreSettings = Union[AppStoreSettings, GooglePlaySettings]


class CredentialProvider(Protocol):
    def obtain(self) -> Credential:
        ...

    def invalidate(self) -> None:
        ...


class Store(abc.ABC):
    """Release metadata operations every storefront supports."""

    @abc.abstractmethod
    def set_notes(self, locale: str, version: str, text: str) -> None:
        """Replace the release notes of ``version`` for ``locale``."""

    @abc.abstractmethod
    def create_version(self, version: str) -> None:
        """Create a new, empty release named ``version``."""


def obtain_credential(tokens: CredentialProvider) -> Credential:
    with step_context("obtain_credential"):
        return tokens.obtain()


@contextmanager
def api_step(step: str, tokens: CredentialProvider) -> Iterator[None]:
    """Run one vendor call, tagging failures with ``step``.

    A 401 drops the cached credential so the next invocation mints a fresh
    one; the failing call itself is not retried.
    """
    with step_context(step):
        try:
            yield
        except ApiError as exc:
            if exc.is_unauthorized:
                tokens.invalidate()
            raise


def create_store(settings: StoreSettings) -> Store:
    if isinstance(settings, AppStoreSettings):
        from apple_store import AppStoreRepository

        logger.debug("Using App Store Connect repository")
        return AppStoreRepository.from_settings(settings)
    if isinstance(settings, GooglePlaySettings):
        from google_play import GooglePlayRepository

        logger.debug("Using Google Play repository")
        return GooglePlayRepository.from_settings(settings)
    raise ConfigError(f"알 수 없는 스토어 설정입니다: {type(settings).__name__}")
