"""Settings for the release tool, resolved from CLI options and the environment."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Optional

from release_errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_APP_STORE_API_BASE = "https://api.appstoreconnect.apple.com/v1"
DEFAULT_API_TIMEOUT = 60

GOOGLE_PLAY_TRACKS = ("internal", "alpha", "beta", "production")

_UUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


def resolve_value(value: Optional[str], env_name: str, label: str) -> str:
    if value is None:
        value = os.getenv(env_name)
    if value is None:
        raise ConfigError(
            f"{label} 값이 필요합니다. 옵션으로 전달하거나 환경 변수 '{env_name}'을(를) 설정해 주세요."
        )
    value = value.strip()
    if not value:
        raise ConfigError(f"{label} 값이 비어 있습니다. (환경 변수: {env_name})")
    return value


def resolve_issuer_id(value: Optional[str]) -> str:
    issuer = resolve_value(value, "APP_STORE_ISSUER_ID", "Issuer ID")
    if not _UUID_RE.match(issuer):
        raise ConfigError("Issuer ID 값이 올바른 UUID 형식인지 확인해 주세요.")
    return issuer


def _timeout_from_env(env_name: str) -> int:
    raw = os.getenv(env_name)
    if not raw:
        return DEFAULT_API_TIMEOUT
    try:
        timeout = int(raw)
    except ValueError as exc:
        raise ConfigError(f"환경 변수 '{env_name}' 값은 초 단위 정수여야 합니다: {raw}") from exc
    if timeout <= 0:
        raise ConfigError(f"환경 변수 '{env_name}' 값은 양수여야 합니다: {raw}")
    return timeout


@dataclass(frozen=True)
class AppStoreSettings:
    key_path: str
    issuer_id: str
    app_id: str
    api_base_url: str = DEFAULT_APP_STORE_API_BASE
    timeout: int = DEFAULT_API_TIMEOUT

    platform = "ios"

    @classmethod
    def resolve(
        cls,
        *,
        key_path: Optional[str] = None,
        issuer_id: Optional[str] = None,
        app_id: Optional[str] = None,
    ) -> "AppStoreSettings":
        settings = cls(
            key_path=resolve_value(key_path, "APP_STORE_PRIVATE_KEY_PATH", "키 파일 경로"),
            issuer_id=resolve_issuer_id(issuer_id),
            app_id=resolve_value(app_id, "APP_STORE_APP_ID", "App ID"),
            api_base_url=os.getenv("APP_STORE_API_BASE_URL", DEFAULT_APP_STORE_API_BASE),
            timeout=_timeout_from_env("APPLE_API_TIMEOUT"),
        )
        logger.debug("Resolved App Store settings for app %s", settings.app_id)
        return settings


@dataclass(frozen=True)
class GooglePlaySettings:
    key_path: str
    package_name: str
    track: str
    timeout: int = DEFAULT_API_TIMEOUT

    platform = "android"

    @classmethod
    def resolve(
        cls,
        *,
        key_path: Optional[str] = None,
        package_name: Optional[str] = None,
        track: Optional[str] = None,
    ) -> "GooglePlaySettings":
        track_name = resolve_value(track, "GOOGLE_PLAY_TRACK", "트랙").lower()
        if track_name not in GOOGLE_PLAY_TRACKS:
            raise ConfigError(
                f"지원하지 않는 트랙입니다: {track_name} (가능한 값: {', '.join(GOOGLE_PLAY_TRACKS)})"
            )
        settings = cls(
            key_path=resolve_value(key_path, "GOOGLE_APPLICATION_CREDENTIALS", "키 파일 경로"),
            package_name=resolve_value(package_name, "PACKAGE_NAME", "패키지 이름"),
            track=track_name,
            timeout=_timeout_from_env("GOOGLE_PLAY_API_TIMEOUT"),
        )
        logger.debug(
            "Resolved Google Play settings for %s (track=%s)",
            settings.package_name,
            settings.track,
        )
        return settings
