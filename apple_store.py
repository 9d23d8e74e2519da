"""Apple App Store Connect integration: token minting, API client and release flow."""

from __future__ import annotations

import logging
import os
import re
import time
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

import jwt
import requests
from pydantic import BaseModel, ValidationError

from release_errors import (
    AmbiguousOrMissingLocalizationError,
    AmbiguousOrMissingVersionError,
    ApiError,
    KeyUnreadableError,
    MalformedKeyFileError,
    MalformedKeyPathError,
    SigningError,
    TransportError,
    VersionAlreadyExistsError,
    step_context,
)
from release_models import (
    AppStoreVersion,
    AppStoreVersionDocument,
    AppStoreVersionList,
    Credential,
    LocalizationPatchRequest,
    VersionCreateRequest,
    VersionLocalization,
    VersionLocalizationList,
)
from store import Store, api_step, obtain_credential
from store_config import DEFAULT_API_TIMEOUT, DEFAULT_APP_STORE_API_BASE, AppStoreSettings

logger = logging.getLogger(__name__)

APP_STORE_AUDIENCE = "appstoreconnect-v1"
APP_STORE_TOKEN_LIFETIME = 5 * 60

_KEY_FILE_RE = re.compile(r"^AuthKey_([A-Za-z0-9]+)\.p8$")

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_key_id(key_path: str) -> str:
    """Return the key identifier encoded in an ``AuthKey_{ID}.p8`` file name."""
    match = _KEY_FILE_RE.match(os.path.basename(key_path or ""))
    if not match:
        raise MalformedKeyPathError(
            f"키 파일 이름이 올바르지 않습니다: {key_path!r}. AuthKey_{{ID}}.p8 형식이어야 합니다."
        )
    return match.group(1)


def _load_private_key(path: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as fp:
            contents = fp.read()
    except OSError as exc:
        raise KeyUnreadableError(f"{path}에서 키를 읽을 수 없습니다: {exc}") from exc

    contents = contents.lstrip("\ufeff").strip()
    if "-----BEGIN" not in contents or "PRIVATE KEY-----" not in contents:
        raise MalformedKeyFileError(
            "Apple API 비공개 키 파일 형식이 올바르지 않습니다. App Store Connect에서 내려받은 .p8 파일인지 확인해 주세요."
        )
    return contents + "\n"


class AppStoreTokenProvider:
    """Mints and caches the ES256 JWT used as an App Store Connect bearer token.

    Tokens are self-signed, so minting never touches the network. A cached
    token is reused until it is within the refresh margin of its expiry.
    """

    def __init__(
        self,
        key_path: str,
        issuer_id: str,
        *,
        lifetime: int = APP_STORE_TOKEN_LIFETIME,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.key_path = key_path
        self.issuer_id = issuer_id
        self.lifetime = lifetime
        self._clock = clock
        self._credential: Optional[Credential] = None

    def obtain(self) -> Credential:
        now = self._clock()
        cached = self._credential
        if cached is not None and not cached.is_expired(now):
            return cached
        self._credential = self._mint(now)
        return self._credential

    def invalidate(self) -> None:
        if self._credential is not None:
            logger.warning("Discarding cached App Store Connect token")
        self._credential = None

    def _mint(self, now: float) -> Credential:
        key_id = parse_key_id(self.key_path)
        private_key = _load_private_key(self.key_path)

        issued_at = int(now)
        expires_at = issued_at + self.lifetime
        payload = {
            "iss": self.issuer_id,
            "iat": issued_at,
            "exp": expires_at,
            "aud": APP_STORE_AUDIENCE,
        }
        try:
            token = jwt.encode(
                payload,
                private_key,
                algorithm="ES256",
                headers={"kid": key_id, "typ": "JWT"},
            )
        except (jwt.PyJWTError, ValueError, TypeError) as exc:
            raise SigningError(
                "JWT를 생성하는 데 실패했습니다. 비공개 키가 ES256(P-256) 키인지 확인해 주세요."
            ) from exc

        logger.info("Minted App Store Connect token (kid=%s, exp=%d)", key_id, expires_at)
        return Credential(token=token, expires_at=float(expires_at), issued_at=float(issued_at))


class AppStoreConnectClient:
    """Thin wrapper around the App Store Connect REST endpoints used for releases.

    Every public method performs exactly one HTTP exchange and never retries.
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_APP_STORE_API_BASE,
        timeout: int = DEFAULT_API_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    def _request(
        self,
        method: str,
        path: str,
        credential: Credential,
        *,
        operation: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        logger.debug("Apple API Request %s %s", method, url)
        if logger.isEnabledFor(logging.DEBUG) and params:
            logger.debug("  Params: %s", params)

        headers = {
            "Authorization": f"Bearer {credential.token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        try:
            response = self._session.request(
                method,
                url,
                headers=headers,
                params=params,
                json=json,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            logger.error("Request error on %s %s: %s", method, url, exc)
            raise TransportError(f"{operation} 요청을 보내지 못했습니다: {exc}") from exc

        if response.status_code >= 400:
            error = ApiError(response.status_code, response.text.strip(), operation=operation)
            logger.error(
                "Apple API error %s: %s | URL: %s",
                response.status_code,
                error.message,
                url,
            )
            raise error
        if response.status_code == 204 or not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise TransportError(f"{operation} 응답을 JSON으로 해석할 수 없습니다.") from exc
        if not isinstance(payload, dict):
            raise TransportError(f"{operation} 응답 형식이 올바르지 않습니다.")
        return payload

    @staticmethod
    def _parse(model: Type[ModelT], payload: Dict[str, Any], operation: str) -> ModelT:
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise TransportError(f"{operation} 응답 형식이 예상과 다릅니다: {exc}") from exc

    def list_versions(
        self, credential: Credential, app_id: str, version_string: str
    ) -> List[AppStoreVersion]:
        operation = "list_versions"
        payload = self._request(
            "GET",
            f"apps/{app_id}/appStoreVersions",
            credential,
            operation=operation,
            params={"filter[versionString]": version_string},
        )
        return self._parse(AppStoreVersionList, payload, operation).data

    def list_localizations(
        self, credential: Credential, version_id: str
    ) -> List[VersionLocalization]:
        operation = "list_localizations"
        payload = self._request(
            "GET",
            f"appStoreVersions/{version_id}/appStoreVersionLocalizations",
            credential,
            operation=operation,
        )
        return self._parse(VersionLocalizationList, payload, operation).data

    def patch_whats_new(self, credential: Credential, localization_id: str, text: str) -> None:
        body = LocalizationPatchRequest.for_text(localization_id, text)
        self._request(
            "PATCH",
            f"appStoreVersionLocalizations/{localization_id}",
            credential,
            operation="patch_whats_new",
            json=body.model_dump(mode="json"),
        )

    def create_version(
        self, credential: Credential, app_id: str, version_string: str
    ) -> AppStoreVersion:
        operation = "create_version"
        body = VersionCreateRequest.for_app(app_id, version_string)
        payload = self._request(
            "POST",
            "appStoreVersions",
            credential,
            operation=operation,
            json=body.model_dump(mode="json"),
        )
        return self._parse(AppStoreVersionDocument, payload, operation).data


def select_localization(
    localizations: List[VersionLocalization], locale: str
) -> VersionLocalization:
    """Pick the single localization matching ``locale`` (case-insensitive).

    An empty locale matches the sole localization of a version and fails when
    there is more than one to choose from.
    """
    if not locale:
        if len(localizations) != 1:
            raise AmbiguousOrMissingLocalizationError(
                f"언어가 지정되지 않았는데 로컬라이제이션이 {len(localizations)}개 있습니다. 언어를 지정해 주세요."
            )
        return localizations[0]

    wanted = locale.lower()
    matches = [entry for entry in localizations if entry.locale.lower() == wanted]
    if len(matches) != 1:
        raise AmbiguousOrMissingLocalizationError(
            f"'{locale}' 로컬라이제이션과 일치하는 항목이 {len(matches)}개입니다."
        )
    return matches[0]


class AppStoreRepository(Store):
    """Release flow for App Store Connect, where versions are addressed directly."""

    def __init__(
        self,
        app_id: str,
        token_provider: AppStoreTokenProvider,
        client: AppStoreConnectClient,
    ) -> None:
        self.app_id = app_id
        self._tokens = token_provider
        self._client = client

    @classmethod
    def from_settings(cls, settings: AppStoreSettings) -> "AppStoreRepository":
        return cls(
            settings.app_id,
            AppStoreTokenProvider(settings.key_path, settings.issuer_id),
            AppStoreConnectClient(base_url=settings.api_base_url, timeout=settings.timeout),
        )

    def _find_versions(self, credential: Credential, version: str) -> List[AppStoreVersion]:
        with api_step("list_versions", self._tokens):
            return self._client.list_versions(credential, self.app_id, version)

    def set_notes(self, locale: str, version: str, text: str) -> None:
        logger.info("Updating App Store release notes for %s (locale=%r)", version, locale)
        credential = obtain_credential(self._tokens)

        versions = self._find_versions(credential, version)
        with step_context("resolve_version"):
            if len(versions) != 1:
                raise AmbiguousOrMissingVersionError(
                    f"버전 문자열 '{version}'과(와) 일치하는 버전이 {len(versions)}개입니다. 정확히 하나여야 합니다."
                )
        version_id = versions[0].id

        with api_step("list_localizations", self._tokens):
            localizations = self._client.list_localizations(credential, version_id)
        with step_context("resolve_localization"):
            target = select_localization(localizations, locale)

        logger.info("Patching localization %s (%s)", target.id, target.locale)
        with api_step("patch_whats_new", self._tokens):
            self._client.patch_whats_new(credential, target.id, text)

    def create_version(self, version: str) -> None:
        logger.info("Creating App Store version %s for app %s", version, self.app_id)
        credential = obtain_credential(self._tokens)

        existing = self._find_versions(credential, version)
        with step_context("check_existing_version"):
            if existing:
                raise VersionAlreadyExistsError(f"버전 '{version}'이(가) 이미 존재합니다.")

        with api_step("create_version", self._tokens):
            created = self._client.create_version(credential, self.app_id, version)
        logger.info("Created App Store version %s (id=%s)", version, created.id)
