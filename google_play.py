"""Google Play integration: service-account login, Android Publisher client and release flow."""

from __future__ import annotations

import json
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import httplib2
import requests
from google.auth import crypt
from google.auth import jwt as google_jwt
from google.auth.exceptions import GoogleAuthError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import HttpRequest
from pydantic import ValidationError

from release_errors import (
    AmbiguousOrMissingLocalizationError,
    AmbiguousReleaseError,
    ApiError,
    KeyUnreadableError,
    MalformedKeyFileError,
    ReleaseNotEditableError,
    SigningError,
    TokenExchangeError,
    TransportError,
    VersionAlreadyExistsError,
    step_context,
)
from release_models import (
    Credential,
    Release,
    ReleaseNote,
    ReleaseStatus,
    TokenGrant,
    Track,
)
from store import Store, api_step, obtain_credential
from store_config import DEFAULT_API_TIMEOUT, GooglePlaySettings

logger = logging.getLogger(__name__)

ANDROID_PUBLISHER_SCOPE = "https://www.googleapis.com/auth/androidpublisher"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
JWT_BEARER_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME = 60 * 60


def _load_service_account(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as fp:
            info = json.load(fp)
    except OSError as exc:
        raise KeyUnreadableError(f"{path}에서 서비스 계정 키를 읽을 수 없습니다: {exc}") from exc
    except ValueError as exc:
        raise MalformedKeyFileError(f"서비스 계정 키 파일이 올바른 JSON이 아닙니다: {path}") from exc

    if not isinstance(info, dict):
        raise MalformedKeyFileError(f"서비스 계정 키 파일 형식이 올바르지 않습니다: {path}")
    for field in ("client_email", "private_key"):
        value = info.get(field)
        if not isinstance(value, str) or not value.strip():
            raise MalformedKeyFileError(
                f"서비스 계정 키 파일에 '{field}' 항목이 없습니다: {path}"
            )
    return info


class GooglePlayTokenProvider:
    """Exchanges a service-account assertion for an Android Publisher access token.

    The RS256 assertion is signed locally with google-auth and traded at the
    OAuth token endpoint. The resulting token's lifetime comes from the
    endpoint's ``expires_in`` and is tracked like the App Store token.
    """

    def __init__(
        self,
        key_path: str,
        client: "AndroidPublisherClient",
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.key_path = key_path
        self._client = client
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
            logger.warning("Discarding cached Google Play access token")
        self._credential = None

    def build_assertion(self, now: float) -> str:
        info = _load_service_account(self.key_path)
        try:
            signer = crypt.RSASigner.from_service_account_info(info)
        except (ValueError, TypeError, GoogleAuthError) as exc:
            raise MalformedKeyFileError(
                "서비스 계정의 private_key를 RSA 키로 읽을 수 없습니다."
            ) from exc

        issued_at = int(now)
        payload = {
            "iss": info["client_email"],
            "scope": ANDROID_PUBLISHER_SCOPE,
            "aud": GOOGLE_TOKEN_URI,
            "iat": issued_at,
            "exp": issued_at + ASSERTION_LIFETIME,
        }
        try:
            assertion = google_jwt.encode(signer, payload)
        except (ValueError, TypeError, GoogleAuthError) as exc:
            raise SigningError("서비스 계정 assertion에 서명하지 못했습니다.") from exc
        if isinstance(assertion, bytes):
            assertion = assertion.decode("utf-8")
        return assertion

    def _mint(self, now: float) -> Credential:
        assertion = self.build_assertion(now)
        try:
            grant = self._client.exchange_assertion(assertion)
        except (ApiError, TransportError) as exc:
            raise TokenExchangeError(f"Google 액세스 토큰을 발급받지 못했습니다: {exc}") from exc

        logger.info("Obtained Google Play access token (expires_in=%d)", grant.expires_in)
        return Credential(
            token=grant.access_token, expires_at=now + grant.expires_in, issued_at=now
        )


class AndroidPublisherClient:
    """Android Publisher v3 calls needed to stage and commit track changes.

    Edit calls go through the discovery-based client with ``num_retries=0``;
    the token exchange is a plain form POST. One HTTP exchange per method.
    """

    def __init__(
        self,
        *,
        timeout: int = DEFAULT_API_TIMEOUT,
        http: Optional[httplib2.Http] = None,
        session: Optional[requests.Session] = None,
        token_uri: str = GOOGLE_TOKEN_URI,
    ) -> None:
        self.timeout = timeout
        self.token_uri = token_uri
        self._http = http or httplib2.Http(timeout=timeout)
        self._session = session or requests.Session()
        self._service = None

    @property
    def service(self):
        if self._service is None:
            logger.info("Initializing Google Play Android Publisher service client")
            self._service = build(
                "androidpublisher",
                "v3",
                http=self._http,
                cache_discovery=False,
                static_discovery=True,
            )
        return self._service

    def exchange_assertion(self, assertion: str) -> TokenGrant:
        operation = "exchange_assertion"
        logger.debug("Google OAuth Request POST %s", self.token_uri)
        try:
            response = self._session.post(
                self.token_uri,
                data={"grant_type": JWT_BEARER_GRANT_TYPE, "assertion": assertion},
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise TransportError(f"{operation} 요청을 보내지 못했습니다: {exc}") from exc

        if response.status_code >= 400:
            error = ApiError(response.status_code, response.text.strip(), operation=operation)
            logger.error("Google OAuth error %s: %s", response.status_code, error.message)
            raise error
        try:
            return TokenGrant.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise TransportError(f"{operation} 응답에서 access_token을 찾을 수 없습니다.") from exc

    def _execute(
        self, request: HttpRequest, credential: Credential, operation: str
    ) -> Dict[str, Any]:
        request.headers["authorization"] = f"Bearer {credential.token}"
        logger.debug("Android Publisher Request %s %s", request.method, request.uri)
        try:
            response = request.execute(num_retries=0)
        except HttpError as exc:
            content = exc.content
            if isinstance(content, bytes):
                content = content.decode("utf-8", errors="replace")
            error = ApiError(int(exc.resp.status), (content or "").strip(), operation=operation)
            logger.error("Google API error while calling %s: %s", operation, error.message)
            raise error from exc
        except (httplib2.HttpLib2Error, OSError) as exc:
            raise TransportError(f"{operation} 요청을 보내지 못했습니다: {exc}") from exc
        except ValueError as exc:
            raise TransportError(f"{operation} 응답을 JSON으로 해석할 수 없습니다.") from exc
        return response if isinstance(response, dict) else {}

    def create_edit(self, credential: Credential, package_name: str) -> str:
        request = self.service.edits().insert(packageName=package_name, body={})
        payload = self._execute(request, credential, "create_edit")
        edit_id = payload.get("id")
        if not isinstance(edit_id, str) or not edit_id:
            raise TransportError("create_edit 응답에 edit id가 없습니다.")
        return edit_id

    def get_track(
        self, credential: Credential, package_name: str, edit_id: str, track: str
    ) -> Track:
        request = self.service.edits().tracks().get(
            packageName=package_name, editId=edit_id, track=track
        )
        payload = self._execute(request, credential, "get_track")
        try:
            return Track.from_payload(payload)
        except ValidationError as exc:
            raise TransportError(f"get_track 응답 형식이 예상과 다릅니다: {exc}") from exc

    def update_track(
        self, credential: Credential, package_name: str, edit_id: str, track: Track
    ) -> None:
        request = self.service.edits().tracks().update(
            packageName=package_name,
            editId=edit_id,
            track=track.track,
            body=track.to_payload(),
        )
        self._execute(request, credential, "update_track")

    def commit_edit(self, credential: Credential, package_name: str, edit_id: str) -> None:
        request = self.service.edits().commit(packageName=package_name, editId=edit_id)
        self._execute(request, credential, "commit_edit")


class EditState(str, Enum):
    NOT_AUTHENTICATED = "not_authenticated"
    AUTHENTICATED = "authenticated"
    SESSION_OPEN = "session_open"
    MUTATED = "mutated"
    COMMITTED = "committed"


def select_draft_release(releases: List[Release], version: str) -> Release:
    """Return the one draft release named ``version``."""
    matches = [release for release in releases if release.is_draft and release.name == version]
    if not matches:
        raise ReleaseNotEditableError(
            f"'{version}' 릴리스를 찾을 수 없거나 수정할 수 없는 상태입니다. (draft 릴리스만 수정 가능)"
        )
    if len(matches) > 1:
        raise AmbiguousReleaseError(
            f"이름이 '{version}'인 draft 릴리스가 {len(matches)}개 있습니다."
        )
    return matches[0]


def resolve_notes_language(release: Release, locale: str) -> str:
    """Return the language to write; an empty locale means the release's only one."""
    if locale:
        return locale
    notes = release.releaseNotes or []
    if len(notes) != 1:
        raise AmbiguousOrMissingLocalizationError(
            f"언어 코드가 비어 있으면 릴리스 노트 언어가 정확히 하나여야 합니다. (현재 {len(notes)}개)"
        )
    return notes[0].language


class GooglePlayRepository(Store):
    """Release flow for Google Play, where every change is staged in an edit.

    Each call opens its own edit, replaces the configured track's releases and
    commits. A failure before the commit leaves the edit uncommitted; Google
    discards it on its own.
    """

    def __init__(
        self,
        package_name: str,
        track: str,
        token_provider: GooglePlayTokenProvider,
        client: AndroidPublisherClient,
    ) -> None:
        self.package_name = package_name
        self.track = track
        self._tokens = token_provider
        self._client = client
        self.state = EditState.NOT_AUTHENTICATED

    @classmethod
    def from_settings(cls, settings: GooglePlaySettings) -> "GooglePlayRepository":
        client = AndroidPublisherClient(timeout=settings.timeout)
        return cls(
            settings.package_name,
            settings.track,
            GooglePlayTokenProvider(settings.key_path, client),
            client,
        )

    def _open_edit(self) -> Tuple[Credential, str, Track]:
        self.state = EditState.NOT_AUTHENTICATED
        credential = obtain_credential(self._tokens)
        self.state = EditState.AUTHENTICATED

        with api_step("create_edit", self._tokens):
            edit_id = self._client.create_edit(credential, self.package_name)
        self.state = EditState.SESSION_OPEN
        logger.info("Opened edit %s for %s", edit_id, self.package_name)

        with api_step("get_track", self._tokens):
            current = self._client.get_track(credential, self.package_name, edit_id, self.track)
        logger.info(
            "Track %s currently has %d release(s)", self.track, len(current.releases)
        )
        return credential, edit_id, current

    def _replace_and_commit(self, credential: Credential, edit_id: str, track: Track) -> None:
        with api_step("update_track", self._tokens):
            self._client.update_track(credential, self.package_name, edit_id, track)
        self.state = EditState.MUTATED

        with api_step("commit_edit", self._tokens):
            self._client.commit_edit(credential, self.package_name, edit_id)
        self.state = EditState.COMMITTED
        logger.info("Committed edit %s", edit_id)

    def create_version(self, version: str) -> None:
        logger.info("Creating Google Play release %s on track %s", version, self.track)
        credential, edit_id, current = self._open_edit()

        with step_context("check_existing_version"):
            if any(release.name == version for release in current.releases):
                raise VersionAlreadyExistsError(
                    f"트랙 '{self.track}'에 '{version}' 릴리스가 이미 존재합니다."
                )

        draft = Release(name=version, status=ReleaseStatus.DRAFT)
        self._replace_and_commit(credential, edit_id, Track(track=self.track, releases=[draft]))

    def set_notes(self, locale: str, version: str, text: str) -> None:
        logger.info(
            "Updating Google Play release notes for %s (language=%r, track=%s)",
            version,
            locale,
            self.track,
        )
        credential, edit_id, current = self._open_edit()
        with step_context("resolve_release"):
            target = select_draft_release(current.releases, version)
        with step_context("resolve_localization"):
            language = resolve_notes_language(target, locale)

        # Google replaces the whole notes list; other languages are dropped.
        patched = target.model_copy(
            update={"releaseNotes": [ReleaseNote(language=language, text=text)]}
        )
        self._replace_and_commit(credential, edit_id, Track(track=self.track, releases=[patched]))
