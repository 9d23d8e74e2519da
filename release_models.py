"""Typed shapes exchanged with App Store Connect and the Android Publisher API."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

# Credentials are refreshed this many seconds before their recorded expiry
TOKEN_REFRESH_MARGIN = 30


@dataclass(frozen=True)
class Credential:
    token: str
    expires_at: float
    issued_at: Optional[float] = None

    def is_expired(self, now: float, *, margin: float = TOKEN_REFRESH_MARGIN) -> bool:
        # Short-lived tokens keep at least half their lifetime usable
        if self.issued_at is not None:
            margin = min(margin, (self.expires_at - self.issued_at) / 2)
        return now >= self.expires_at - margin


# --- Google Play ------------------------------------------------------------


class TokenGrant(BaseModel):
    """Successful answer of the OAuth 2.0 token endpoint."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(min_length=1)
    expires_in: int = 3600
    token_type: str = "Bearer"


class ReleaseStatus(str, Enum):
    UNSPECIFIED = "statusUnspecified"
    DRAFT = "draft"
    IN_PROGRESS = "inProgress"
    HALTED = "halted"
    COMPLETED = "completed"


class _PlayModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ReleaseNote(_PlayModel):
    language: str
    text: str


class Release(_PlayModel):
    name: str
    status: ReleaseStatus
    versionCodes: Optional[List[str]] = None
    releaseNotes: Optional[List[ReleaseNote]] = None

    @property
    def is_draft(self) -> bool:
        return self.status is ReleaseStatus.DRAFT


class Track(_PlayModel):
    track: str
    releases: List[Release] = Field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Track":
        return cls.model_validate(payload)

    def to_payload(self) -> Dict[str, Any]:
        """Serialize into the body expected by ``edits.tracks.update``."""
        return self.model_dump(mode="json", exclude_none=True)


# --- App Store Connect ------------------------------------------------------

APP_STORE_VERSIONS_TYPE = "appStoreVersions"
APP_STORE_VERSION_LOCALIZATIONS_TYPE = "appStoreVersionLocalizations"
APPS_TYPE = "apps"
IOS_PLATFORM = "IOS"


class _AppStoreModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class AppStoreVersion(_AppStoreModel):
    type: str
    id: str


class LocalizationAttributes(_AppStoreModel):
    locale: str
    whatsNew: Optional[str] = None


class VersionLocalization(_AppStoreModel):
    type: str
    id: str
    attributes: LocalizationAttributes

    @property
    def locale(self) -> str:
        return self.attributes.locale


class AppStoreVersionList(_AppStoreModel):
    data: List[AppStoreVersion]


class VersionLocalizationList(_AppStoreModel):
    data: List[VersionLocalization]


class AppStoreVersionDocument(_AppStoreModel):
    data: AppStoreVersion


class WhatsNewAttributes(BaseModel):
    whatsNew: str


class LocalizationPatchData(BaseModel):
    type: str = APP_STORE_VERSION_LOCALIZATIONS_TYPE
    id: str
    attributes: WhatsNewAttributes


class LocalizationPatchRequest(BaseModel):
    """Body of ``PATCH appStoreVersionLocalizations/{id}``."""

    data: LocalizationPatchData

    @classmethod
    def for_text(cls, localization_id: str, text: str) -> "LocalizationPatchRequest":
        return cls(
            data=LocalizationPatchData(
                id=localization_id, attributes=WhatsNewAttributes(whatsNew=text)
            )
        )


class ResourceIdentifier(BaseModel):
    type: str
    id: str


class RelationshipLink(BaseModel):
    data: ResourceIdentifier


class VersionRelationships(BaseModel):
    app: RelationshipLink


class VersionCreateAttributes(BaseModel):
    platform: str = IOS_PLATFORM
    versionString: str


class VersionCreateData(BaseModel):
    type: str = APP_STORE_VERSIONS_TYPE
    attributes: VersionCreateAttributes
    relationships: VersionRelationships


class VersionCreateRequest(BaseModel):
    """Body of ``POST appStoreVersions``."""

    data: VersionCreateData

    @classmethod
    def for_app(
        cls, app_id: str, version_string: str, platform: str = IOS_PLATFORM
    ) -> "VersionCreateRequest":
        return cls(
            data=VersionCreateData(
                attributes=VersionCreateAttributes(
                    platform=platform, versionString=version_string
                ),
                relationships=VersionRelationships(
                    app=RelationshipLink(data=ResourceIdentifier(type=APPS_TYPE, id=app_id))
                ),
            )
        )
