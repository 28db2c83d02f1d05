"""
Domain models for the session and profile-sync client.

These models represent the core concepts and are transport-agnostic.
They use Pydantic for validation; wire names from the backend are accepted
through aliases so the rest of the code only sees Python field names.
"""

import base64
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# Fields the user can edit on the profile form, in display order.
EDITABLE_FIELDS: tuple[str, ...] = ("name", "email", "address", "phone")


class SessionState(str, Enum):
    """Authentication state owned by SessionController."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    EXPIRED_PENDING_RECOVERY = "expired_pending_recovery"


class RedirectReason(str, Enum):
    """Why the UI is being sent back to the entry screen."""

    SESSION_EXPIRED = "session_expired"
    NO_CREDENTIAL = "no_credential"
    LOGGED_OUT = "logged_out"


class FetchTrigger(str, Enum):
    """Call site that asked for a profile refresh. Used for logging only."""

    MOUNT = "mount"
    FOCUS = "focus"
    MANUAL_REFRESH = "manual_refresh"
    POST_UPLOAD = "post_upload"
    EDIT_ENTRY = "edit_entry"


class PermissionKind(str, Enum):
    CAMERA = "camera"
    MEDIA_LIBRARY = "media_library"


class PermissionStatus(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"


class ImageSource(str, Enum):
    """Where a profile photo comes from."""

    CAMERA = "camera"
    LIBRARY = "library"

    @property
    def permission_kind(self) -> PermissionKind:
        if self is ImageSource.CAMERA:
            return PermissionKind.CAMERA
        return PermissionKind.MEDIA_LIBRARY


class ProfileSnapshot(BaseModel):
    """Last profile value fetched from, or confirmed by, the server."""

    model_config = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=True)

    id: str | None = Field(default=None, validation_alias=AliasChoices("_id", "id"))
    name: str = ""
    email: str = ""
    address: str = ""
    phone: str = ""
    photo_ref: str | None = Field(
        default=None, validation_alias=AliasChoices("profile_photo", "photoRef", "photo_ref")
    )
    created_at: datetime | None = Field(
        default=None, validation_alias=AliasChoices("createdAt", "created_at")
    )
    updated_at: datetime | None = Field(
        default=None, validation_alias=AliasChoices("updatedAt", "updated_at")
    )

    @field_validator("name", "email", "address", "phone", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("id", mode="before")
    @classmethod
    def id_as_string(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @field_validator("photo_ref", mode="before")
    @classmethod
    def blank_photo_as_none(cls, v: Any) -> Any:
        return None if v == "" else v

    @classmethod
    def from_wire(cls, user: dict[str, Any]) -> "ProfileSnapshot":
        """Build a snapshot from the backend's ``data.user`` object."""
        return cls.model_validate(user)

    def editable_values(self) -> dict[str, str]:
        return {field: getattr(self, field) for field in EDITABLE_FIELDS}

    def merged(self, confirmed: dict[str, Any]) -> "ProfileSnapshot":
        """Return a copy with the server-confirmed wire fields applied on top."""
        echoed = ProfileSnapshot.model_validate(confirmed)
        present = echoed.model_fields_set
        return self.model_copy(update={name: getattr(echoed, name) for name in present})


class DraftProfile(BaseModel):
    """Editable in-progress form state, seeded from a snapshot."""

    model_config = ConfigDict(validate_assignment=True)

    name: str = ""
    email: str = ""
    address: str = ""
    phone: str = ""

    @classmethod
    def from_snapshot(cls, snapshot: ProfileSnapshot | None) -> "DraftProfile":
        if snapshot is None:
            return cls()
        return cls(**snapshot.editable_values())


class Registration(BaseModel):
    """Sign-up form contents."""

    name: str = ""
    email: str = ""
    address: str = ""
    phone: str = ""
    password: str = ""
    confirm_password: str = ""

    def to_wire(self) -> dict[str, str]:
        return {
            "name": self.name.strip(),
            "email": self.email.strip().lower(),
            "address": self.address.strip(),
            "phone": self.phone.strip(),
            "password": self.password,
        }


@dataclass(frozen=True)
class PickedImage:
    """Raw image handed over by the device picker or camera."""

    data: bytes
    mime_type: str | None = None
    file_name: str | None = None


class UploadAsset(BaseModel):
    """Transient encoded image; lives only for the duration of one upload."""

    model_config = ConfigDict(frozen=True)

    mime_type: str = Field(default="image/jpeg", pattern=r"^image/[\w.+-]+$")
    encoded_payload: str = Field(min_length=1, description="Base64 image bytes")

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str = "image/jpeg") -> "UploadAsset":
        return cls(mime_type=mime_type, encoded_payload=base64.b64encode(data).decode("ascii"))

    @property
    def data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.encoded_payload}"

    @property
    def size_bytes(self) -> int:
        return len(self.data_uri.encode("ascii"))
