"""
Profile photo pipeline: permission -> acquire -> encode -> upload -> merge.

The device side (permission prompts, camera, library picker) is reached
through two small Protocols so the pipeline runs the same against a phone
bridge, a desktop file chooser, or a test double.
"""

import asyncio
import io
from typing import Protocol

import structlog
from PIL import Image, ImageOps, UnidentifiedImageError

from additiya.config import MediaConfig
from additiya.domain.errors import (
    Busy,
    Cancelled,
    ClientError,
    PermissionDenied,
    ServerRejected,
    ValidationError,
)
from additiya.domain.models import (
    FetchTrigger,
    ImageSource,
    PermissionKind,
    PermissionStatus,
    PickedImage,
    ProfileSnapshot,
    UploadAsset,
)
from additiya.domain.result import Result
from additiya.services.profile_sync import ProfileSync
from additiya.services.session import AuthorizedRequester

logger = structlog.get_logger(__name__)

UPLOAD_PATH = "/api/auth/upload-profile-photo"


class PermissionGateway(Protocol):
    async def request(self, kind: PermissionKind) -> PermissionStatus: ...


class ImagePicker(Protocol):
    async def pick(self, source: ImageSource) -> PickedImage | None:
        """Return the chosen image, or None when the user backs out."""
        ...


def encode_image(picked: PickedImage, max_edge_px: int = 1024, jpeg_quality: float = 0.8) -> UploadAsset:
    """
    Normalise a picked image for upload.

    Applies EXIF orientation, centre-crops to a square (the picker's 1:1
    editing aspect), bounds the edge length and re-encodes as JPEG.

    Raises:
        ValidationError: the bytes are not a readable image.
    """
    try:
        with Image.open(io.BytesIO(picked.data)) as img:
            img = ImageOps.exif_transpose(img)
            edge = min(min(img.size), max_edge_px)
            square = ImageOps.fit(img, (edge, edge), method=Image.Resampling.LANCZOS)
            if square.mode != "RGB":
                square = square.convert("RGB")

            buffer = io.BytesIO()
            square.save(buffer, format="JPEG", quality=round(jpeg_quality * 100))
    except (UnidentifiedImageError, OSError) as e:
        raise ValidationError({"image": "Unsupported or corrupted image"}) from e

    return UploadAsset.from_bytes(buffer.getvalue(), mime_type="image/jpeg")


class MediaUploadPipeline:
    """Runs one profile photo change at a time."""

    def __init__(
        self,
        session: AuthorizedRequester,
        profile_sync: ProfileSync,
        permissions: PermissionGateway,
        picker: ImagePicker,
        config: MediaConfig | None = None,
    ) -> None:
        self._session = session
        self._profile_sync = profile_sync
        self._permissions = permissions
        self._picker = picker
        self.config = config or MediaConfig()
        self._uploading = False
        self.logger = logger.bind(component="media_upload")

    @property
    def is_uploading(self) -> bool:
        return self._uploading

    async def request_permission(self, kind: PermissionKind) -> PermissionStatus:
        status = await self._permissions.request(kind)
        self.logger.info("permission_requested", kind=kind.value, status=status.value)
        return status

    async def acquire_image(self, source: ImageSource) -> Result[UploadAsset, ClientError]:
        """
        Capture or pick an image and encode it.

        Errors: Cancelled (user backed out), ValidationError (unreadable or
        too large after encoding).
        """
        picked = await self._picker.pick(source)
        if picked is None:
            self.logger.info("image_selection_cancelled", source=source.value)
            return Result.err(Cancelled())

        try:
            asset = await asyncio.to_thread(
                encode_image, picked, self.config.max_edge_px, self.config.jpeg_quality
            )
        except ValidationError as e:
            self.logger.warning("image_encoding_failed", source=source.value)
            return Result.err(e)

        if asset.size_bytes > self.config.max_upload_bytes:
            self.logger.warning(
                "image_too_large", size_bytes=asset.size_bytes, limit=self.config.max_upload_bytes
            )
            return Result.err(ValidationError({"image": "Image is too large to upload"}))

        self.logger.debug("image_acquired", source=source.value, size_bytes=asset.size_bytes)
        return Result.ok(asset)

    async def upload(self, asset: UploadAsset) -> Result[str, ClientError]:
        """
        Send the asset and merge the returned photo reference.

        A second upload while one is in flight gets Busy.
        """
        if self._uploading:
            return Result.err(Busy("photo_upload"))

        self._uploading = True
        try:
            result = await self._session.authorized_request(
                "POST", UPLOAD_PATH, {"image": asset.data_uri}
            )
        finally:
            self._uploading = False

        if result.is_err():
            error = result.unwrap_err()
            self.logger.warning("photo_upload_failed", error_type=type(error).__name__)
            return Result.err(error)

        photo_ref = result.unwrap().get("profile_photo")
        if not isinstance(photo_ref, str) or not photo_ref:
            self.logger.warning("photo_reference_missing")
            return Result.err(ServerRejected(fallback="Failed to upload photo."))

        if self._profile_sync.merge_photo(photo_ref) is None:
            # No snapshot to merge into yet
            await self._profile_sync.fetch(FetchTrigger.POST_UPLOAD)

        self.logger.info("photo_uploaded")
        return Result.ok(photo_ref)

    async def upload_profile_photo(
        self, source: ImageSource
    ) -> Result[ProfileSnapshot | None, ClientError]:
        """Whole flow for one source. Returns the snapshot after the merge."""
        kind = source.permission_kind
        if await self.request_permission(kind) is not PermissionStatus.GRANTED:
            return Result.err(PermissionDenied(kind.value))

        acquired = await self.acquire_image(source)
        if acquired.is_err():
            return Result.err(acquired.unwrap_err())

        uploaded = await self.upload(acquired.unwrap())
        if uploaded.is_err():
            return Result.err(uploaded.unwrap_err())
        return Result.ok(self._profile_sync.snapshot)
