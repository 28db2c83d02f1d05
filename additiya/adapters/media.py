"""Device collaborators for the photo pipeline that work without a phone."""

import asyncio
import mimetypes
from collections.abc import Awaitable, Callable
from pathlib import Path

import structlog

from additiya.domain.models import ImageSource, PermissionKind, PermissionStatus, PickedImage

logger = structlog.get_logger(__name__)

# Returns the path the user chose, or None when they back out
PathChooser = Callable[[ImageSource], Awaitable[Path | None]]


class StaticPermissionGateway:
    """Answers permission prompts from a fixed table and records what was asked."""

    def __init__(self, granted: set[PermissionKind] | None = None) -> None:
        self.granted = set(PermissionKind) if granted is None else set(granted)
        self.requests: list[PermissionKind] = []

    async def request(self, kind: PermissionKind) -> PermissionStatus:
        self.requests.append(kind)
        return PermissionStatus.GRANTED if kind in self.granted else PermissionStatus.DENIED


class FileImagePicker:
    """Reads the image file picked by ``chooser``."""

    def __init__(self, chooser: PathChooser) -> None:
        self._chooser = chooser

    async def pick(self, source: ImageSource) -> PickedImage | None:
        path = await self._chooser(source)
        if path is None:
            return None

        path = Path(path)
        data = await asyncio.to_thread(path.read_bytes)
        mime_type, _ = mimetypes.guess_type(path.name)
        logger.debug("image_file_picked", source=source.value, file_name=path.name, size=len(data))
        return PickedImage(data=data, mime_type=mime_type, file_name=path.name)
