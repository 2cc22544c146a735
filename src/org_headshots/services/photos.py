"""Headshot storage: object writes kept in step with metadata rows."""

import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import unquote, urlparse

from org_headshots.domain.errors import (
    ErrorKind,
    Result,
    RetryExhaustedError,
    is_timeout,
)
from org_headshots.domain.photos import Photo, UploadedPhoto
from org_headshots.services.retry import RetryPolicy

MAX_PHOTOS_PER_MEMBER = 5
MAX_PHOTO_BYTES = 10 * 1024 * 1024
OWNER_FETCH_LIMIT = 10
BULK_FETCH_LIMIT = 250

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9.-]")

_logger = logging.getLogger(__name__)


class PhotoRepository(Protocol):
    """Persistence interface for photo metadata."""

    async def list_photo_ids(self, owner_member_id: str, limit: int) -> list[str]:
        """Return ids of the owner's photos, bounded by `limit`."""

    async def list_for_owner(self, owner_member_id: str, limit: int) -> list[Photo]:
        """Return the owner's photos, newest first."""

    async def list_for_owners(
        self, owner_member_ids: list[str], limit: int
    ) -> list[Photo]:
        """Return photos for several owners, newest first."""

    async def get_photo(self, photo_id: str) -> Photo | None:
        """Return a photo row by id, if present."""

    async def create_photo(self, owner_member_id: str, image_url: str) -> Photo:
        """Insert a photo row and return it."""

    async def delete_photo(self, photo_id: str) -> None:
        """Delete a photo row."""


class ObjectStore(Protocol):
    """Object storage interface for photo files."""

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Write an object and return its stored path."""

    async def get_public_url(self, key: str) -> str | None:
        """Return the public URL for an object key."""

    async def remove(self, keys: list[str]) -> None:
        """Remove objects by key."""


def _unix_millis() -> int:
    return time.time_ns() // 1_000_000


@dataclass
class PhotoStorageService:
    """Stateless facade over object storage and the photos table.

    Uploads write the object first and the metadata row second; a failed row
    insert triggers one best-effort removal of the object. Deletes remove the
    row first and the object second. No public method raises.
    """

    photo_repository: PhotoRepository
    object_store: ObjectStore
    retry_policy: RetryPolicy = field(
        default_factory=lambda: RetryPolicy(
            base_delay_seconds=1.0, max_delay_seconds=2.0
        )
    )
    timeout_seconds: float = 10.0
    upload_timeout_seconds: float = 30.0
    clock: Callable[[], int] = _unix_millis

    async def upload(  # noqa: PLR0911, PLR0913
        self,
        file_bytes: bytes,
        mime_type: str,
        size_bytes: int,
        owner_member_id: str,
        organization_id: str,
        original_name: str = "photo.jpg",
    ) -> Result[UploadedPhoto]:
        """Store a headshot for a member, enforcing type, size and quota."""
        if not (mime_type or "").startswith("image/"):
            return Result.failure(ErrorKind.INVALID_INPUT, "File must be an image")
        if size_bytes > MAX_PHOTO_BYTES:
            return Result.failure(
                ErrorKind.INVALID_INPUT, "File size must be less than 10MB"
            )
        if not owner_member_id or not organization_id:
            return Result.failure(
                ErrorKind.INVALID_INPUT, "Member and organization are required"
            )

        try:
            existing = await self.retry_policy.run(
                lambda: self.photo_repository.list_photo_ids(
                    owner_member_id, OWNER_FETCH_LIMIT
                ),
                name="Photo count check",
                timeout_seconds=self.timeout_seconds,
            )
        except Exception as exc:
            return _failure(exc, "Failed to check existing photos")
        if len(existing) >= MAX_PHOTOS_PER_MEMBER:
            return Result.failure(
                ErrorKind.QUOTA_EXCEEDED,
                f"Maximum of {MAX_PHOTOS_PER_MEMBER} photos allowed per member",
            )

        key = build_storage_key(
            organization_id, owner_member_id, original_name, self.clock()
        )
        _logger.info("Uploading photo for %s to %s", owner_member_id, key)
        try:
            await self.retry_policy.run(
                lambda: self.object_store.put(key, file_bytes, mime_type),
                name="Storage upload",
                timeout_seconds=self.upload_timeout_seconds,
            )
        except Exception as exc:
            return Result.failure(
                ErrorKind.STORAGE_WRITE_FAILED,
                "Failed to upload photo to storage",
                exc,
            )

        try:
            image_url = await self.object_store.get_public_url(key)
        except Exception as exc:
            _logger.warning("Public URL lookup failed for %s: %s", key, exc)
            image_url = None
        if not image_url:
            _logger.error("No public URL for %s; object left orphaned", key)
            return Result.failure(
                ErrorKind.URL_RESOLUTION_FAILED, "Failed to get photo URL"
            )

        try:
            photo = await self.retry_policy.run(
                lambda: self.photo_repository.create_photo(owner_member_id, image_url),
                name="Photo metadata insert",
                timeout_seconds=self.timeout_seconds,
            )
        except Exception as exc:
            await self._remove_quietly(key, reason="metadata insert failed")
            return Result.failure(
                ErrorKind.METADATA_WRITE_FAILED,
                "Failed to save photo metadata",
                exc,
            )

        _logger.info("Photo %s stored for %s", photo.id, owner_member_id)
        return Result.success(
            UploadedPhoto(
                id=photo.id,
                image_url=photo.image_url,
                owner_member_id=photo.owner_member_id,
            )
        )

    async def list_for_owner(self, owner_member_id: str) -> Result[list[Photo]]:
        """Return a member's photos, newest first."""
        try:
            photos = await self.retry_policy.run(
                lambda: self.photo_repository.list_for_owner(
                    owner_member_id, OWNER_FETCH_LIMIT
                ),
                name="Member photos fetch",
                timeout_seconds=self.timeout_seconds,
            )
        except Exception as exc:
            return _failure(exc, "Failed to fetch photos")
        return Result.success(photos)

    async def list_for_owners(
        self, owner_member_ids: list[str]
    ) -> Result[dict[str, list[Photo]]]:
        """Return photos grouped by owner; every requested owner gets a key."""
        if not owner_member_ids:
            return Result.success({})
        try:
            photos = await self.retry_policy.run(
                lambda: self.photo_repository.list_for_owners(
                    list(owner_member_ids), BULK_FETCH_LIMIT
                ),
                name="Organization photos fetch",
                timeout_seconds=self.timeout_seconds,
            )
        except Exception as exc:
            return _failure(exc, "Failed to fetch organization photos")
        grouped: dict[str, list[Photo]] = {
            owner_id: [] for owner_id in owner_member_ids
        }
        for photo in photos:
            if photo.owner_member_id in grouped:
                grouped[photo.owner_member_id].append(photo)
        return Result.success(grouped)

    async def delete(self, photo_id: str) -> Result[None]:
        """Delete the metadata row, then the stored object if possible."""
        try:
            photo = await self.retry_policy.run(
                lambda: self.photo_repository.get_photo(photo_id),
                name="Photo fetch for deletion",
                timeout_seconds=self.timeout_seconds,
            )
        except Exception as exc:
            return _failure(exc, "Failed to load photo")
        if photo is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Photo not found")

        key = storage_key_from_url(photo.image_url)
        try:
            await self.retry_policy.run(
                lambda: self.photo_repository.delete_photo(photo_id),
                name="Photo metadata delete",
                timeout_seconds=self.timeout_seconds,
            )
        except Exception as exc:
            return _failure(exc, "Failed to delete photo record")

        if key:
            await self._remove_quietly(key, reason="photo deleted")
        _logger.info("Photo %s deleted", photo_id)
        return Result.success(None)

    async def _remove_quietly(self, key: str, *, reason: str) -> None:
        try:
            await self.object_store.remove([key])
        except Exception as exc:
            _logger.warning(
                "Failed to remove stored object %s (%s): %s", key, reason, exc
            )


def sanitize_file_name(original_name: str) -> str:
    """Drop characters outside [A-Za-z0-9.-] from a file name."""
    cleaned = _UNSAFE_NAME_CHARS.sub("", original_name or "")
    return cleaned or "photo"


def build_storage_key(
    organization_id: str, owner_member_id: str, original_name: str, millis: int
) -> str:
    """Return `{organization}/{member}/{millis}_{name}` for a new object."""
    return (
        f"{organization_id}/{owner_member_id}/{millis}_"
        f"{sanitize_file_name(original_name)}"
    )


def storage_key_from_url(image_url: str) -> str | None:
    """Recover the storage key from the last three segments of a public URL."""
    segments = [part for part in urlparse(image_url).path.split("/") if part]
    if len(segments) < 3:  # noqa: PLR2004
        return None
    return unquote("/".join(segments[-3:]))


def _failure(exc: BaseException, message: str) -> Result:
    if isinstance(exc, RetryExhaustedError):
        kind = ErrorKind.RETRY_EXHAUSTED
    elif is_timeout(exc):
        kind = ErrorKind.TIMEOUT
    else:
        kind = ErrorKind.NETWORK_ERROR
    return Result.failure(kind, message, exc)
