"""Supabase-backed photo repository."""

from dataclasses import dataclass
from datetime import datetime

from supabase import AsyncClient

from org_headshots.domain.photos import Photo
from org_headshots.services.photos import PhotoRepository

_PHOTO_COLUMNS = "id, owner_member_id, image_url, created_at"


@dataclass
class SupabasePhotoRepository(PhotoRepository):
    """Supabase implementation for photo metadata persistence."""

    client: AsyncClient

    async def list_photo_ids(self, owner_member_id: str, limit: int) -> list[str]:
        """Return ids of a member's photos."""
        response = (
            await self.client.table("photos")
            .select("id")
            .eq("owner_member_id", owner_member_id)
            .limit(limit)
            .execute()
        )
        return [str(row["id"]) for row in response.data or []]

    async def list_for_owner(self, owner_member_id: str, limit: int) -> list[Photo]:
        """Return a member's photos, newest first."""
        response = (
            await self.client.table("photos")
            .select(_PHOTO_COLUMNS)
            .eq("owner_member_id", owner_member_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [_photo_from_row(row) for row in response.data or []]

    async def list_for_owners(
        self, owner_member_ids: list[str], limit: int
    ) -> list[Photo]:
        """Return photos for several members, newest first."""
        response = (
            await self.client.table("photos")
            .select(_PHOTO_COLUMNS)
            .in_("owner_member_id", owner_member_ids)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [_photo_from_row(row) for row in response.data or []]

    async def get_photo(self, photo_id: str) -> Photo | None:
        """Return a photo row by id, if present."""
        response = (
            await self.client.table("photos")
            .select(_PHOTO_COLUMNS)
            .eq("id", photo_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _photo_from_row(response.data[0])

    async def create_photo(self, owner_member_id: str, image_url: str) -> Photo:
        """Create a photo metadata row and return it."""
        response = (
            await self.client.table("photos")
            .insert({"owner_member_id": owner_member_id, "image_url": image_url})
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create photo metadata")
        return _photo_from_row(response.data[0])

    async def delete_photo(self, photo_id: str) -> None:
        """Delete a photo metadata row."""
        await self.client.table("photos").delete().eq("id", photo_id).execute()


def _photo_from_row(row: dict[str, object]) -> Photo:
    created_at = row.get("created_at")
    return Photo(
        id=str(row["id"]),
        owner_member_id=str(row["owner_member_id"]),
        image_url=str(row["image_url"]),
        created_at=(
            datetime.fromisoformat(created_at)
            if isinstance(created_at, str) and created_at
            else None
        ),
    )
