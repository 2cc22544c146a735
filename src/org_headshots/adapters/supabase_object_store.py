"""Supabase Storage implementation of the photo object store."""

from dataclasses import dataclass

from supabase import AsyncClient

from org_headshots.services.photos import ObjectStore


@dataclass
class SupabaseObjectStore(ObjectStore):
    """Stores photo files in a Supabase Storage bucket."""

    client: AsyncClient
    bucket: str = "photos"
    cache_control: str = "3600"

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Upload bytes without overwriting and return the stored path."""
        response = await self.client.storage.from_(self.bucket).upload(
            key,
            data,
            {
                "content-type": content_type,
                "cache-control": self.cache_control,
                "upsert": "false",
            },
        )
        return getattr(response, "path", None) or key

    async def get_public_url(self, key: str) -> str | None:
        url = await self.client.storage.from_(self.bucket).get_public_url(key)
        return url or None

    async def remove(self, keys: list[str]) -> None:
        await self.client.storage.from_(self.bucket).remove(keys)
