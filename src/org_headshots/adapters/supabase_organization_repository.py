"""Supabase-backed organization repository."""

from dataclasses import dataclass

from supabase import AsyncClient

from org_headshots.domain.models import Organization
from org_headshots.services.provisioning import OrganizationRepository


@dataclass
class SupabaseOrganizationRepository(OrganizationRepository):
    """Supabase implementation for organization lookups."""

    client: AsyncClient

    async def get_by_join_code(self, join_code: str) -> Organization | None:
        """Return the organization for a join code, if present."""
        response = (
            await self.client.table("organizations")
            .select("id, name, join_code")
            .eq("join_code", join_code)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        return Organization(
            id=str(row["id"]), name=row.get("name") or "", join_code=row["join_code"]
        )
