"""Supabase-backed member repository."""

from dataclasses import dataclass
from datetime import datetime

from supabase import AsyncClient

from org_headshots.domain.models import (
    MemberProfile,
    NewMemberProfile,
    OrganizationSummary,
    OrgMember,
)
from org_headshots.services.sessions import MemberRepository

_PROFILE_COLUMNS = (
    "id, name, email, organization_id, role, organizations (id, name, join_code)"
)


@dataclass
class SupabaseMemberRepository(MemberRepository):
    """Supabase implementation for member profiles."""

    client: AsyncClient

    async def get_profile(self, member_id: str) -> MemberProfile | None:
        """Return the member profile joined with its organization."""
        response = (
            await self.client.table("members")
            .select(_PROFILE_COLUMNS)
            .eq("id", member_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _profile_from_row(response.data[0])

    async def create_profile(self, profile: NewMemberProfile) -> MemberProfile:
        """Insert a member row and return it."""
        response = (
            await self.client.table("members")
            .insert(
                {
                    "id": profile.id,
                    "name": profile.name,
                    "email": profile.email,
                    "organization_id": profile.organization_id,
                    "role": profile.role,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create member profile")
        return _profile_from_row(response.data[0])

    async def list_members(self, organization_id: str, limit: int) -> list[OrgMember]:
        """Return members of an organization ordered by name."""
        response = (
            await self.client.table("members")
            .select("id, name, email, role, created_at")
            .eq("organization_id", organization_id)
            .order("name")
            .limit(limit)
            .execute()
        )
        return [
            OrgMember(
                id=str(row["id"]),
                name=row.get("name") or "",
                email=row.get("email") or "",
                role=row.get("role"),
                created_at=_parse_timestamp(row.get("created_at")),
            )
            for row in response.data or []
        ]


def _profile_from_row(row: dict[str, object]) -> MemberProfile:
    organization = row.get("organizations")
    summary = None
    if isinstance(organization, dict):
        summary = OrganizationSummary(
            name=str(organization.get("name") or ""),
            join_code=str(organization.get("join_code") or ""),
        )
    return MemberProfile(
        id=str(row["id"]),
        name=str(row.get("name") or ""),
        email=str(row.get("email") or ""),
        organization_id=str(row["organization_id"]),
        role=row.get("role"),
        organization=summary,
    )


def _parse_timestamp(value: object) -> datetime | None:
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return None
