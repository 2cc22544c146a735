"""Domain models for member headshot photos."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Photo:
    """Photo metadata row."""

    id: str
    owner_member_id: str
    image_url: str
    created_at: datetime | None


@dataclass(frozen=True)
class UploadedPhoto:
    """Result of a completed upload."""

    id: str
    image_url: str
    owner_member_id: str
