from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class SectionHistoryEntity:
    id: str
    section_id: str
    user_id: str | None
    previous_image_id: str | None  # pointer value right before the substitution
    new_image_id: str
    action_type: str
    created_at: datetime
    prompt: str | None = None
