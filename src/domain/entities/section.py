from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SectionEntity:
    id: str
    page_id: str
    order: int
    role: str | None = None
    image_id: str | None = None  # current image; the only mutable pointer
