from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class ImageEntity:
    id: str
    user_id: str | None
    path: str  # storage path {prefix}/{name}.{ext}
    width: int
    height: int
    mime_type: str
    source_type: str
    created_at: datetime
    file_size: int | None = None  # bytes
    # Bulk import provenance: all segments of one import share a batch id
    import_batch_id: str | None = None
    segment_index: int | None = None
