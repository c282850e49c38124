from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from src.application.services.section_ledger import SectionLedger
from src.domain.constants import HISTORY_LIMIT
from src.domain.entities.image import ImageEntity
from src.domain.entities.section_history import SectionHistoryEntity
from src.infrastructure.database.repositories.history_repository import HistoryRepository
from src.infrastructure.database.repositories.image_repository import ImageRepository
from src.infrastructure.database.repositories.section_repository import SectionRepository

logger = logging.getLogger(__name__)

# Imports made before batch ids existed were named `import-{epoch millis}-seg-{order}.png`
_LEGACY_TOKEN = re.compile(r"(?<!\d)(\d{13})(?!\d)")


@dataclass(frozen=True)
class HistoryRecord:
    entry: SectionHistoryEntity
    previous_image: ImageEntity | None
    new_image: ImageEntity | None


@dataclass
class SectionHistory:
    section_id: str
    section_order: int
    current_image_id: str | None
    entries: list[HistoryRecord] = field(default_factory=list)
    original_images: list[ImageEntity] = field(default_factory=list)


@dataclass
class GetSectionHistoryUseCase:
    """
    Recent substitutions of a section, plus the image(s) it was originally imported with.

    Entries are matched by section id or by the section's current image (either
    endpoint), so substitutions logged before the section was saved still show up.
    """

    ledger: SectionLedger
    section_repo: SectionRepository
    history_repo: HistoryRepository
    image_repo: ImageRepository

    def execute(self, section_id: str, limit: int = HISTORY_LIMIT) -> SectionHistory:
        section = self.ledger.get_section(section_id)
        raw = self.history_repo.list_for_section(section.id, section.image_id, limit=limit)

        seen: set[str] = set()
        entries: list[SectionHistoryEntity] = []
        for entry in raw:
            if entry.id not in seen:
                seen.add(entry.id)
                entries.append(entry)
        entries.sort(key=lambda e: e.created_at, reverse=True)
        entries = entries[:limit]

        images = self.image_repo.get_many(
            [e.previous_image_id for e in entries if e.previous_image_id]
            + [e.new_image_id for e in entries]
        )
        records = [
            HistoryRecord(
                entry=e,
                previous_image=images.get(e.previous_image_id) if e.previous_image_id else None,
                new_image=images.get(e.new_image_id),
            )
            for e in entries
        ]
        originals = self.find_original_images(section.page_id, section.order)
        logger.info(
            "History for section %s: %d entries, %d original image(s)",
            section.id, len(records), len(originals),
        )
        return SectionHistory(
            section_id=section.id,
            section_order=section.order,
            current_image_id=section.image_id,
            entries=records,
            original_images=originals,
        )

    def find_original_images(self, page_id: str, order: int) -> list[ImageEntity]:
        """Images the bulk import produced for the segment at `order` on this page."""
        siblings = self.section_repo.list_by_page(page_id)
        current = self.image_repo.get_many([s.image_id for s in siblings if s.image_id])

        found: dict[str, ImageEntity] = {}
        batch_ids = {img.import_batch_id for img in current.values() if img.import_batch_id}
        for batch_id in sorted(batch_ids):
            for img in self.image_repo.list_by_batch_segment(batch_id, order):
                found.setdefault(img.id, img)
        if found:
            return list(found.values())

        # best effort for imports without batch ids
        tokens: set[str] = set()
        for img in current.values():
            tokens.update(_LEGACY_TOKEN.findall(img.path))
        for token in sorted(tokens):
            needle = f"{token}-seg-{order}"
            pattern = re.compile(re.escape(needle) + r"(?!\d)")
            for img in self.image_repo.search_by_path(needle):
                if pattern.search(img.path):
                    found.setdefault(img.id, img)
        if found:
            logger.debug("Recovered %d original image(s) from legacy file names", len(found))
        return list(found.values())
