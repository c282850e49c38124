from __future__ import annotations

from src.application.services.section_ledger import SectionLedger
from src.domain.entities.image import ImageEntity
from src.domain.entities.section import SectionEntity
from src.domain.exceptions import NotFoundError
from src.infrastructure.database.repositories.image_repository import ImageRepository


def load_current_image(
    ledger: SectionLedger, image_repo: ImageRepository, section_id: str
) -> tuple[SectionEntity, ImageEntity]:
    """The section and the image it currently displays."""
    section = ledger.get_section(section_id)
    if section.image_id is None:
        raise NotFoundError(f"Section {section.id} has no image")
    image = image_repo.get(section.image_id)
    if image is None:
        raise NotFoundError(f"Image {section.image_id} of section {section.id} not found")
    return section, image
