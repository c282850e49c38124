from __future__ import annotations

import logging
from dataclasses import dataclass

from src.application.services.section_ledger import SectionLedger
from src.domain.constants import ActionType
from src.domain.entities.image import ImageEntity
from src.domain.exceptions import NotFoundError
from src.infrastructure.database.repositories.image_repository import ImageRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RevertResult:
    section_id: str
    previous_image_id: str | None
    new_image: ImageEntity


@dataclass
class RevertSectionUseCase:
    """
    Point a section back at an earlier image.

    Nothing is deleted or copied: the existing image row is reused and the move
    is logged as a new forward entry, so the revert itself can be undone.
    """

    image_repo: ImageRepository
    ledger: SectionLedger

    def execute(self, user_id: str, section_id: str, target_image_id: str) -> RevertResult:
        """
        Args:
            user_id: The user performing the revert
            section_id: Persisted (numeric) section id
            target_image_id: Any existing image; it is not checked against the section's history

        Raises:
            NotFoundError: If the section or the target image doesn't exist
        """
        section = self.ledger.get_section(section_id)
        target = self.image_repo.get(target_image_id)
        if target is None:
            raise NotFoundError(f"Image {target_image_id} not found")

        entry = self.ledger.substitute(section.id, target.id, ActionType.REVERT, user_id=user_id)
        logger.info("Section %s reverted to image %s", section.id, target.id)
        return RevertResult(
            section_id=section.id,
            previous_image_id=entry.previous_image_id,
            new_image=target,
        )
