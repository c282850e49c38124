from __future__ import annotations

from dataclasses import dataclass

from src.application.services.section_ledger import SectionLedger
from src.domain.constants import ActionType
from src.domain.entities.section_history import SectionHistoryEntity
from src.domain.exceptions import NotFoundError
from src.infrastructure.database.repositories.image_repository import ImageRepository


@dataclass
class LogHistoryUseCase:
    """Record a substitution the editor already applied. The section pointer is left alone."""

    image_repo: ImageRepository
    ledger: SectionLedger

    def execute(
        self,
        user_id: str,
        section_id: str,
        previous_image_id: str | None,
        new_image_id: str,
        action_type: str = ActionType.MANUAL,
        prompt: str | None = None,
    ) -> SectionHistoryEntity:
        if self.image_repo.get(new_image_id) is None:
            raise NotFoundError(f"Image {new_image_id} not found")
        return self.ledger.record(
            section_id,
            previous_image_id,
            new_image_id,
            action_type,
            user_id=user_id,
            prompt=prompt,
        )
