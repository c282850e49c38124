from __future__ import annotations

import logging
from dataclasses import dataclass

from src.domain.entities.section import SectionEntity
from src.domain.entities.section_history import SectionHistoryEntity
from src.domain.exceptions import ConcurrentEditError, InvalidRequestError, NotFoundError
from src.infrastructure.database.postgres_client import transaction_scope
from src.infrastructure.database.repositories.history_repository import HistoryRepository
from src.infrastructure.database.repositories.section_repository import SectionRepository

logger = logging.getLogger(__name__)


def is_persisted_section_id(section_id: str) -> bool:
    """Saved sections have numeric ids; editor-only sections use ids like `temp-3`."""
    return str(section_id).isdigit()


def require_persisted_section_id(section_id: str) -> str:
    if not is_persisted_section_id(section_id):
        raise InvalidRequestError(f"Invalid section ID: {section_id}")
    return str(section_id)


@dataclass
class SectionLedger:
    """The only code path allowed to move a section's image pointer.

    Every move is capture -> log -> repoint:
    1. read the pointer the section holds right now
    2. append a history entry with that value as `previous_image_id`
    3. repoint with a compare-and-set on the captured value

    All three steps share one transaction in PostgreSQL mode, so a failed
    repoint also drops the entry. Elsewhere the entry is discarded explicitly
    before `ConcurrentEditError` is raised.
    """

    section_repo: SectionRepository
    history_repo: HistoryRepository

    def get_section(self, section_id: str) -> SectionEntity:
        section = self.section_repo.get(require_persisted_section_id(section_id))
        if section is None:
            raise NotFoundError(f"Section {section_id} not found")
        return section

    def substitute(
        self,
        section_id: str,
        new_image_id: str,
        action_type: str,
        *,
        user_id: str | None,
        prompt: str | None = None,
    ) -> SectionHistoryEntity:
        with transaction_scope():
            section = self.get_section(section_id)
            previous_image_id = section.image_id
            entry = self.history_repo.create(
                section_id=section.id,
                user_id=user_id,
                previous_image_id=previous_image_id,
                new_image_id=new_image_id,
                action_type=action_type,
                prompt=prompt,
            )
            if not self.section_repo.compare_and_set_image(
                section.id, previous_image_id, new_image_id
            ):
                logger.error(
                    "Section %s moved away from %s during %s", section.id, previous_image_id, action_type
                )
                self.history_repo.discard(entry.id)
                raise ConcurrentEditError(
                    f"Section {section.id} was modified concurrently; reload and retry"
                )
        logger.info(
            "Section %s: %s -> %s (%s)", section.id, previous_image_id, new_image_id, action_type
        )
        return entry

    def record(
        self,
        section_id: str,
        previous_image_id: str | None,
        new_image_id: str,
        action_type: str,
        *,
        user_id: str | None,
        prompt: str | None = None,
    ) -> SectionHistoryEntity:
        """Log a substitution that was already applied elsewhere. The pointer is not touched."""
        section = self.get_section(section_id)
        entry = self.history_repo.create(
            section_id=section.id,
            user_id=user_id,
            previous_image_id=previous_image_id,
            new_image_id=new_image_id,
            action_type=action_type,
            prompt=prompt,
        )
        logger.info(
            "Section %s: recorded external %s -> %s (%s)",
            section.id, previous_image_id, new_image_id, action_type,
        )
        return entry
