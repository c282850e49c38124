from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass

from src.application.services.section_ledger import SectionLedger, is_persisted_section_id
from src.domain.constants import ActionType, SourceType
from src.domain.entities.image import ImageEntity
from src.domain.exceptions import InvalidRequestError
from src.infrastructure.database.postgres_client import transaction_scope
from src.infrastructure.database.repositories.image_repository import ImageRepository
from src.infrastructure.storage.supabase_storage import SupabaseStorage

logger = logging.getLogger(__name__)

CROP_ACTIONS = ("crop", "split")
CROP_MESSAGES = {
    "crop": "Section image cropped",
    "split": "Section image split",
}

_DATA_URL = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(;[^,]*)?;base64,(?P<data>.*)$", re.DOTALL)


def decode_data_url(value: str, field: str = "cropped_image") -> tuple[bytes, str]:
    """Accept a `data:image/...;base64,` URL or bare base64; returns (bytes, content type)."""
    content_type = "image/png"
    payload = value.strip()
    match = _DATA_URL.match(payload)
    if match:
        content_type = match.group("mime") or content_type
        payload = match.group("data")
    try:
        data = base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise InvalidRequestError(f"{field} is not valid base64: {exc}") from exc
    if not data:
        raise InvalidRequestError(f"{field} is empty")
    return data, content_type


@dataclass(frozen=True)
class CropMetadata:
    start_y: int
    end_y: int
    action: str

    def validate(self) -> None:
        if self.action not in CROP_ACTIONS:
            raise InvalidRequestError(f"action must be one of {', '.join(CROP_ACTIONS)}")
        if self.start_y < 0 or self.end_y <= self.start_y:
            raise InvalidRequestError("crop range must satisfy 0 <= start_y < end_y")


@dataclass(frozen=True)
class CropResult:
    path: str
    url: str
    message: str
    image: ImageEntity | None = None  # None for sections that are not saved yet


@dataclass
class CropSectionUseCase:
    """
    Store an image the editor already cropped and make it the section's image.

    The bytes are kept as sent. Sections that only exist in the editor (`temp-*`
    ids) get the upload and nothing else; the editor attaches it on save.
    """

    storage: SupabaseStorage
    image_repo: ImageRepository
    ledger: SectionLedger

    def execute(
        self,
        user_id: str,
        section_id: str,
        cropped_image: str,
        metadata: CropMetadata,
        page_id: str | None = None,
    ) -> CropResult:
        metadata.validate()
        data, content_type = decode_data_url(cropped_image)
        message = CROP_MESSAGES[metadata.action]
        logger.info(
            "%s section %s (page %s): rows %d..%d, %d bytes",
            metadata.action.capitalize(), section_id, page_id, metadata.start_y, metadata.end_y, len(data),
        )

        if not is_persisted_section_id(section_id):
            stored = self.storage.upload_bytes(user_id, data, content_type, name_hint="section-cropped")
            logger.info("Unsaved section %s: uploaded %s only", section_id, stored.path)
            return CropResult(path=stored.path, url=self.storage.public_url(stored.path), message=message)

        section = self.ledger.get_section(section_id)
        stored = self.storage.upload_bytes(user_id, data, content_type, name_hint="section-cropped")
        with transaction_scope():
            image = self.image_repo.create(
                user_id=user_id,
                path=stored.path,
                width=stored.width,
                height=stored.height,
                mime_type=stored.content_type,
                source_type=SourceType.CROPPED,
                file_size=stored.size,
            )
            self.ledger.substitute(section.id, image.id, ActionType.CROP, user_id=user_id)

        return CropResult(
            path=image.path,
            url=self.storage.public_url(image.path),
            message=message,
            image=image,
        )
