from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from src.application.services.section_images import load_current_image
from src.application.services.section_ledger import SectionLedger
from src.domain.constants import (
    MAX_CUSTOM_PROMPT_LENGTH,
    REGENERATE_REFERENCE_TEMPERATURE,
    REGENERATE_TEMPERATURE,
)
from src.domain.entities.image import ImageEntity
from src.domain.entities.section import SectionEntity
from src.domain.exceptions import InvalidRequestError, ModelUnavailableError, RasterError
from src.domain.services import synthesis_prompts
from src.domain.services.raster_service import RasterService
from src.infrastructure.ai.gemini_client import ContextImage, GeminiOutpaintingClient
from src.infrastructure.database.postgres_client import transaction_scope
from src.infrastructure.database.repositories.image_repository import ImageRepository
from src.infrastructure.database.repositories.section_repository import SectionRepository
from src.infrastructure.storage.supabase_storage import SupabaseStorage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegenerationResult:
    section_id: str
    previous_image_id: str | None
    image: ImageEntity


@dataclass
class RegenerateSectionUseCase:
    """
    Restyle a section image in place while keeping it continuous with its neighbors.

    - `light` keeps every element where it is and only changes the style
    - `heavy` may rearrange the layout but keeps the section's role

    The instruction names the section's position on the page and asks for
    continuity with the sections above and below. A style reference is the
    user-supplied URL, or else the first section of the page (not for
    `sampling` and not for the first section itself); one that cannot be
    loaded is skipped.

    The result is fitted to the size of the current image so the stack keeps
    its widths, stored as `regenerate-{mode}` and substituted through the ledger.
    """

    storage: SupabaseStorage
    image_repo: ImageRepository
    section_repo: SectionRepository
    ledger: SectionLedger
    raster: RasterService
    outpainter: GeminiOutpaintingClient

    def execute(
        self,
        user_id: str,
        section_id: str,
        mode: str = "light",
        style: str = "professional",
        color_scheme: str | None = None,
        custom_prompt: str | None = None,
        context_style: str | None = None,
        design_definition: dict[str, Any] | None = None,
        style_reference_url: str | None = None,
    ) -> RegenerationResult:
        if mode not in REGENERATE_TEMPERATURE:
            raise InvalidRequestError(f"mode must be one of {', '.join(REGENERATE_TEMPERATURE)}")
        styles = (*synthesis_prompts.REGENERATE_STYLES, synthesis_prompts.DESIGN_DEFINITION_STYLE)
        if style not in styles:
            raise InvalidRequestError(f"style must be one of {', '.join(styles)}")
        if color_scheme is not None and color_scheme not in synthesis_prompts.COLOR_SCHEMES:
            raise InvalidRequestError(f"Unknown color scheme: {color_scheme}")
        if custom_prompt and len(custom_prompt) > MAX_CUSTOM_PROMPT_LENGTH:
            raise InvalidRequestError(f"custom_prompt must be at most {MAX_CUSTOM_PROMPT_LENGTH} characters")

        section, current = load_current_image(self.ledger, self.image_repo, section_id)
        siblings = self.section_repo.list_by_page(section.page_id)
        index = next((i for i, s in enumerate(siblings) if s.id == section.id), 0)
        total = max(len(siblings), 1)
        above = siblings[index - 1] if index > 0 else None
        below = siblings[index + 1] if index + 1 < len(siblings) else None
        logger.info(
            "Regenerating section %s (%d/%d) mode=%s style=%s", section.id, index + 1, total, mode, style
        )

        reference = self._style_reference(style, index, siblings, style_reference_url)
        style_description, design_tokens = synthesis_prompts.regenerate_style(
            style, color_scheme, design_definition
        )
        position, role = synthesis_prompts.segment_role(index, total)
        instruction = synthesis_prompts.regenerate_instruction(
            mode,
            position=position,
            role=role,
            total=total,
            style_description=style_description,
            design_tokens=design_tokens,
            has_prev=above is not None and above.image_id is not None,
            has_next=below is not None and below.image_id is not None,
            reference=("user" if style_reference_url else "first") if reference else None,
            custom_prompt=custom_prompt,
            context_style=context_style,
        )

        original = self.storage.download_bytes(current.path)
        width, height = self.raster.read_size(original)
        context = [reference] if reference else []
        context.append(
            ContextImage(original, current.mime_type, synthesis_prompts.regenerate_target_caption())
        )
        temperature = REGENERATE_REFERENCE_TEMPERATURE if reference else REGENERATE_TEMPERATURE[mode]
        data = self.outpainter.synthesize(context, instruction, temperature=temperature)
        if data is None:
            raise ModelUnavailableError()
        try:
            regenerated = self.raster.resize_fit(
                self.raster.decode(data), width, height, fit="cover", anchor="center"
            )
        except RasterError as exc:
            logger.error("Model returned an unusable regeneration: %s", exc)
            raise ModelUnavailableError() from exc

        action = f"regenerate-{mode}"
        stored = self.storage.upload_numpy(
            user_id, regenerated, "png", name_hint=f"regenerate-{mode}-sec-{section.id}"
        )
        with transaction_scope():
            image = self.image_repo.create(
                user_id=user_id,
                path=stored.path,
                width=stored.width,
                height=stored.height,
                mime_type=stored.content_type,
                source_type=action,
                file_size=stored.size,
            )
            entry = self.ledger.substitute(
                section.id, image.id, action, user_id=user_id, prompt=custom_prompt
            )

        logger.info("Section %s regenerated: %s -> %s", section.id, entry.previous_image_id, image.id)
        return RegenerationResult(
            section_id=section.id, previous_image_id=entry.previous_image_id, image=image
        )

    def _style_reference(
        self,
        style: str,
        index: int,
        siblings: list[SectionEntity],
        style_reference_url: str | None,
    ) -> ContextImage | None:
        user_selected = bool(style_reference_url)
        if user_selected:
            source = style_reference_url
        elif style != "sampling" and index > 0 and siblings[0].image_id:
            first = self.image_repo.get(siblings[0].image_id)
            if first is None:
                return None
            source = first.path
        else:
            return None

        try:
            data = self.storage.fetch(source) if user_selected else self.storage.download_bytes(source)
            mime = self.raster.content_type(data)
        except (RuntimeError, RasterError) as exc:
            logger.error("Skipping style reference %s: %s", source, exc)
            return None
        logger.info("Style reference loaded from %s (%d bytes)", source, len(data))
        caption = synthesis_prompts.style_reference_caption(user_selected)
        return ContextImage(data, mime, caption)
