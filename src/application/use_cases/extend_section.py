from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from src.application.services.section_images import load_current_image
from src.application.services.section_ledger import SectionLedger
from src.domain.constants import (
    CREATIVITY_TEMPERATURE,
    EXTEND_CONTEXT_STRIP,
    MAX_EXTEND_AMOUNT,
    MIN_TOTAL_EXTEND_AMOUNT,
    ActionType,
    SourceType,
)
from src.domain.entities.image import ImageEntity
from src.domain.exceptions import InvalidRequestError, ModelUnavailableError, RasterError
from src.domain.services import synthesis_prompts
from src.domain.services.geometry import context_strip_height
from src.domain.services.raster_service import RasterService
from src.infrastructure.ai.gemini_client import ContextImage, GeminiOutpaintingClient
from src.infrastructure.database.postgres_client import transaction_scope
from src.infrastructure.database.repositories.image_repository import ImageRepository
from src.infrastructure.storage.supabase_storage import SupabaseStorage

logger = logging.getLogger(__name__)

DIRECTIONS = ("top", "bottom", "both")


@dataclass(frozen=True)
class ExtensionResult:
    image: ImageEntity
    new_width: int
    new_height: int
    added_top: int
    added_bottom: int


def effective_amounts(direction: str, top_amount: int, bottom_amount: int) -> tuple[int, int]:
    """Validate and zero out the edge the direction does not ask for."""
    if direction not in DIRECTIONS:
        raise InvalidRequestError(f"direction must be one of {', '.join(DIRECTIONS)}")
    for name, amount in (("top_amount", top_amount), ("bottom_amount", bottom_amount)):
        if amount < 0 or amount > MAX_EXTEND_AMOUNT:
            raise InvalidRequestError(f"{name} must be between 0 and {MAX_EXTEND_AMOUNT}")
    top = top_amount if direction in ("top", "both") else 0
    bottom = bottom_amount if direction in ("bottom", "both") else 0
    if top + bottom < MIN_TOTAL_EXTEND_AMOUNT:
        raise InvalidRequestError(
            f"Extension too small: at least {MIN_TOTAL_EXTEND_AMOUNT}px in total is required"
        )
    return top, bottom


@dataclass
class ExtendSectionUseCase:
    """
    Grow a section image upward and/or downward with model-synthesized content.

    For each requested edge a context strip (min(150px, 20% of the height)) is
    cut from that edge and sent with an instruction to restore the missing
    content beyond it. The returned image is forced to (width, amount) with a
    cover fit that keeps the seam side intact.

    Both edges are always attempted, but if any requested edge fails the whole
    request fails and nothing is stored.
    """

    storage: SupabaseStorage
    image_repo: ImageRepository
    ledger: SectionLedger
    raster: RasterService
    outpainter: GeminiOutpaintingClient

    def execute(
        self,
        user_id: str,
        section_id: str,
        direction: str,
        top_amount: int,
        bottom_amount: int,
        prompt: str,
        reference_image: bytes | None = None,
        creativity: str = "medium",
        reference_mime: str = "image/png",
    ) -> ExtensionResult:
        top, bottom = effective_amounts(direction, top_amount, bottom_amount)
        if not prompt or not prompt.strip():
            raise InvalidRequestError("prompt must not be empty")
        if creativity not in CREATIVITY_TEMPERATURE:
            raise InvalidRequestError(f"Unknown creativity level: {creativity}")
        temperature = CREATIVITY_TEMPERATURE[creativity]
        reference = (
            ContextImage(reference_image, reference_mime, synthesis_prompts.reference_caption())
            if reference_image
            else None
        )

        section, current = load_current_image(self.ledger, self.image_repo, section_id)
        original = self.storage.download_to_numpy(current.path)
        width, height = self.raster.size(original)
        logger.info(
            "Extending section %s (%dx%d): +%dpx top, +%dpx bottom",
            section.id, width, height, top, bottom,
        )

        top_strip = (
            self._synthesize_edge(original, "top", top, prompt, reference, temperature)
            if top
            else None
        )
        bottom_strip = (
            self._synthesize_edge(original, "bottom", bottom, prompt, reference, temperature)
            if bottom
            else None
        )
        failed = [
            edge
            for edge, amount, strip in (("top", top, top_strip), ("bottom", bottom, bottom_strip))
            if amount and strip is None
        ]
        if failed:
            logger.error("Extension of section %s failed for edge(s): %s", section.id, ", ".join(failed))
            raise ModelUnavailableError()

        extended = self.compose(original, top_strip, bottom_strip)
        new_width, new_height = self.raster.size(extended)
        stored = self.storage.upload_numpy(user_id, extended, "png", name_hint=f"section-restored-{section.id}")

        with transaction_scope():
            image = self.image_repo.create(
                user_id=user_id,
                path=stored.path,
                width=stored.width,
                height=stored.height,
                mime_type=stored.content_type,
                source_type=SourceType.RESTORED,
                file_size=stored.size,
            )
            self.ledger.substitute(
                section.id, image.id, ActionType.RESTORE, user_id=user_id, prompt=prompt
            )

        logger.info("Section %s extended: %dpx -> %dpx", section.id, height, new_height)
        return ExtensionResult(
            image=image,
            new_width=new_width,
            new_height=new_height,
            added_top=top,
            added_bottom=bottom,
        )

    def compose(
        self,
        original: np.ndarray,
        top_strip: np.ndarray | None,
        bottom_strip: np.ndarray | None,
    ) -> np.ndarray:
        """Stack [top strip, original, bottom strip]; the original is painted last."""
        width, height = self.raster.size(original)
        top = top_strip.shape[0] if top_strip is not None else 0
        bottom = bottom_strip.shape[0] if bottom_strip is not None else 0
        layers = []
        if top_strip is not None:
            layers.append((top_strip, 0, 0))
        if bottom_strip is not None:
            layers.append((bottom_strip, 0, top + height))
        layers.append((original, 0, top))
        return self.raster.composite_layers(width, top + height + bottom, layers)

    def _synthesize_edge(
        self,
        original: np.ndarray,
        edge: str,
        amount: int,
        prompt: str,
        reference: ContextImage | None,
        temperature: float,
    ) -> np.ndarray | None:
        width, height = self.raster.size(original)
        strip_rows = context_strip_height(height, *EXTEND_CONTEXT_STRIP)
        if edge == "top":
            strip = self.raster.top_rows(original, strip_rows)
        else:
            strip = self.raster.bottom_rows(original, strip_rows)
        strip_bytes, strip_mime = self.raster.encode(strip)
        context = [ContextImage(strip_bytes, strip_mime, f"The {edge} edge of the section ({width}x{strip_rows}px).")]
        if reference is not None:
            context.append(reference)

        instruction = synthesis_prompts.edge_extension_instruction(edge, width, amount, prompt)
        logger.info("Synthesizing %s edge: %dx%dpx from %dpx context", edge, width, amount, strip_rows)
        data = self.outpainter.synthesize(context, instruction, temperature=temperature)
        if data is None:
            return None
        try:
            generated = self.raster.decode(data)
            # keep the rows touching the seam, crop the far side
            anchor = "bottom" if edge == "top" else "top"
            return self.raster.resize_fit(generated, width, amount, fit="cover", anchor=anchor)
        except RasterError as exc:
            logger.error("Unusable %s edge from model: %s", edge, exc)
            return None
