"""Outpainting client backed by Gemini image generation (google-genai).

The client never raises for model-side problems: any failure, refusal or
response without image data comes back as None so callers can decide how a
missing edge affects the whole edit.
"""
from __future__ import annotations

import base64
import logging
import os
import time
from dataclasses import dataclass

from google import genai
from google.genai import types as genai_types

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-3-pro-image-preview"


@dataclass(frozen=True)
class ContextImage:
    """An image handed to the model, optionally followed by a caption."""

    data: bytes
    mime_type: str = "image/png"
    caption: str | None = None


class GeminiOutpaintingClient:
    def __init__(self, api_key: str | None = None, model: str | None = None) -> None:
        self.api_key = api_key or os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        self.model = model or os.getenv("GEMINI_IMAGE_MODEL", DEFAULT_MODEL)
        self.timeout_ms = int(os.getenv("GEMINI_TIMEOUT_MS", "120000"))
        self._client: genai.Client | None = None
        if not self.api_key:
            logger.warning("GEMINI_API_KEY not set; outpainting is unavailable")
            return
        self._client = genai.Client(
            api_key=self.api_key,
            http_options=genai_types.HttpOptions(timeout=self.timeout_ms),
        )
        logger.info("Gemini outpainting client ready (model=%s)", self.model)

    def synthesize(
        self,
        context_images: list[ContextImage],
        instruction: str,
        *,
        temperature: float | None = None,
    ) -> bytes | None:
        """Generate one image from context images plus an instruction.

        Returns:
            Encoded image bytes, or None if the model failed or returned no image.
        """
        if self._client is None:
            logger.warning("Outpainting skipped: client not configured")
            return None

        parts: list[genai_types.Part] = []
        for image in context_images:
            parts.append(genai_types.Part.from_bytes(data=image.data, mime_type=image.mime_type))
            if image.caption:
                parts.append(genai_types.Part.from_text(text=image.caption))
        parts.append(genai_types.Part.from_text(text=instruction))

        config = genai_types.GenerateContentConfig(
            response_modalities=["IMAGE", "TEXT"],
            temperature=temperature,
        )
        started = time.monotonic()
        try:
            response = self._client.models.generate_content(
                model=self.model, contents=parts, config=config
            )
        except Exception as exc:  # network, quota, safety, bad request
            logger.error("Gemini generate_content failed after %.1fs: %s",
                         time.monotonic() - started, exc)
            return None

        data = extract_image_bytes(response)
        if data is None:
            logger.error("Gemini response contained no image data")
            return None
        logger.info("Gemini returned %d bytes in %.1fs", len(data), time.monotonic() - started)
        return data


def extract_image_bytes(response: object) -> bytes | None:
    """First inline image of the first candidate that has one."""
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline is not None and inline.data:
                data = inline.data
                if isinstance(data, str):
                    data = base64.b64decode(data)
                return data
    return None
