from __future__ import annotations

import os

# Editor preview width used when the client does not report its own.
DEFAULT_DISPLAY_WIDTH = int(os.getenv("SECTION_DISPLAY_WIDTH", "600"))

# A section is never cut below this many source pixels.
MIN_SECTION_HEIGHT = 100

# Extension (outpainting) limits, in source pixels.
MAX_EXTEND_AMOUNT = 500
MIN_TOTAL_EXTEND_AMOUNT = 10

# Seams handled by one boundary-design batch request
MAX_BOUNDARIES_PER_BATCH = 20

# Context strips handed to the model: (max pixels, ratio of image height)
EXTEND_CONTEXT_STRIP = (150, 0.20)
NEIGHBOR_CONTEXT_STRIP = (100, 0.15)

# New-section generation bounds
DEFAULT_SECTION_WIDTH = 750
DEFAULT_SECTION_HEIGHT = 400
MIN_SECTION_DIMENSION = 100
MAX_SECTION_DIMENSION = 2000

HISTORY_LIMIT = 10

CREATIVITY_TEMPERATURE = {
    "low": 0.3,
    "medium": 0.5,
    "high": 0.8,
}

# Regeneration keeps the layout ("light") or may rework it ("heavy").
# An attached style reference pins the temperature lower still.
REGENERATE_TEMPERATURE = {
    "light": 0.15,
    "heavy": 0.35,
}
REGENERATE_REFERENCE_TEMPERATURE = 0.1
MAX_CUSTOM_PROMPT_LENGTH = 500


class SourceType:
    GENERATED = "generated"
    CROPPED = "cropped"
    BOUNDARY_ADJUST = "boundary-adjust"
    BOUNDARY_CUT = "boundary-cut"
    BOUNDARY_GENERATED = "boundary-generated"
    RESTORED = "restored"
    REGENERATE_LIGHT = "regenerate-light"
    REGENERATE_HEAVY = "regenerate-heavy"
    PDF_IMPORT = "pdf-import"
    UPLOAD = "upload"
    IMPORT = "import"


class ActionType:
    CROP = "crop"
    RESTORE = "restore"
    REVERT = "revert"
    MANUAL = "manual"
    BOUNDARY_ADJUST = "boundary-adjust"
    BOUNDARY_DESIGN = "boundary-design"
    REGENERATE_LIGHT = "regenerate-light"
    REGENERATE_HEAVY = "regenerate-heavy"
