"""Instructions sent to the image model.

Each builder returns plain text. The model is always told the exact output
size in pixels, and continuity tasks are framed as restoring content that was
cut away rather than inventing something new.
"""
from __future__ import annotations

from typing import Any

EDGE_LABELS = {
    "top": "top",
    "bottom": "bottom",
}


def edge_extension_instruction(edge: str, width: int, height: int, user_prompt: str) -> str:
    """Outpaint a strip that continues one edge of an existing section."""
    # The strip goes above the image when extending the top edge
    position = "directly above" if edge == "top" else "directly below"
    return f"""[Image restoration task]

The attached image is the {EDGE_LABELS[edge]} edge of a web page section.
The content {position} this edge was cut away and is missing.
Restore the missing content so that it seamlessly continues this edge.

[Restoration intent]
{user_prompt}

[Output size] {width}px x {height}px (exact)

[Rules]
1. The {"bottom" if edge == "top" else "top"} row of your output touches the attached edge; it must connect without a visible seam.
2. Keep the colors, lighting, texture and design style of the attached image.
3. Do not repeat the attached image; continue it.
4. Output a single image only, no borders, captions or watermarks.

Generate exactly one {width}x{height}px image."""


def reference_caption() -> str:
    return "[Style reference] Follow the design style of this image."


def neighbor_caption(position: str) -> str:
    if position == "above":
        return "Bottom edge of the section above (the new section goes directly below it)."
    return "Top edge of the section below (the new section goes directly above it)."


def style_block(design_definition: dict[str, Any] | None) -> str:
    """Render a design definition (palette, vibe, typography) into a style block."""
    if not design_definition:
        return ""
    colors = design_definition.get("colorPalette") or {}
    color_desc = ", ".join(
        f"{label}: {colors[key]}"
        for key, label in (
            ("primary", "primary color"),
            ("secondary", "secondary color"),
            ("accent", "accent color"),
            ("background", "background color"),
        )
        if colors.get(key)
    )
    typography = design_definition.get("typography") or {}
    style = design_definition.get("style") or {}
    lines = [
        f"Mood: {design_definition['vibe']}" if design_definition.get("vibe") else "",
        f"Characteristics: {design_definition['description']}"
        if design_definition.get("description")
        else "",
        f"Colors: {color_desc}" if color_desc else "",
        f"Headings: {typography['headingStyle']}" if typography.get("headingStyle") else "",
        f"Buttons: {style['buttonStyle']}" if style.get("buttonStyle") else "",
    ]
    body = "\n".join(line for line in lines if line)
    if not body:
        return ""
    return f"[Design definition (mandatory)]\n{body}"


def new_section_instruction(
    user_prompt: str,
    width: int,
    height: int,
    *,
    has_prev: bool,
    has_next: bool,
    design_definition: dict[str, Any] | None = None,
) -> str:
    rules = [
        "- Render any text accurately and legibly.",
        "- Produce professional web design quality.",
    ]
    if has_prev:
        rules.append("- Keep design continuity with the section above (tones, style).")
    if has_next:
        rules.append("- Keep design continuity with the section below (tones, style).")
    if has_prev or has_next:
        rules.append("- The boundaries must connect naturally.")
    style = style_block(design_definition)
    return f"""Generate a section image for a landing page.

[Content]
{user_prompt}

[Output size] {width}px x {height}px (exact)

{style}

[Rules]
{chr(10).join(rules)}

Generate exactly one {width}x{height}px image."""


def bridge_instruction(width: int, height: int, *, has_reference: bool) -> str:
    """Bridge image joining the bottom of one section to the top of the next."""
    reference_rule = "\n- Follow the style of the third image." if has_reference else ""
    return f"""Generate a boundary image for a landing page.

[Task]
The first image is the bottom edge of the upper section and the second image is
the top edge of the lower section. Generate the image that sits between them
and joins them naturally.

[Output size] {width}px x {height}px (exact)

[Rules]
- The top edge connects naturally to the first image.
- The bottom edge connects naturally to the second image.
- Carry over colors, tones and mood from both images.
- The transition must not look out of place.{reference_rule}

Generate exactly one {width}x{height}px image."""


DESIGN_DEFINITION_STYLE = "design-definition"

REGENERATE_STYLES = {
    "sampling": "Keep the original design: colors, fonts, button shapes and decoration stay as they are.",
    "professional": "Corporate and trustworthy: navy blue (#1E3A5F) and white, clean sans-serif type.",
    "pops": "Pop and lively: bright pink-to-orange gradients, rounded shapes, bold type.",
    "luxury": "Luxury and elegant: black and gold (#D4AF37), serif type, thin elegant lines.",
    "minimal": "Minimal and simple: monochrome plus one accent color, generous white space.",
    "emotional": "Passion and energy: warm colors (crimson #C41E3A, orange), strong contrast.",
}

COLOR_SCHEMES = {
    "original": "Keep the colors of the original image.",
    "blue": "Primary #2563EB, accent #60A5FA, light neutral backgrounds.",
    "green": "Primary #16A34A, accent #86EFAC, light neutral backgrounds.",
    "purple": "Primary #7C3AED, accent #C4B5FD, light neutral backgrounds.",
    "orange": "Primary #EA580C, accent #FDBA74, light neutral backgrounds.",
    "monochrome": "Black, white and grays only.",
}


def segment_role(index: int, total: int) -> tuple[str, str]:
    """(position, role) of a section on its page, top to bottom."""
    if index == 0:
        return "header / hero section", "navigation, logo, main visual"
    if index == total - 1:
        return "footer section", "call to action, contact, copyright"
    return f"content section ({index + 1}/{total})", "body content"


def regenerate_style(
    style: str, color_scheme: str | None, design_definition: dict[str, Any] | None
) -> tuple[str, str]:
    """(style summary, design token block) for a regeneration."""
    if style == DESIGN_DEFINITION_STYLE and design_definition:
        block = style_block(design_definition)
        summary = design_definition.get("vibe") or "the page-wide design definition"
        return (
            f"Follow the page-wide design definition ({summary}).",
            f"{block}\nEvery section must look like part of the same page.",
        )
    description = REGENERATE_STYLES.get(style, REGENERATE_STYLES["professional"])
    tokens = [f"Style: {description}"]
    if color_scheme:
        tokens.append(f"Colors: {COLOR_SCHEMES[color_scheme]}")
    return description, "[Design tokens]\n" + "\n".join(tokens)


def style_reference_caption(user_selected: bool) -> str:
    if user_selected:
        return (
            "[Style reference] The user picked this section as the model design. "
            "Apply its colors, fonts, decoration and mood to the image that follows."
        )
    return "[Style reference] The first section of this page. Match its style."


def regenerate_target_caption() -> str:
    return "[Image to process]"


def regenerate_instruction(
    mode: str,
    *,
    position: str,
    role: str,
    total: int,
    style_description: str,
    design_tokens: str,
    has_prev: bool,
    has_next: bool,
    reference: str | None = None,
    custom_prompt: str | None = None,
    context_style: str | None = None,
) -> str:
    """Restyle one section of a page; `reference` is "user", "first" or None."""
    continuity = []
    if has_prev:
        continuity.append("Keep design continuity with the section above.")
    if has_next:
        continuity.append("Keep design continuity with the section below.")

    if reference == "user":
        reference_block = (
            "[Most important: match the selected style reference]\n"
            "The style reference is the design the user chose. Reproduce its background, "
            "buttons, typography, icons, color tone and spacing on the image to process.\n\n"
        )
    elif reference == "first":
        reference_block = (
            "[Most important: consistent style]\n"
            "The style reference is the first section of this page. Match its background, "
            "buttons, typography, icons, shadows and decoration.\n\n"
        )
    else:
        reference_block = ""

    rules = ["Keep exactly the same aspect ratio and resolution as the input image."]
    if mode == "light":
        intro = "Convert one segment of a web page to a new style."
        rules.append("Do not move or resize any element; only the style changes.")
        rules.append("The top and bottom edges join other segments; backgrounds and patterns must not break off.")
        changes = f"- Style: {style_description}\n- Rephrase the text but keep its meaning."
    else:
        intro = "Create a new design for one segment of a web page, using the input as a starting point."
        rules.append("The top and bottom edges join other segments; backgrounds must not break off.")
        changes = f"- New style: {style_description}\n- The layout may be rearranged, but the section keeps its role."
    rules.extend(continuity)
    numbered = "\n".join(f"{i}. {rule}" for i, rule in enumerate(rules, start=1))

    extras = []
    if custom_prompt:
        extras.append(f"[User instruction] {custom_prompt}")
    if context_style:
        extras.append(f"[Context style] {context_style}")
    extra_block = "\n".join(extras)

    return f"""{reference_block}{intro}
This image is one part of a page and will be joined with the other segments.

[Segment]
- Position: {position} (of {total} segments)
- Role: {role}

[Rules]
{numbered}

[Changes]
{changes}

{design_tokens}

{extra_block}

Output one high-quality web design image the same size as the input."""
