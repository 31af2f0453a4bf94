"""
Prompt construction utilities for lookbook image generation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

from lookbook.common import Stage
from lookbook.identity_generation import Identity

DEFAULT_CAMERA_SHOT = "full length, eye-level, 85mm editorial lens, vertical 3:4 framing"

STAGE_WARDROBE: Mapping[Stage, tuple[str, str]] = {
    Stage.BASE: (
        "A floor-length couture evening gown in luxurious silk with a sculpted, high-fashion silhouette.",
        "An elegant designer evening dress with refined tailoring.",
    ),
    Stage.INTERMEDIATE: (
        "A designer summer look: a fitted linen crop top with a flowing silk midi skirt.",
        "A relaxed high-fashion summer outfit: sleeveless top and light skirt.",
    ),
    Stage.FINAL: (
        "A resort swimwear editorial: a sculpted one-piece designer swimsuit with a sheer kaftan, sunlit beach setting.",
        "A luxury resort look on a beach: designer one-piece swimsuit and cover-up.",
    ),
}


@dataclass(frozen=True)
class StagePrompt:
    """Primary prompt plus the softer wording tried when the primary is blocked."""

    primary: str
    fallback: str | None = None


def build_stage_prompt(
    stage: Stage,
    identity: Identity,
    *,
    camera_shot: str | None = None,
) -> StagePrompt:
    """
    Build the prompt pair for one outfit stage.

    The base stage is a text-to-image brief; later stages are edit instructions
    applied to the previous stage's image and lock everything but the outfit.
    """
    stage = Stage(stage)
    primary_outfit, fallback_outfit = STAGE_WARDROBE[stage]
    shot = camera_shot.strip() if camera_shot else DEFAULT_CAMERA_SHOT

    if stage is Stage.BASE:
        return StagePrompt(
            primary=_compose_portrait_prompt(identity, primary_outfit, shot),
            fallback=_compose_portrait_prompt(identity, fallback_outfit, shot),
        )

    return StagePrompt(
        primary=_compose_edit_prompt(identity, primary_outfit),
        fallback=_compose_edit_prompt(identity, fallback_outfit),
    )


def build_custom_edit_prompt(instruction: str, identity: Identity | None = None) -> StagePrompt:
    """
    Build the prompt pair for a free-form outfit edit of the current image.
    """
    if not instruction or not instruction.strip():
        raise ValueError("instruction must be a non-empty string.")

    cleaned = instruction.strip()
    return StagePrompt(
        primary=_compose_edit_prompt(identity, f"Apply this high-fashion edit: {cleaned}"),
        fallback=_compose_edit_prompt(identity, f"Gently apply this stylistic edit: {cleaned}"),
    )


def _compose_portrait_prompt(identity: Identity, outfit: str, shot: str) -> str:
    header = f"""TASK
Create a high-fashion editorial photograph of {identity.name}, a fictional adult fashion model.

MODEL
- {identity.description}
- Physical traits: {identity.traits}

ART DIRECTION
- Full-length editorial pose, confident and elegant.
- Cinematic studio lighting, ultra-detailed fabric textures, clean background.
- Camera: {shot}."""

    sections = [
        header,
        _format_bullet_section("OUTFIT", _normalize_note_input(outfit)),
        _format_bullet_section(
            "QUALITY",
            [
                "Photorealistic, magazine-cover finish.",
                "No text, logos, or watermarks.",
            ],
        ),
    ]
    return "\n\n".join(sections)


def _compose_edit_prompt(identity: Identity | None, outfit: str) -> str:
    identity_lines = [
        "Keep the same face, facial features, skin tone, hair color and style as in the input image.",
        "Keep the same body proportions and basic pose.",
        "Change only the outfit; do not alter the model's identity.",
    ]
    if identity is not None:
        identity_lines.append(f"Reference traits: {identity.traits}")

    sections = [
        "TASK\nEdit the input photo: restyle the model's outfit while preserving their identity exactly.",
        _format_bullet_section("IDENTITY LOCK (do not change)", identity_lines),
        _format_bullet_section("NEW OUTFIT", _normalize_note_input(outfit)),
        _format_bullet_section(
            "QUALITY",
            [
                "Photorealistic editorial finish matching the input image's lighting.",
                "No text, logos, or watermarks.",
            ],
        ),
    ]
    return "\n\n".join(sections)


def _normalize_note_input(value: str | Sequence[str] | None) -> list[str]:
    if value is None:
        return []

    items = [value] if isinstance(value, str) else [str(item) for item in value]

    lines: list[str] = []
    for item in items:
        for raw in item.replace("\r", "\n").split("\n"):
            cleaned = raw.strip(" \t-•")
            if cleaned:
                lines.append(cleaned)
    return lines


def _format_bullet_section(title: str, lines: Sequence[str]) -> str:
    bullet_block = "\n".join(f"- {line}" for line in lines if line.strip())
    return f"{title}\n{bullet_block}"
