"""
Prompt construction for batch persona generation.
"""

from __future__ import annotations

import itertools
import random
from dataclasses import dataclass
from typing import Sequence

HAIR_COLORS = (
    "platinum blonde",
    "warm honey blonde",
    "deep raven black",
    "vibrant auburn red",
    "ash brown",
    "strawberry blonde",
)

EYE_COLORS = (
    "crystal blue",
    "deep emerald green",
    "striking hazel",
    "misty grey",
)

FACIAL_STYLES = (
    "sharp editorial features",
    "soft romantic features",
    "an intense, confident gaze",
    "a classic runway look",
)


@dataclass(frozen=True)
class IdentityPrompt:
    """System and user messages for one identity batch request."""

    system: str
    user: str


def sample_trait_seeds(count: int, rng: random.Random | None = None) -> list[str]:
    """
    Draw ``count`` trait combinations, distinct while the pools allow it.
    """
    if count <= 0:
        return []

    chooser = rng or random.Random()
    combos = list(itertools.product(HAIR_COLORS, EYE_COLORS, FACIAL_STYLES))
    chooser.shuffle(combos)

    seeds: list[str] = []
    while len(seeds) < count:
        for hair, eyes, face in combos[: count - len(seeds)]:
            seeds.append(f"{hair} hair, {eyes} eyes, {face}")
    return seeds


def build_identity_prompt(count: int, trait_seeds: Sequence[str]) -> IdentityPrompt:
    """
    Build the request asking the text model for ``count`` distinct personas.
    """
    if count <= 0:
        raise ValueError("count must be a positive integer.")

    seed_lines = "\n".join(
        f"{index}. {seed}" for index, seed in enumerate(trait_seeds, start=1)
    )

    system_prompt = """You are the casting director of a high-end fashion agency.
You invent fictional adult fashion models for a daily editorial lookbook.

Rules:
- Every model is an adult (25 years or older) and entirely fictional.
- Each model must be visually distinct from the others: vary hair, eyes, face shape, and styling.
- Keep bios tasteful, elegant, and suitable for a fashion magazine.

Output format:
Respond with valid JSON matching this schema:
{
  "identities": [
    {
      "name": "string, first and last name",
      "description": "string, one-sentence editorial bio",
      "traits": "string, physical traits: hair, eyes, facial features"
    },
    ...
  ]
}

Do not include commentary outside the JSON."""

    user_prompt = f"""Create exactly {count} different models.

Use one of these trait seeds per model, in order, and expand each into a richer physical description:
{seed_lines}

Make sure no two models could be mistaken for one another."""

    return IdentityPrompt(system=system_prompt, user=user_prompt)
