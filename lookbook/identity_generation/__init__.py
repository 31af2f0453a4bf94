"""
Persona generation for the daily lookbook batch.
"""

from .identity import Identity
from .prompting import IdentityPrompt, build_identity_prompt, sample_trait_seeds
from .service import IdentityGenerator

__all__ = [
    "Identity",
    "IdentityPrompt",
    "build_identity_prompt",
    "sample_trait_seeds",
    "IdentityGenerator",
]
