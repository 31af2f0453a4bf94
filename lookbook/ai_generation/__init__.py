"""
AI image generation package for the lookbook.
"""

from .prompting import StagePrompt, build_custom_edit_prompt, build_stage_prompt
from .replicate_service import ReplicateImageSynthesizer, encode_image_input

__all__ = [
    "StagePrompt",
    "build_custom_edit_prompt",
    "build_stage_prompt",
    "ReplicateImageSynthesizer",
    "encode_image_input",
]
