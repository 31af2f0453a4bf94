"""
Outfit stages every profile moves through.
"""

from __future__ import annotations

from enum import IntEnum


class Stage(IntEnum):
    """Ordered outfit variants; the orchestrator only ever moves forward."""

    BASE = 0
    INTERMEDIATE = 1
    FINAL = 2

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").title()

    def next(self) -> "Stage | None":
        """Return the following stage, or ``None`` at the end of the sequence."""
        if self is Stage.FINAL:
            return None
        return Stage(self + 1)

    def following(self) -> "Stage":
        """Next stage for interactive controls, wrapping back to ``BASE``."""
        return Stage((self + 1) % len(Stage))
