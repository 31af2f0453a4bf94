"""
Structured representation of a generated model persona.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


def _require_text(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValueError(f"Identity data must include a non-empty '{key}' field.")
    return text


@dataclass(frozen=True)
class Identity:
    """
    Persona produced once per profile and reused by every stage prompt.

    Attributes
    ----------
    name:
        Display name of the model.
    description:
        One-sentence editorial bio.
    traits:
        Physical-trait descriptor (hair, eyes, facial style) that keeps renders consistent.
    """

    name: str
    description: str
    traits: str

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Identity":
        """
        Build an identity from a dict-like object (e.g., parsed model JSON).
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"Identity entry must be an object, got {data!r}.")
        return cls(
            name=_require_text(data, "name"),
            description=_require_text(data, "description"),
            traits=_require_text(data, "traits"),
        )

    def as_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "description": self.description,
            "traits": self.traits,
        }
