"""
Profile records produced by the pipeline and cached by the store.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, fields
from typing import Any, Mapping

from lookbook.common import Stage
from lookbook.identity_generation import Identity


def new_profile_id() -> str:
    """Process-unique opaque token."""
    return uuid.uuid4().hex


def _coerce_stage_images(value: Any) -> dict[Stage, str]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError("images_by_stage must be a mapping of stage to image.")

    images: dict[Stage, str] = {}
    for raw_stage, image in value.items():
        try:
            stage = Stage(int(raw_stage))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Unknown stage key {raw_stage!r}.") from exc
        if image:
            images[stage] = str(image)
    return images


@dataclass
class Profile:
    """
    One card of the daily collection.

    Attributes
    ----------
    id:
        Opaque token unique within the process.
    name, description, traits:
        Persona the images were rendered from.
    current_image:
        Image currently displayed (a ``data:`` URI or URL).
    is_busy:
        True while an interactive operation is in flight.
    current_stage:
        Outfit stage of ``current_image``.
    images_by_stage:
        One entry per stage already generated. ``images_by_stage[current_stage]``
        equals ``current_image`` whenever the profile is not busy.
    """

    name: str
    description: str
    current_image: str
    traits: str = ""
    current_stage: Stage = Stage.BASE
    images_by_stage: dict[Stage, str] = field(default_factory=dict)
    is_busy: bool = False
    id: str = field(default_factory=new_profile_id)

    @classmethod
    def from_stage_images(
        cls,
        identity: Identity,
        images: Mapping[Stage, str],
    ) -> "Profile":
        """
        Build a fresh profile at ``BASE`` from a completed orchestration.
        """
        if Stage.BASE not in images:
            raise ValueError("A profile needs at least the base stage image.")
        return cls(
            name=identity.name,
            description=identity.description,
            traits=identity.traits,
            current_image=images[Stage.BASE],
            current_stage=Stage.BASE,
            images_by_stage=dict(images),
        )

    @property
    def identity(self) -> Identity:
        return Identity(
            name=self.name,
            description=self.description,
            traits=self.traits or "striking features",
        )

    def merged(self, updates: Mapping[str, Any]) -> "Profile":
        """
        Return a copy with ``updates`` applied; unknown field names raise ``TypeError``.
        """
        known = {item.name for item in fields(self)}
        unknown = set(updates) - known
        if unknown:
            raise TypeError(f"Unknown profile fields: {', '.join(sorted(unknown))}.")
        if "id" in updates and updates["id"] != self.id:
            raise TypeError("Profile id is immutable.")

        data = self.to_dict()
        data.update(updates)
        if "current_stage" in updates:
            data["current_stage"] = int(updates["current_stage"])
        if "images_by_stage" in updates:
            data["images_by_stage"] = {
                int(stage): image for stage, image in dict(updates["images_by_stage"]).items()
            }
        return Profile.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "traits": self.traits,
            "current_image": self.current_image,
            "is_busy": self.is_busy,
            "current_stage": int(self.current_stage),
            "images_by_stage": {
                int(stage): image for stage, image in sorted(self.images_by_stage.items())
            },
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Profile":
        try:
            profile_id = str(payload["id"]).strip()
            name = str(payload["name"]).strip()
            description = str(payload.get("description", "")).strip()
            current_image = str(payload["current_image"]).strip()
            current_stage = Stage(int(payload.get("current_stage", Stage.BASE)))
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Invalid profile entry: {payload!r}") from exc

        if not profile_id or not name or not current_image:
            raise ValueError("Profile entries need a non-empty id, name and current_image.")

        return cls(
            id=profile_id,
            name=name,
            description=description,
            traits=str(payload.get("traits") or "").strip(),
            current_image=current_image,
            current_stage=current_stage,
            images_by_stage=_coerce_stage_images(payload.get("images_by_stage")),
            is_busy=bool(payload.get("is_busy", False)),
        )
