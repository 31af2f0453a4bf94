"""
Integration with Replicate for portrait synthesis and outfit edits.
"""

from __future__ import annotations

import base64
import mimetypes
import os
from collections.abc import Iterable as IterableABC
from pathlib import Path
from typing import Any, Callable

import replicate

from lookbook.common import ConfigurationMissing, SafetyBlocked

ASPECT_RATIO = "3:4"
DEFAULT_MODEL = "black-forest-labs/flux-kontext-pro"

ImageInput = str | bytes | Path

_IMAGE_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"RIFF", "image/webp"),
    (b"GIF8", "image/gif"),
)


def _build_flux_kontext_input(
    *,
    prompt: str,
    image_input: str | None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "prompt": prompt,
        "aspect_ratio": ASPECT_RATIO,
        "output_format": "png",
        "safety_tolerance": 2,
        "prompt_upsampling": False,
    }
    if image_input is not None:
        payload["input_image"] = image_input
    return payload


def _build_nano_banana_input(
    *,
    prompt: str,
    image_input: str | None,
) -> dict[str, Any]:
    return {
        "prompt": prompt,
        "image_input": [image_input] if image_input is not None else [],
        "aspect_ratio": ASPECT_RATIO,
        "output_format": "png",
    }


_MODEL_INPUT_BUILDERS: dict[str, Callable[..., dict[str, Any]]] = {
    "black-forest-labs/flux-kontext-pro": _build_flux_kontext_input,
    "black-forest-labs/flux-kontext-max": _build_flux_kontext_input,
    "google/nano-banana": _build_nano_banana_input,
}


def _build_replicate_input_payload(
    *,
    model_identifier: str,
    prompt: str,
    image_input: str | None,
) -> dict[str, Any]:
    normalized_identifier = model_identifier.strip().lower()
    builder = _MODEL_INPUT_BUILDERS.get(normalized_identifier)
    if builder is None and ":" in normalized_identifier:
        base_identifier = normalized_identifier.split(":", maxsplit=1)[0]
        builder = _MODEL_INPUT_BUILDERS.get(base_identifier)
    if builder is None:
        supported_models = ", ".join(sorted(set(_MODEL_INPUT_BUILDERS)))
        raise ValueError(
            "Model identifier "
            f"'{model_identifier}' is not configured with a default input payload. "
            f"Supported models: {supported_models}."
        )

    return builder(prompt=prompt, image_input=image_input)


class ReplicateImageSynthesizer:
    """
    Sends a prompt (and optional reference image) to a Replicate image model.

    Parameters
    ----------
    api_token:
        Replicate API token. Falls back to ``REPLICATE_API_TOKEN`` environment variable.
    model_identifier:
        Model string in the ``owner/model`` or ``owner/model:version`` format. Falls back to
        ``LOOKBOOK_IMAGE_MODEL``, then ``REPLICATE_MODEL``, then FLUX Kontext Pro.
    client:
        Optional pre-configured :class:`replicate.Client`. Mainly useful for testing.
    embed_outputs:
        When True (default), file outputs are downloaded and returned as ``data:`` URIs
        so cached collections do not depend on expiring delivery URLs.
    """

    def __init__(
        self,
        *,
        api_token: str | None = None,
        model_identifier: str | None = None,
        client: replicate.Client | None = None,
        embed_outputs: bool = True,
    ) -> None:
        self._api_token = api_token or os.getenv("REPLICATE_API_TOKEN")
        if not self._api_token and not client:
            raise ConfigurationMissing(
                "Replicate API token is required. Set REPLICATE_API_TOKEN or pass api_token."
            )

        self._model_identifier = (
            model_identifier
            or os.getenv("LOOKBOOK_IMAGE_MODEL")
            or os.getenv("REPLICATE_MODEL")
            or DEFAULT_MODEL
        )
        self._client = client or replicate.Client(api_token=self._api_token)
        self._embed_outputs = embed_outputs

    @property
    def model_identifier(self) -> str:
        """Return the model identifier currently used."""
        return self._model_identifier

    def synthesize(
        self,
        prompt: str,
        reference_image: ImageInput | None = None,
        **model_kwargs: Any,
    ) -> str:
        """
        Render ``prompt`` (optionally editing ``reference_image``) and return the image.

        Returns
        -------
        str
            A ``data:`` URI, or the delivery URL when ``embed_outputs`` is disabled.

        Raises
        ------
        SafetyBlocked
            The model returned no image, which is how its safety layer suppresses output.
        """
        if not prompt or not prompt.strip():
            raise ValueError("prompt must be a non-empty string.")

        image_input = encode_image_input(reference_image) if reference_image is not None else None
        replicate_input = _build_replicate_input_payload(
            model_identifier=self._model_identifier,
            prompt=prompt,
            image_input=image_input,
        )
        # Model-specific knobs (e.g., seed) override the defaults.
        replicate_input.update(model_kwargs)

        output = self._client.run(self._model_identifier, input=replicate_input)
        image = self._extract_first_image(output)
        if image is None:
            raise SafetyBlocked("Safety filter or empty response: no image in model output.")
        return image

    def _extract_first_image(self, raw: Any) -> str | None:
        for item in _iter_outputs(raw):
            if hasattr(item, "read") and self._embed_outputs:
                data = item.read()
                if data:
                    return _to_data_uri(data)
                continue
            if isinstance(item, bytes):
                if item:
                    return _to_data_uri(item)
                continue
            text = str(getattr(item, "url", None) or item).strip()
            if text:
                return text
        return None


def _iter_outputs(raw: Any) -> list[Any]:
    if raw is None:
        return []
    if isinstance(raw, (str, bytes)) or hasattr(raw, "read"):
        return [raw]
    if isinstance(raw, IterableABC):
        collected: list[Any] = []
        for item in raw:
            if item is None:
                continue
            if isinstance(item, (str, bytes)) or hasattr(item, "read"):
                collected.append(item)
            elif isinstance(item, IterableABC):
                collected.extend(_iter_outputs(item))
            else:
                collected.append(item)
        return collected
    return [raw]


def encode_image_input(image: ImageInput) -> str:
    """
    Normalize a reference image into a URL or ``data:`` URI the model can consume.
    """
    if isinstance(image, bytes):
        return _to_data_uri(image)

    if isinstance(image, Path):
        image_path = image.expanduser()
    else:
        candidate = str(image).strip()
        if candidate.lower().startswith(("http://", "https://", "data:image/")):
            return candidate
        image_path = Path(candidate).expanduser()

    if not image_path.exists():
        raise FileNotFoundError(f"Reference image not found at '{image_path}'.")

    mime_type, _ = mimetypes.guess_type(image_path.name)
    return _to_data_uri(image_path.read_bytes(), mime_type)


def _to_data_uri(data: bytes, mime_type: str | None = None) -> str:
    resolved = mime_type if mime_type and mime_type.startswith("image/") else _sniff_mime_type(data)
    base64_data = base64.b64encode(data).decode("ascii")
    return f"data:{resolved};base64,{base64_data}"


def _sniff_mime_type(data: bytes) -> str:
    for signature, mime_type in _IMAGE_SIGNATURES:
        if data.startswith(signature):
            return mime_type
    return "image/png"
