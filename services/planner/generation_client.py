"""OpenAI-backed implementation of the generative model collaborator.

The pipeline only needs one call shape: images plus a prompt in, and either
text or zero-or-more images out. `UrbanModelClient.generate` provides it on
top of the Responses API (text) and the Images edit endpoint (image).
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple

from openai import AsyncOpenAI, OpenAIError

from services.planner.media_inputs import build_inputs
from services.planner.prompts import build_system_prompt
from utils.errors import TransportError

LOGGER = logging.getLogger(__name__)

ANALYSIS_MODEL = os.getenv("OPENAI_ANALYSIS_MODEL", "gpt-5")
IMAGE_MODEL = os.getenv("OPENAI_IMAGE_MODEL", "gpt-image-1")

TEXT_MODE = "text"
IMAGE_MODE = "image"

_EXTENSIONS = {"image/jpeg": "jpg", "image/jpg": "jpg", "image/png": "png", "image/webp": "webp"}


@dataclass(frozen=True)
class ImagePayload:
    """Image bytes plus the MIME type they are encoded with."""

    data: bytes
    mime_type: str = "image/png"

    def as_upload(self, name: str = "input") -> Tuple[str, bytes, str]:
        """Return the `(filename, content, mime)` tuple the OpenAI SDK uploads."""
        ext = _EXTENSIONS.get(self.mime_type.lower(), "png")
        return (f"{name}.{ext}", self.data, self.mime_type)


@dataclass(frozen=True)
class ModelResponse:
    """Text and/or image payloads returned by one model call."""

    text: Optional[str] = None
    images: Tuple[bytes, ...] = field(default_factory=tuple)

    @property
    def image_bytes(self) -> Optional[bytes]:
        """Return the first image payload; later payloads are ignored."""
        return self.images[0] if self.images else None


def extract_text(response: Any) -> str:
    """Extract the first output_text entry from a Responses API result."""
    for item in getattr(response, "output", None) or []:
        if getattr(item, "type", None) != "message":
            continue
        for content in getattr(item, "content", None) or []:
            content_type = content.get("type") if isinstance(content, dict) else getattr(content, "type", None)
            if content_type == "output_text":
                text = content.get("text") if isinstance(content, dict) else getattr(content, "text", None)
                return text or ""
    return getattr(response, "output_text", "") or ""


def extract_images(response: Any) -> Tuple[bytes, ...]:
    """Decode every `b64_json` payload in an Images API result."""
    decoded = []
    for index, item in enumerate(getattr(response, "data", None) or []):
        b64 = getattr(item, "b64_json", None)
        if not b64:
            LOGGER.warning("Image payload %d carried no b64_json data; ignoring it", index)
            continue
        try:
            decoded.append(base64.b64decode(b64))
        except (binascii.Error, ValueError) as exc:
            LOGGER.warning("Image payload %d is not valid base64: %s", index, exc)
    return tuple(decoded)


def extract_usage(response: Any) -> Dict[str, Optional[int]]:
    """Return token usage if present."""
    usage = getattr(response, "usage", None)
    return {
        "input_tokens": getattr(usage, "input_tokens", None) if usage else None,
        "output_tokens": getattr(usage, "output_tokens", None) if usage else None,
    }


class UrbanModelClient:
    """Send images and prompts to OpenAI and normalise what comes back."""

    def __init__(
        self,
        client: AsyncOpenAI,
        *,
        analysis_model: str = ANALYSIS_MODEL,
        image_model: str = IMAGE_MODEL,
    ) -> None:
        if client is None:
            raise ValueError("AsyncOpenAI client is required.")
        self.client = client
        self.analysis_model = analysis_model
        self.image_model = image_model

    async def generate(self, images: Sequence[ImagePayload], prompt: str, mode: str) -> ModelResponse:
        """Run one model call.

        Args:
            images: Input images, in order.
            prompt: Instruction text.
            mode: `"text"` for analysis, `"image"` for visualization.

        Returns:
            A ModelResponse. An image-mode response may contain no images.

        Raises:
            TransportError: If the OpenAI API call fails.
            ValueError: If `mode` is unknown or no image was supplied for image mode.
        """
        if mode == TEXT_MODE:
            return await self._generate_text(images, prompt)
        if mode == IMAGE_MODE:
            return await self._generate_image(images, prompt)
        raise ValueError(f"Unsupported generation mode '{mode}'")

    async def _generate_text(self, images: Sequence[ImagePayload], prompt: str) -> ModelResponse:
        inputs = build_inputs(
            build_system_prompt(),
            prompt,
            [(image.data, image.mime_type) for image in images],
        )
        start = time.time()
        try:
            response = await self.client.responses.create(model=self.analysis_model, input=inputs)
        except OpenAIError as exc:
            LOGGER.error("OpenAI Responses API error: %s", exc)
            raise TransportError(f"Analysis request failed: {exc}") from exc

        usage = extract_usage(response)
        LOGGER.info(
            "Analysis response in %.3fs (input_tokens=%s, output_tokens=%s)",
            time.time() - start,
            usage["input_tokens"],
            usage["output_tokens"],
        )
        return ModelResponse(text=extract_text(response))

    async def _generate_image(self, images: Sequence[ImagePayload], prompt: str) -> ModelResponse:
        if not images:
            raise ValueError("At least one input image is required for image generation.")
        uploads = [image.as_upload(f"input-{i}") for i, image in enumerate(images)]
        start = time.time()
        try:
            response = await self.client.images.edit(
                model=self.image_model,
                image=uploads if len(uploads) > 1 else uploads[0],
                prompt=prompt,
            )
        except OpenAIError as exc:
            LOGGER.error("OpenAI Images API error: %s", exc)
            raise TransportError(f"Image generation request failed: {exc}") from exc

        decoded = extract_images(response)
        LOGGER.info("Image response in %.3fs with %d image(s)", time.time() - start, len(decoded))
        return ModelResponse(images=decoded)
