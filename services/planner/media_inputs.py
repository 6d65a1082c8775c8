"""Utilities to build multimodal input payloads for the Responses API."""

import base64
from typing import Any, Dict, List, Sequence, Tuple


def to_image_data_url(image_bytes: bytes, mime_type: str = "image/jpeg") -> str:
    """Encode raw image bytes as a data URL suitable for vision input."""
    if not image_bytes:
        raise ValueError("Image bytes are required to build a data URL.")
    encoded = base64.b64encode(image_bytes).decode("utf-8")
    return f"data:{mime_type};base64,{encoded}"


def build_inputs(
    system_prompt: str,
    user_prompt: str,
    images: Sequence[Tuple[bytes, str]],
) -> List[Dict[str, Any]]:
    """Build the Responses API input array: system, instructions, then each image.

    Args:
        system_prompt: Role prompt for the model.
        user_prompt: Task instructions.
        images: `(bytes, mime_type)` pairs, sent in order.
    """
    inputs: List[Dict[str, Any]] = [
        {
            "type": "message",
            "role": "system",
            "content": [{"type": "input_text", "text": system_prompt}],
        },
        {"type": "message", "role": "user", "content": [{"type": "input_text", "text": user_prompt}]},
    ]
    for data, mime_type in images:
        inputs.append(
            {
                "type": "message",
                "role": "user",
                "content": [{"type": "input_image", "image_url": to_image_data_url(data, mime_type)}],
            }
        )
    return inputs
