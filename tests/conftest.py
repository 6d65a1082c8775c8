import io
import json
import struct
import zlib
from pathlib import Path
from typing import List, Optional

import pytest
from PIL import Image

from models.analysis import Analysis, Category, Issue, Recommendation
from services.planner.generation_client import ImagePayload, ModelResponse
from services.result_store import ResultStore


def make_png(color=(120, 130, 140), size=(32, 24)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def _png_chunk(tag: bytes, data: bytes) -> bytes:
    return struct.pack(">I", len(data)) + tag + data + struct.pack(">I", zlib.crc32(tag + data) & 0xFFFFFFFF)


def make_oversized_png(width=40000, height=40000) -> bytes:
    """A few hundred bytes on disk that declare a huge RGB canvas."""
    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + _png_chunk(b"IHDR", header)
        + _png_chunk(b"IDAT", zlib.compress(b"\0"))
        + _png_chunk(b"IEND", b"")
    )


class FakeModelClient:
    """Scripted stand-in for UrbanModelClient.

    `image_outcomes` is consumed one entry per image-mode call: bytes for one
    image, a tuple for several, None for no image, or an exception to raise.
    """

    def __init__(self, text=None, image_outcomes: Optional[List] = None) -> None:
        self.text = text
        self.image_outcomes = list(image_outcomes or [])
        self.calls = []

    async def generate(self, images, prompt, mode):
        self.calls.append({"images": list(images), "prompt": prompt, "mode": mode})
        if mode == "text":
            if isinstance(self.text, Exception):
                raise self.text
            return ModelResponse(text=self.text)
        outcome = self.image_outcomes.pop(0) if self.image_outcomes else None
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            return ModelResponse()
        if isinstance(outcome, tuple):
            return ModelResponse(images=outcome)
        return ModelResponse(images=(outcome,))

    @property
    def image_calls(self):
        return [call for call in self.calls if call["mode"] == "image"]


ANALYSIS_JSON = {
    "current_assessment": {
        "overall_description": "A wide arterial road with narrow sidewalks.",
        "identified_issues": [
            {"category": "Walkability", "details": "Sidewalks are narrow and broken."},
            {"category": "Greenery", "details": "No street trees."},
        ],
    },
    "improvement_recommendations": [
        {
            "category": "Walkability",
            "recommendation": "Widen the sidewalks to 3 meters.",
            "expected_benefits": "Safer, more comfortable walking.",
        },
        {
            "category": "Transportation",
            "recommendation": "Add a protected bike lane.",
            "expected_benefits": "Fewer car trips.",
        },
        {
            "category": "Greenery",
            "recommendation": "Plant a row of street trees.",
            "expected_benefits": "Shade and cooler streets.",
        },
    ],
    "urban_planning_principles": ["Complete streets", "Human scale", "Green infrastructure"],
}


@pytest.fixture
def analysis_json() -> dict:
    return json.loads(json.dumps(ANALYSIS_JSON))


@pytest.fixture
def analysis_text(analysis_json) -> str:
    return "Here is my assessment:\n```json\n" + json.dumps(analysis_json, indent=2) + "\n```\nHope it helps."


@pytest.fixture
def three_step_analysis() -> Analysis:
    return Analysis(
        overall_description="Test street",
        identified_issues=(
            Issue(Category.WALKABILITY, "Narrow sidewalks"),
            Issue(Category.GREENERY, "No trees"),
        ),
        recommendations=(
            Recommendation(Category.WALKABILITY, "Widen sidewalks", "Comfort"),
            Recommendation(Category.TRANSPORTATION, "Add bike lane", "Mobility"),
            Recommendation(Category.GREENERY, "Plant trees", "Shade"),
        ),
        principles=("Complete streets", "Human scale", "Green infrastructure"),
    )


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def source_image(png_bytes) -> ImagePayload:
    return ImagePayload(png_bytes, "image/png")


@pytest.fixture
def store(tmp_path: Path) -> ResultStore:
    return ResultStore(tmp_path / "results", tmp_path / "uploads")
