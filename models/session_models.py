"""Session records kept in the analysis history."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from models.analysis import Analysis, GenerationStep


_last_id = 0


def _now_iso() -> str:
	return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Session:
	"""One completed upload -> analysis -> visualization run."""

	id: int
	original_image_ref: str
	final_image_ref: str
	analysis: Analysis
	steps: Tuple[GenerationStep, ...] = ()
	created_at: str = field(default_factory=_now_iso)
	thumbnail_b64: Optional[str] = None

	@staticmethod
	def new_id() -> int:
		"""Return a millisecond timestamp, strictly increasing within the process.

		Artifact names derive from this value, so two requests in the same
		millisecond must not share it.
		"""
		global _last_id
		_last_id = max(int(time.time() * 1000), _last_id + 1)
		return _last_id

	@property
	def image_refs(self) -> Tuple[str, ...]:
		if self.steps:
			return tuple(step.image_ref for step in self.steps)
		return (self.final_image_ref,) if self.final_image_ref else ()

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"originalImageUrl": self.original_image_ref,
			"resultImageUrl": self.final_image_ref,
			"analysis": self.analysis.to_dict(),
			"improvements": [step.to_dict() for step in self.steps],
			"generatedImages": list(self.image_refs),
			"timestamp": self.created_at,
			"thumbnail": self.thumbnail_b64,
		}

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> "Session":
		"""Rebuild a session; raises KeyError/TypeError/ValueError on bad shape."""
		return cls(
			id=int(data["id"]),
			original_image_ref=str(data.get("originalImageUrl") or ""),
			final_image_ref=str(data.get("resultImageUrl") or ""),
			analysis=Analysis.from_dict(data.get("analysis") or {}),
			steps=tuple(GenerationStep.from_dict(item) for item in data.get("improvements") or []),
			created_at=str(data.get("timestamp") or _now_iso()),
			thumbnail_b64=data.get("thumbnail"),
		)
