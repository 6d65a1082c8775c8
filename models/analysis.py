"""Structured urban planning analysis and generation results."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Category(str, Enum):
    """Improvement categories understood by the analysis prompt."""

    WALKABILITY = "Walkability"
    TRANSPORTATION = "Transportation"
    PUBLIC_SPACE = "Public Space"
    GREENERY = "Greenery"
    SAFETY = "Safety"
    ACCESSIBILITY = "Accessibility"
    INFRASTRUCTURE = "Infrastructure"
    OTHER = "Other"

    @classmethod
    def coerce(cls, value: Any) -> "Category":
        """Map free-form model output onto a category, defaulting to OTHER."""
        if isinstance(value, Category):
            return value
        if not isinstance(value, str):
            return cls.OTHER
        key = re.sub(r"[\s_\-]+", "", value).lower()
        for member in cls:
            if member.value.replace(" ", "").lower() == key:
                return member
        return cls.OTHER


@dataclass(frozen=True)
class Issue:
    category: Category
    details: str

    def to_dict(self) -> Dict[str, str]:
        return {"category": self.category.value, "details": self.details}


@dataclass(frozen=True)
class Recommendation:
    category: Category
    recommendation: str
    expected_benefits: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "category": self.category.value,
            "recommendation": self.recommendation,
            "expected_benefits": self.expected_benefits,
        }


@dataclass(frozen=True)
class Analysis:
    """Assessment of one uploaded image.

    Attributes:
        overall_description: Short description of the space.
        identified_issues: Problems found, in model order.
        recommendations: Improvements; their order drives incremental steps.
        principles: Planning principles that apply (normally 3-5).
        raw_text: Original model text, only set when the structured parse failed.
    """

    overall_description: str
    identified_issues: Tuple[Issue, ...] = ()
    recommendations: Tuple[Recommendation, ...] = ()
    principles: Tuple[str, ...] = ()
    raw_text: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.raw_text is not None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the JSON field names the analysis prompt asks for."""
        data: Dict[str, Any] = {
            "current_assessment": {
                "overall_description": self.overall_description,
                "identified_issues": [issue.to_dict() for issue in self.identified_issues],
            },
            "improvement_recommendations": [rec.to_dict() for rec in self.recommendations],
            "urban_planning_principles": list(self.principles),
        }
        if self.raw_text is not None:
            data["raw_analysis"] = self.raw_text
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Analysis":
        """Rebuild an Analysis from `to_dict` output (used by history)."""
        assessment = data.get("current_assessment") or {}
        return cls(
            overall_description=str(assessment.get("overall_description") or ""),
            identified_issues=tuple(
                Issue(Category.coerce(item.get("category")), str(item.get("details") or ""))
                for item in assessment.get("identified_issues") or []
                if isinstance(item, dict)
            ),
            recommendations=tuple(
                Recommendation(
                    Category.coerce(item.get("category")),
                    str(item.get("recommendation") or ""),
                    str(item.get("expected_benefits") or ""),
                )
                for item in data.get("improvement_recommendations") or []
                if isinstance(item, dict)
            ),
            principles=tuple(str(p) for p in data.get("urban_planning_principles") or []),
            raw_text=data.get("raw_analysis"),
        )


@dataclass(frozen=True)
class GenerationStep:
    """One produced image in the improvement sequence."""

    index: int
    category: Category
    description: str
    benefits: str
    image_ref: str

    @classmethod
    def from_recommendation(cls, index: int, rec: Recommendation, image_ref: str) -> "GenerationStep":
        return cls(
            index=index,
            category=rec.category,
            description=rec.recommendation,
            benefits=rec.expected_benefits,
            image_ref=image_ref,
        )

    def to_change_dict(self) -> Dict[str, Any]:
        """Return the `incrementalChanges` entry the web client renders."""
        return {
            "id": self.index,
            "category": self.category.value,
            "description": self.description,
            "benefits": self.benefits,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_change_dict()
        data["image_ref"] = self.image_ref
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GenerationStep":
        return cls(
            index=int(data.get("id", 0)),
            category=Category.coerce(data.get("category")),
            description=str(data.get("description") or ""),
            benefits=str(data.get("benefits") or ""),
            image_ref=str(data.get("image_ref") or ""),
        )


@dataclass(frozen=True)
class VisualizationResult:
    """Outcome of one orchestrator run."""

    final_image_ref: str
    steps: Tuple[GenerationStep, ...]
    mode: str = "incremental"
    skipped_indices: Tuple[int, ...] = field(default_factory=tuple)
    download_ref: Optional[str] = None

    @property
    def image_refs(self) -> List[str]:
        return [step.image_ref for step in self.steps]
