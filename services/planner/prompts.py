"""Prompt builders for urban space analysis and visualization."""

from __future__ import annotations

from models.analysis import Analysis, Category, Recommendation

_CATEGORY_CHOICES = ", ".join(c.value for c in Category if c is not Category.OTHER) + ", or Other"


def build_system_prompt() -> str:
	"""Return the role prompt sent ahead of the analysis request."""
	return (
		"You are an expert urban planner. You assess streets, plazas and neighbourhoods "
		"for livability, sustainability and function, and you only propose changes that "
		"could realistically be built at the location shown."
	)


def build_analysis_prompt() -> str:
	"""Return the analysis request with the JSON schema the parser expects."""
	return f"""As an expert urban planner, analyze this urban space in detail and identify areas for improvement.

Please respond in the following JSON format structure:
{{
  "current_assessment": {{
    "overall_description": "Brief description of the urban space",
    "identified_issues": [
      {{
        "category": "One of: {_CATEGORY_CHOICES}",
        "details": "Detailed description of the issue"
      }}
    ]
  }},
  "improvement_recommendations": [
    {{
      "category": "Same categories as above",
      "recommendation": "Specific improvement recommendation",
      "expected_benefits": "Expected benefits of this change"
    }}
  ],
  "urban_planning_principles": [
    "List of 3-5 key urban planning principles that would improve this space"
  ]
}}

Focus on practical improvements that could realistically be implemented and would significantly enhance the livability, sustainability, and functionality of this urban space. Consider walkability, public transportation access, green spaces, community gathering areas, safety features, and accessibility.

Important: Limit the recommendations to 3-5 key improvements that would have the most impact. For each recommendation, be specific and actionable."""


def build_incremental_prompt(recommendation: Recommendation, step_number: int, total_steps: int) -> str:
	"""Return the prompt asking for exactly one change to the current image.

	Args:
		recommendation: The improvement to apply in this step.
		step_number: 1-based position of the step.
		total_steps: Number of recommendations in the run.
	"""
	return f"""You are a skilled urban planner and architectural visualizer. Make ONE SPECIFIC CHANGE to this urban space image.

IMPROVEMENT ({step_number} of {total_steps}): {recommendation.category.value}
{recommendation.recommendation}

CRITICAL REQUIREMENTS:
1. Make ONLY this ONE specific change to the image. Do not add any other improvements.
2. Keep the image photorealistic - not a sketch, drawing or cartoon.
3. Maintain the EXACT same perspective, angle, scale, and composition as the original.
4. Preserve all buildings, people, vehicles, and infrastructure EXCEPT for the specific area you are improving.
5. Maintain all lighting conditions, weather, and time of day exactly as in the original.
6. Make the change VISUALLY OBVIOUS so it is clear what has been improved.
7. Do not add text, labels, or annotations to the image.

This image is one frame in a step-by-step sequence of enhancements. Only the specified change may differ from the previous image.

Generate a photorealistic visualization showing ONLY this specific urban improvement implemented in the space."""


def build_full_visualization_prompt(analysis: Analysis) -> str:
	"""Return the single-shot prompt applying every recommendation at once."""
	recommendations = "\n".join(f"- {rec.recommendation}" for rec in analysis.recommendations)
	principles = "\n".join(f"- {principle}" for principle in analysis.principles)
	return f"""Transform this urban space image according to urban planning best practice. Create a realistic visualization that incorporates the following specific improvements:

{recommendations or "- General improvements to livability"}

Apply these urban planning principles:
{principles or "- Human-scale, walkable design"}

CRITICAL REQUIREMENTS:
1. Make REALISTIC and PRACTICAL changes that could actually be implemented in this exact location.
2. Maintain the EXACT same perspective, angle, and scale as the original image.
3. The result must be PHOTOREALISTIC - not a sketch, drawing, or cartoon.
4. Keep the same buildings and major infrastructure, but enhance them with the suggested improvements.
5. Preserve the character and unique identity of the original location.
6. Do not add floating text, labels, arrows, or UI elements to the image.

Do not create an entirely new scene. Someone familiar with this location should still recognize it after the improvements.

Generate a detailed visualization showing how these urban improvements would look when implemented at this exact location."""
