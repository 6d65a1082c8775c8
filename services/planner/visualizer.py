"""Drive the image model through incremental or single-shot visualization.

Incremental mode folds over the analysis recommendations. Each step's input
is the image produced by the previous successful step, so the calls are
strictly sequential. A step that returns no image is skipped and logged.
If every step is skipped, a single full visualization is attempted instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from models.analysis import Analysis, GenerationStep, Recommendation, VisualizationResult
from models.session_models import Session
from services.planner.generation_client import IMAGE_MODE, ImagePayload, UrbanModelClient
from services.planner.prompts import build_full_visualization_prompt, build_incremental_prompt
from services.result_store import ResultStore
from utils.errors import GenerationFailure

LOGGER = logging.getLogger(__name__)

GENERATED_MIME_TYPE = "image/png"


@dataclass(frozen=True)
class _ChainState:
    """Accumulator carried from one incremental step to the next."""

    current: ImagePayload
    steps: Tuple[GenerationStep, ...] = ()
    skipped: Tuple[int, ...] = ()
    download_ref: Optional[str] = None

    def produced(self, step: GenerationStep, image: bytes, download_ref: Optional[str] = None) -> "_ChainState":
        return _ChainState(
            current=ImagePayload(image, GENERATED_MIME_TYPE),
            steps=self.steps + (step,),
            skipped=self.skipped,
            download_ref=download_ref or self.download_ref,
        )

    def skip(self, index: int) -> "_ChainState":
        return _ChainState(
            current=self.current,
            steps=self.steps,
            skipped=self.skipped + (index,),
            download_ref=self.download_ref,
        )


class GenerationOrchestrator:
    """Produce the improvement image sequence for one analysis."""

    def __init__(self, model_client: UrbanModelClient, store: ResultStore) -> None:
        if model_client is None:
            raise ValueError("Model client must be provided.")
        self.model_client = model_client
        self.store = store

    async def run(
        self,
        image: ImagePayload,
        analysis: Analysis,
        *,
        incremental: bool,
        session_timestamp: Optional[int] = None,
    ) -> VisualizationResult:
        """Dispatch to the incremental or single-shot pipeline."""
        if incremental:
            return await self.run_incremental(image, analysis, session_timestamp=session_timestamp)
        return await self.run_single_shot(image, analysis, session_timestamp=session_timestamp)

    async def run_incremental(
        self,
        image: ImagePayload,
        analysis: Analysis,
        *,
        session_timestamp: Optional[int] = None,
    ) -> VisualizationResult:
        """Apply recommendations one at a time, chaining each output image.

        Raises:
            GenerationFailure: Only via the single-shot fallback.
            TransportError: If any model call fails at the transport level.
        """
        timestamp = session_timestamp if session_timestamp is not None else Session.new_id()
        recommendations = analysis.recommendations
        total = len(recommendations)
        LOGGER.info("Generating %d incremental improvement(s) for session %s", total, timestamp)

        state = _ChainState(current=image)
        for index, rec in enumerate(recommendations):
            state = await self._advance(state, index, rec, total, timestamp)

        if not state.steps:
            LOGGER.info("No incremental images generated; falling back to single-shot visualization")
            return await self.run_single_shot(image, analysis, session_timestamp=timestamp)

        return VisualizationResult(
            final_image_ref=state.steps[-1].image_ref,
            steps=state.steps,
            mode="incremental",
            skipped_indices=state.skipped,
            download_ref=state.download_ref,
        )

    async def _advance(
        self,
        state: _ChainState,
        index: int,
        rec: Recommendation,
        total: int,
        timestamp: int,
    ) -> _ChainState:
        """Run one step of the fold and return the next accumulator."""
        prompt = build_incremental_prompt(rec, index + 1, total)
        LOGGER.info("Generating improvement %d/%d: %s", index + 1, total, rec.category.value)
        response = await self.model_client.generate([state.current], prompt, IMAGE_MODE)

        image_bytes = response.image_bytes
        if image_bytes is None:
            LOGGER.warning("StepSkipped: no image generated for improvement %d/%d", index + 1, total)
            return state.skip(index)
        if len(response.images) > 1:
            LOGGER.info("Model returned %d images for step %d; using the first", len(response.images), index + 1)

        image_ref = await self.store.save(image_bytes, timestamp, step_index=index)
        download_ref = None
        if index == total - 1:
            download_ref = await self.store.copy(image_ref, timestamp)
        # Step indices are dense over produced images; file names keep the recommendation position.
        step = GenerationStep.from_recommendation(len(state.steps), rec, image_ref)
        return state.produced(step, image_bytes, download_ref)

    async def run_single_shot(
        self,
        image: ImagePayload,
        analysis: Analysis,
        *,
        session_timestamp: Optional[int] = None,
    ) -> VisualizationResult:
        """Render every recommendation in one call against the original image.

        Raises:
            GenerationFailure: If the model returned no image.
            TransportError: If the model call fails at the transport level.
        """
        timestamp = session_timestamp if session_timestamp is not None else Session.new_id()
        LOGGER.info("Generating final urban improvement visualization for session %s", timestamp)
        prompt = build_full_visualization_prompt(analysis)
        response = await self.model_client.generate([image], prompt, IMAGE_MODE)

        image_bytes = response.image_bytes
        if image_bytes is None:
            raise GenerationFailure("No image was generated in the response")

        final_ref = await self.store.save(image_bytes, timestamp)
        steps = tuple(
            GenerationStep.from_recommendation(index, rec, final_ref)
            for index, rec in enumerate(analysis.recommendations)
        )
        return VisualizationResult(
            final_image_ref=final_ref,
            steps=steps,
            mode="single_shot",
            download_ref=final_ref,
        )
