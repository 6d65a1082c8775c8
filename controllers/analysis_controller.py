import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request, UploadFile

from dal.history_dal import HistoryDAL
from models.analysis import Analysis, VisualizationResult
from models.session_models import Session
from services.planner.generation_client import ImagePayload, UrbanModelClient
from services.planner.space_analyzer import UrbanSpaceAnalyzer
from services.planner.visualizer import GenerationOrchestrator
from services.result_store import ResultStore
from services.thumbnail_generator import ThumbnailGenerator
from utils.errors import GenerationFailure, TransportError, ValidationError
from utils.media_validation import read_image_upload

LOGGER = logging.getLogger(__name__)


def build_visualization_payload(analysis: Analysis, result: VisualizationResult, session_id: int) -> Dict[str, Any]:
    """Shape an orchestrator result into the JSON the web client consumes."""
    image_urls = result.image_refs if result.mode == "incremental" else []
    return {
        "success": True,
        "sessionId": session_id,
        "mode": result.mode,
        "analysis": analysis.to_dict(),
        "imageUrl": result.final_image_ref,
        "downloadUrl": result.download_ref or result.final_image_ref,
        "incrementalImages": image_urls or [result.final_image_ref],
        "incrementalChanges": [step.to_change_dict() for step in result.steps],
        "skipped": list(result.skipped_indices),
    }


async def _discard_upload(path: Optional[Path]) -> None:
    if path is None:
        return
    try:
        await asyncio.to_thread(path.unlink, True)
    except OSError as exc:
        LOGGER.warning("Error cleaning up temp file %s: %s", path, exc)


async def _thumbnail(image_bytes: bytes) -> Optional[str]:
    try:
        return await asyncio.to_thread(ThumbnailGenerator().create_data_url, image_bytes)
    except ValueError as exc:
        LOGGER.warning("Could not create history thumbnail: %s", exc)
        return None


async def analyze_urban_space(request: Request, file: Optional[UploadFile], incremental: bool) -> Dict[str, Any]:
    """Validate an upload, analyze it, generate the visualization, and record history.

    Args:
        request: FastAPI Request object (used to access app.state for shared clients).
        file: Uploaded JPG/PNG photo of the urban space.
        incremental: Generate one image per recommendation instead of a single one.

    Returns:
        A dict with the analysis, the final image URL, the per-step image URLs
        and the per-step change descriptions.

    Raises:
        HTTPException: 400/413/415 for a rejected upload, 502 when the model
            call or the visualization fails.
    """
    try:
        image_bytes, mime_type = await read_image_upload(file)
    except ValidationError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    model_client: UrbanModelClient = request.app.state.model_client
    store: ResultStore = request.app.state.result_store
    history: HistoryDAL = request.app.state.history_dal

    session_id = Session.new_id()
    upload_path = await store.save_upload(image_bytes, mime_type, session_id)
    image = ImagePayload(image_bytes, mime_type)
    LOGGER.info("Session %s: incremental visualization %s", session_id, "enabled" if incremental else "disabled")

    try:
        analysis = await UrbanSpaceAnalyzer(model_client).analyze(image)
        result = await GenerationOrchestrator(model_client, store).run(
            image, analysis, incremental=incremental, session_timestamp=session_id
        )
        original_ref = await store.save_original(image_bytes, session_id, mime_type)
        session = Session(
            id=session_id,
            original_image_ref=original_ref,
            final_image_ref=result.final_image_ref,
            analysis=analysis,
            steps=result.steps,
            thumbnail_b64=await _thumbnail(image_bytes),
        )
        await history.add(session)
    except (GenerationFailure, TransportError) as exc:
        LOGGER.error("Session %s failed: %s", session_id, exc)
        await _discard_upload(upload_path)
        raise HTTPException(
            status_code=502,
            detail={"error": "Failed to process urban space image", "details": str(exc)},
        ) from exc
    except Exception:
        LOGGER.exception("Session %s failed unexpectedly", session_id)
        await _discard_upload(upload_path)
        raise

    payload = build_visualization_payload(analysis, result, session_id)
    payload["originalImageUrl"] = original_ref
    return payload
