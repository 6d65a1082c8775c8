from typing import Optional

from fastapi import APIRouter, File, HTTPException, Query, Request, UploadFile

from controllers.analysis_controller import analyze_urban_space

router = APIRouter(prefix="/api", tags=["analysis"])


@router.post("/analyze-urban-space")
async def post_analyze_urban_space(
	request: Request,
	image: Optional[UploadFile] = File(None),
	incremental: bool = Query(False),
):
	"""Analyze an uploaded urban photo and return the improvement visualization."""
	try:
		return await analyze_urban_space(request, image, incremental)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(
			status_code=500,
			detail={"error": "Failed to process urban space image", "details": str(exc)},
		)
