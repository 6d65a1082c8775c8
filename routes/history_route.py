"""FastAPI routes for the stored analysis history."""

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import PlainTextResponse

from controllers.history_controller import delete_session, get_session, list_sessions, session_report

router = APIRouter(prefix="/api/history", tags=["history"])


@router.get("")
async def list_history_route(request: Request):
	try:
		return await list_sessions(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{session_id}")
async def get_history_route(request: Request, session_id: int):
	try:
		return await get_session(request, session_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/{session_id}")
async def delete_history_route(request: Request, session_id: int):
	try:
		return await delete_session(request, session_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{session_id}/report", response_class=PlainTextResponse)
async def history_report_route(request: Request, session_id: int):
	"""Return the analysis report as a downloadable text file."""
	try:
		report = await session_report(request, session_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
	return PlainTextResponse(
		report,
		headers={"Content-Disposition": f'attachment; filename="urban-analysis-report-{session_id}.txt"'},
	)
